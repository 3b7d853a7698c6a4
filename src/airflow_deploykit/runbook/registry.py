"""Handler registry behind runbook step names.

A runbook step named ``install-chart`` in a runbook with handler_prefix
``deploy`` resolves to the handler registered as ``deploy-install-chart``:

    @register_step("deploy-install-chart")
    def handle_install_chart(step_input: StepInput, deps: StepDeps) -> StepResult:
        ...

Handlers register at import time; importing ``airflow_deploykit.steps``
loads every bundled handler.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, overload

if TYPE_CHECKING:
    from airflow_deploykit.runbook.models import StepDeps, StepInput, StepResult

StepHandler = Callable[["StepInput", "StepDeps"], "StepResult"]

# normalized handler name -> handler
_STEP_REGISTRY: dict[str, StepHandler] = {}


class StepAlreadyRegisteredError(Exception):
    """A handler name was registered twice."""

    def __init__(self, step_name: str) -> None:
        super().__init__(f"Step '{step_name}' is already registered")
        self.step_name = step_name


class StepNotFoundError(Exception):
    """No handler is registered under the requested name."""

    def __init__(self, step_name: str, available: list[str]) -> None:
        listing = ", ".join(sorted(available)) or "(none)"
        super().__init__(f"Step '{step_name}' not found. Available: {listing}")
        self.step_name = step_name
        self.available = available


def normalize_step_name(name: str) -> str:
    """Lowercase, with underscores as hyphens (Deploy_Init -> deploy-init)."""
    return name.lower().replace("_", "-")


@overload
def register_step(step_name: str) -> Callable[[StepHandler], StepHandler]: ...


@overload
def register_step(
    step_name: str,
    handler: StepHandler,
    *,
    allow_override: bool = False,
) -> None: ...


def register_step(
    step_name: str,
    handler: StepHandler | None = None,
    *,
    allow_override: bool = False,
) -> Callable[[StepHandler], StepHandler] | None:
    """Register a handler, as a decorator or with the handler passed directly.

    The publish-image runbook uses the direct form to expose the deploy
    build and push handlers under its own names.

    Raises:
        StepAlreadyRegisteredError: If the name is taken and allow_override is False.
    """
    key = normalize_step_name(step_name)

    def _add(fn: StepHandler) -> StepHandler:
        if not allow_override and key in _STEP_REGISTRY:
            raise StepAlreadyRegisteredError(step_name)
        _STEP_REGISTRY[key] = fn
        return fn

    if handler is not None:
        _add(handler)
        return None
    return _add


def get_step(step_name: str) -> StepHandler:
    """Handler for a step name.

    Raises:
        StepNotFoundError: If nothing is registered under the name.
    """
    try:
        return _STEP_REGISTRY[normalize_step_name(step_name)]
    except KeyError:
        raise StepNotFoundError(step_name, list_steps()) from None


def has_step(step_name: str) -> bool:
    return normalize_step_name(step_name) in _STEP_REGISTRY


def list_steps() -> list[str]:
    """Registered handler names, sorted."""
    return sorted(_STEP_REGISTRY)


def clear_steps() -> None:
    """Forget every handler (tests only)."""
    _STEP_REGISTRY.clear()
