"""YAML runbook definitions.

A runbook is a named set of steps with dependencies. Each step resolves to
a registered handler named ``<handler_prefix>-<step name>``; its template
decides whether the runner retries it and whether it runs after a failure.

Bundled runbooks live in ``airflow_deploykit/definitions``.
"""

from __future__ import annotations

from collections import deque
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

DEFINITIONS_DIR = Path(__file__).resolve().parent.parent / "definitions"


class StepTemplate(str, Enum):
    """How the runner treats a step.

    init and no-retry steps get a single attempt; action steps get the
    runbook's default_retries; finalize steps run last, even after a failure,
    and see the run status in StepInput.runbook_result.
    """

    INIT = "init"
    ACTION = "action"
    FINALIZE = "finalize"
    NO_RETRY = "no-retry"


class RunbookStep(BaseModel):
    """One step entry of a runbook YAML.

    when_flow_control is a single ``key == value`` or ``key != value`` test
    against flags set by earlier steps, e.g. ``push_image == true``.
    """

    name: str
    depends: list[str] = Field(default_factory=list)
    template: StepTemplate = Field(default=StepTemplate.ACTION)
    params: dict[str, Any] = Field(default_factory=dict)
    description: str = ""
    when_flow_control: str | None = None


class RunbookDefinition(BaseModel):
    """A parsed runbook YAML file."""

    name: str
    description: str = ""
    handler_prefix: str | None = None
    steps: list[RunbookStep] = Field(default_factory=list)
    default_retries: int = 3
    retry_delay_seconds: float = 1.0

    @classmethod
    def from_yaml(cls, path: str | Path) -> RunbookDefinition:
        """Parse a runbook file.

        Raises:
            FileNotFoundError: If the file does not exist.
            ValueError: If it is not a YAML mapping or fails validation.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Runbook file not found: {path}")

        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Runbook file must contain a YAML object: {path}")
        return cls.model_validate(data)

    def get_step_handler_name(self, step: RunbookStep) -> str:
        """Registry name of the handler for a step (deploy + init -> deploy-init)."""
        return f"{self.handler_prefix}-{step.name}" if self.handler_prefix else step.name

    def get_step_by_name(self, name: str) -> RunbookStep | None:
        return next((step for step in self.steps if step.name == name), None)

    def get_execution_order(self) -> list[RunbookStep]:
        """Steps with every dependency ahead of its dependents.

        Kahn's algorithm; among steps that become runnable together the
        alphabetically first goes first, so the order is stable.

        Raises:
            ValueError: On a dependency cycle.
        """
        by_name = {step.name: step for step in self.steps}
        waiting_on = {step.name: len(step.depends) for step in self.steps}
        unblocks: dict[str, list[str]] = {name: [] for name in by_name}
        for step in self.steps:
            for dep in step.depends:
                unblocks.setdefault(dep, []).append(step.name)

        ready = deque(sorted(name for name, count in waiting_on.items() if count == 0))
        ordered: list[RunbookStep] = []
        while ready:
            name = ready.popleft()
            ordered.append(by_name[name])
            released = []
            for dependent in unblocks.get(name, []):
                waiting_on[dependent] -= 1
                if waiting_on[dependent] == 0:
                    released.append(dependent)
            ready.extend(sorted(released))

        if len(ordered) != len(self.steps):
            placed = {step.name for step in ordered}
            stuck = [step.name for step in self.steps if step.name not in placed]
            raise ValueError(f"Circular dependency detected among steps: {stuck}")
        return ordered

    def _ordered(self, *, finalize: bool) -> list[RunbookStep]:
        return [
            step
            for step in self.get_execution_order()
            if (step.template == StepTemplate.FINALIZE) == finalize
        ]

    def get_non_finalize_steps(self) -> list[RunbookStep]:
        return self._ordered(finalize=False)

    def get_finalize_steps(self) -> list[RunbookStep]:
        return self._ordered(finalize=True)

    def validate_dependencies(self) -> list[str]:
        """Duplicate step names and dependencies on steps that do not exist."""
        errors: list[str] = []
        names: set[str] = set()
        for step in self.steps:
            if step.name in names:
                errors.append(f"Duplicate step name '{step.name}'")
            names.add(step.name)

        errors.extend(
            f"Step '{step.name}' depends on unknown step '{dep}'"
            for step in self.steps
            for dep in step.depends
            if dep not in names
        )
        return errors

def list_runbooks() -> list[str]:
    """Names of the bundled runbooks."""
    return sorted(p.stem for p in DEFINITIONS_DIR.glob("*.yaml"))


def resolve_runbook(name_or_path: str | Path) -> Path:
    """Resolve a bundled runbook name or a path to a runbook YAML file.

    Raises:
        FileNotFoundError: If neither a file nor a bundled runbook matches.
    """
    path = Path(name_or_path)
    if path.suffix in (".yaml", ".yml") or path.exists():
        if not path.exists():
            raise FileNotFoundError(f"Runbook file not found: {path}")
        return path

    bundled = DEFINITIONS_DIR / f"{name_or_path}.yaml"
    if not bundled.exists():
        available = ", ".join(list_runbooks()) or "(none)"
        raise FileNotFoundError(f"Unknown runbook '{name_or_path}'. Available: {available}")
    return bundled


def load_runbook(name_or_path: str | Path) -> RunbookDefinition:
    """Load a bundled runbook by name, or any runbook YAML by path."""
    return RunbookDefinition.from_yaml(resolve_runbook(name_or_path))
