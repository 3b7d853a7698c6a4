"""Key rotation init step handler."""

from __future__ import annotations

from airflow_deploykit.config import KeyStrategy
from airflow_deploykit.runbook import (
    StepDeps,
    StepInput,
    StepResult,
    register_step,
)


@register_step("rotate-keys-init")
def handle_init(step_input: StepInput, deps: StepDeps) -> StepResult:
    """Check that the release exists and its keys are held in secrets.

    Inline keys live in the values file; rotating them is a config edit
    followed by a plain deploy, not this runbook.
    """
    result = StepResult()
    config = deps.config

    if config.keys.strategy != KeyStrategy.SECRET:
        result.add_error(
            "Key rotation requires keys.strategy 'secret'; "
            "edit the inline keys and re-deploy instead",
            system="rotate-keys",
        )
        return result

    status = deps.helm.status(config.chart)
    if status is None:
        result.add_error(
            f"Release {config.chart.release} not found in namespace {config.chart.namespace}",
            system="rotate-keys",
            command=f"helm list -n {config.chart.namespace}",
        )
        return result

    if not deps.kubectl.secret_exists(config.keys.fernet_secret_name):
        result.add_error(
            f"Fernet key secret '{config.keys.fernet_secret_name}' does not exist",
            system="rotate-keys",
        )
        return result

    result.context_updates["rotate"] = {
        "release": status.name,
        "revision_before": status.revision,
        "rotate_webserver_key": bool(step_input.params.get("rotate_webserver_key", True)),
    }
    result.add_info(
        f"Rotating keys for release {status.name} (revision {status.revision})",
        system="rotate-keys",
    )
    return result
