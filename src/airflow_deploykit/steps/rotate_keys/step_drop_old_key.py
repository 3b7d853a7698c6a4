"""Key rotation drop-old-key step handler."""

from __future__ import annotations

from airflow_deploykit.errors import DeployError
from airflow_deploykit.keys import fingerprint, primary_fernet_key, split_fernet_keys
from airflow_deploykit.runbook import (
    StepDeps,
    StepInput,
    StepResult,
    register_step,
)
from airflow_deploykit.steps.rotate_keys.step_upgrade_release import restart_workloads
from airflow_deploykit.values import FERNET_SECRET_KEY


@register_step("rotate-keys-drop-old-key")
def handle_drop_old_key(step_input: StepInput, deps: StepDeps) -> StepResult:
    """Keep only the new Fernet key and restart the workloads again."""
    result = StepResult()
    secret_name = deps.config.keys.fernet_secret_name

    current = deps.kubectl.get_secret_data(secret_name).get(FERNET_SECRET_KEY)
    if not current:
        raise DeployError(
            f"No '{FERNET_SECRET_KEY}' in secret {secret_name}",
            context={"secret": secret_name},
        )

    if len(split_fernet_keys(current)) == 1:
        result.add_info("Secret already holds a single Fernet key", system="rotate-keys")
        return result

    new_key = primary_fernet_key(current)
    expected = step_input.vars.get("rotate", {}).get("new_fernet_fingerprint")
    if expected and fingerprint(new_key) != expected and not deps.runner.dry_run:
        raise DeployError(
            "Primary Fernet key changed since update-secrets; refusing to drop keys",
            context={"secret": secret_name},
        )

    deps.kubectl.create_secret(secret_name, {FERNET_SECRET_KEY: new_key}, replace=True)
    result.add_info(f"Dropped old Fernet key(s) from {secret_name}", system="rotate-keys")

    restarted = restart_workloads(step_input, deps, result)
    result.output = {"restarted": restarted}
    return result
