"""Key rotation reencrypt step handler."""

from __future__ import annotations

from airflow_deploykit.runbook import (
    StepDeps,
    StepInput,
    StepResult,
    register_step,
)

REENCRYPT_COMMAND = ["airflow", "rotate-fernet-key"]


@register_step("rotate-keys-reencrypt")
def handle_reencrypt(step_input: StepInput, deps: StepDeps) -> StepResult:
    """Re-encrypt connections and variables with the new Fernet key.

    Runs `airflow rotate-fernet-key` inside the scheduler, which decrypts
    with any key in the list and encrypts with the first.

    Optional params:
        target: Workload to exec into (default: deployment/<release>-scheduler).
        container: Container name (default: scheduler).
    """
    result = StepResult()
    release = deps.config.chart.release

    target = step_input.params.get("target") or f"deployment/{release}-scheduler"
    container = step_input.params.get("container", "scheduler")

    exec_result = deps.kubectl.exec(target, REENCRYPT_COMMAND, container=container)
    if exec_result.stdout.strip():
        result.add_debug(exec_result.stdout.strip(), system="rotate-keys")

    result.add_info(f"Re-encrypted stored secrets via {target}", system="rotate-keys")
    return result
