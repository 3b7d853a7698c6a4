"""Key rotation finalize step handler."""

from __future__ import annotations

from pathlib import Path

from airflow_deploykit.io import write_json
from airflow_deploykit.runbook import (
    StepDeps,
    StepInput,
    StepResult,
    register_step,
)


@register_step("rotate-keys-finalize")
def handle_finalize(step_input: StepInput, deps: StepDeps) -> StepResult:
    """Summarize the rotation and write rotate-keys-report.json.

    This step always runs, even if previous steps failed.
    """
    result = StepResult()
    rotate_vars = step_input.vars.get("rotate", {})

    summary = {
        "runbook_result": step_input.runbook_result,
        "dry_run": deps.runner.dry_run,
        "release": deps.config.chart.release,
        "old_fernet_fingerprint": rotate_vars.get("old_fernet_fingerprint"),
        "new_fernet_fingerprint": rotate_vars.get("new_fernet_fingerprint"),
        "webserver_key_rotated": "webserver_fingerprint" in rotate_vars,
    }

    report_path = write_json(Path(deps.workdir) / "rotate-keys-report.json", summary)
    result.add_info(f"Report written to: {report_path}", system="rotate-keys")

    if step_input.runbook_result != "Succeeded" and summary["new_fernet_fingerprint"]:
        # Secret holds "new,old"; both keys still decrypt
        result.add_warning(
            "Rotation stopped after the secret was updated; finish it by running "
            "'airflow rotate-fernet-key' in the scheduler, then dropping the old key",
            system="rotate-keys",
            command=(
                f"kubectl -n {deps.config.chart.namespace} exec "
                f"deployment/{deps.config.chart.release}-scheduler -c scheduler -- "
                "airflow rotate-fernet-key"
            ),
        )

    result.output = summary
    return result
