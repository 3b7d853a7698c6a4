"""Publish-image finalize step handler."""

from __future__ import annotations

from pathlib import Path

from airflow_deploykit.io import write_json
from airflow_deploykit.runbook import (
    StepDeps,
    StepInput,
    StepResult,
    register_step,
)


@register_step("publish-image-finalize")
def handle_finalize(step_input: StepInput, deps: StepDeps) -> StepResult:
    """Write publish-image-report.json.

    This step always runs, even if previous steps failed.
    """
    result = StepResult()
    image_vars = step_input.vars.get("image", {})

    summary = {
        "runbook_result": step_input.runbook_result,
        "dry_run": deps.runner.dry_run,
        "image": deps.config.image.local_ref,
        "pushed": image_vars.get("pushed", []),
        "saved": image_vars.get("saved"),
    }

    report_path = write_json(Path(deps.workdir) / "publish-image-report.json", summary)
    result.add_info(f"Report written to: {report_path}", system="image")

    result.output = summary
    return result
