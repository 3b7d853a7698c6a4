"""Diagnose finalize step handler.

Summarizes findings and sets the final runbook status.
"""

from __future__ import annotations

from pathlib import Path

from airflow_deploykit.io import write_json
from airflow_deploykit.runbook import (
    StepDeps,
    StepInput,
    StepResult,
    register_step,
)


@register_step("diagnose-finalize")
def handle_finalize(step_input: StepInput, deps: StepDeps) -> StepResult:
    """Write diagnose-report.json and fail the run if any check found errors.

    This step always runs, even if previous steps failed.
    """
    result = StepResult()
    findings = step_input.vars.get("diagnose", {}).get("findings", [])

    counts = {"ok": 0, "warning": 0, "error": 0}
    for finding in findings:
        level = finding.get("level", "error")
        counts[level] = counts.get(level, 0) + 1

    summary = {
        "runbook_result": step_input.runbook_result,
        "release": deps.config.chart.release,
        "namespace": deps.config.chart.namespace,
        "counts": counts,
        "findings": findings,
        "overall_status": "healthy" if counts["error"] == 0 else "unhealthy",
    }

    report_path = write_json(Path(deps.workdir) / "diagnose-report.json", summary)
    result.add_info(f"Report written to: {report_path}", system="diagnose")

    if counts["error"] == 0:
        result.add_info(
            f"Diagnosis complete: no errors ({counts['warning']} warnings)",
            system="diagnose",
        )
    else:
        result.add_warning(
            f"Diagnosis found {counts['error']} error(s) and {counts['warning']} warning(s)",
            system="diagnose",
        )
        # Set flow control to mark the runbook as failed
        result.flow_control = {"mark_failed": True}

    result.output = summary
    return result
