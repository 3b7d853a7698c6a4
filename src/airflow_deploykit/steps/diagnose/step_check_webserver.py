"""Diagnose check-webserver step handler."""

from __future__ import annotations

from airflow_deploykit.diagnose import check_webserver
from airflow_deploykit.runbook import (
    StepDeps,
    StepInput,
    StepResult,
    register_step,
)
from airflow_deploykit.steps.diagnose.findings import run_check


@register_step("diagnose-check-webserver")
def handle_check_webserver(step_input: StepInput, deps: StepDeps) -> StepResult:
    """Compare the webserver service to the config and probe /health.

    Optional params:
        timeout_seconds: Per-probe timeout (default: 5).
    """
    timeout = float(step_input.params.get("timeout_seconds", 5.0))
    return run_check(
        step_input,
        "webserver",
        lambda: check_webserver(deps.kubectl, deps.http, deps.config, timeout=timeout),
    )
