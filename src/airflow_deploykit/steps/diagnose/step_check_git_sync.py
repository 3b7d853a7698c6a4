"""Diagnose check-git-sync step handler."""

from __future__ import annotations

from airflow_deploykit.diagnose import check_git_sync
from airflow_deploykit.runbook import (
    StepDeps,
    StepInput,
    StepResult,
    register_step,
)
from airflow_deploykit.steps.diagnose.findings import run_check


@register_step("diagnose-check-git-sync")
def handle_check_git_sync(step_input: StepInput, deps: StepDeps) -> StepResult:
    """Inspect git-sync sidecars, their logs and the Git secrets.

    Optional params:
        tail: Log lines to scan (default: 50).
    """
    tail = int(step_input.params.get("tail", 50))
    return run_check(
        step_input, "git-sync", lambda: check_git_sync(deps.kubectl, deps.config, tail=tail)
    )
