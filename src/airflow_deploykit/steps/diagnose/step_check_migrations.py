"""Diagnose check-migrations step handler."""

from __future__ import annotations

from airflow_deploykit.diagnose import check_migrations
from airflow_deploykit.runbook import (
    StepDeps,
    StepInput,
    StepResult,
    register_step,
)
from airflow_deploykit.steps.diagnose.findings import run_check


@register_step("diagnose-check-migrations")
def handle_check_migrations(step_input: StepInput, deps: StepDeps) -> StepResult:
    """Inspect the migration job pods, their logs and the metadata secret.

    Optional params:
        tail: Log lines to scan (default: 50).
    """
    tail = int(step_input.params.get("tail", 50))
    return run_check(
        step_input, "migrations", lambda: check_migrations(deps.kubectl, deps.config, tail=tail)
    )
