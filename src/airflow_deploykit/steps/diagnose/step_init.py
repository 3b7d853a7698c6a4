"""Diagnose init step handler."""

from __future__ import annotations

from airflow_deploykit.runbook import (
    StepDeps,
    StepInput,
    StepResult,
    register_step,
)


@register_step("diagnose-init")
def handle_init(step_input: StepInput, deps: StepDeps) -> StepResult:
    """Confirm there is something to diagnose."""
    result = StepResult()
    chart = deps.config.chart

    if not deps.kubectl.namespace_exists(chart.namespace):
        result.add_error(f"Namespace {chart.namespace} does not exist", system="diagnose")
        return result

    status = deps.helm.status(chart)
    if status is None:
        result.add_warning(
            f"Release {chart.release} not found; checking cluster resources anyway",
            system="diagnose",
            command=f"helm list -n {chart.namespace}",
        )
    else:
        result.add_info(
            f"Release {status.name} revision {status.revision}: {status.status}",
            system="diagnose",
        )

    result.context_updates["diagnose"] = {
        "release": chart.release,
        "release_status": status.status if status else None,
        "findings": [],
    }
    return result
