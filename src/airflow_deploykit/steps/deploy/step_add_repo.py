"""Deploy add-repo step handler."""

from __future__ import annotations

from airflow_deploykit.runbook import (
    StepDeps,
    StepInput,
    StepResult,
    register_step,
)


@register_step("deploy-add-repo")
def handle_add_repo(step_input: StepInput, deps: StepDeps) -> StepResult:
    """Add the Airflow chart repository and refresh its index."""
    result = StepResult()
    chart = deps.config.chart

    deps.helm.repo_add(chart.repo_name, chart.repo_url)
    deps.helm.repo_update(chart.repo_name)

    result.add_info(f"Chart repository {chart.repo_name} -> {chart.repo_url}", system="helm")
    return result
