"""Deploy create-namespace step handler."""

from __future__ import annotations

from airflow_deploykit.runbook import (
    StepDeps,
    StepInput,
    StepResult,
    register_step,
)


@register_step("deploy-create-namespace")
def handle_create_namespace(step_input: StepInput, deps: StepDeps) -> StepResult:
    """Create the deployment namespace if it does not exist."""
    result = StepResult()
    namespace = deps.config.chart.namespace

    created = deps.kubectl.create_namespace(namespace)
    if created:
        result.add_info(f"Created namespace {namespace}", system="kubectl")
    else:
        result.add_info(f"Namespace {namespace} already exists", system="kubectl")

    result.output = {"namespace": namespace, "created": created}
    return result
