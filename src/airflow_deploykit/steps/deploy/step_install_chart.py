"""Deploy install-chart step handler.

Renders chart values from the config, validates them, and installs or
upgrades the release with helm upgrade --install.
"""

from __future__ import annotations

from pathlib import Path

from airflow_deploykit.io import write_yaml
from airflow_deploykit.runbook import (
    StepDeps,
    StepInput,
    StepResult,
    register_step,
)
from airflow_deploykit.schema import validate_values
from airflow_deploykit.values import redact_values, render_values


@register_step("deploy-install-chart")
def handle_install_chart(step_input: StepInput, deps: StepDeps) -> StepResult:
    """Install or upgrade the Airflow release.

    Optional params:
        helm_wait: Pass --wait to helm (default: false, pods are polled later).
    """
    result = StepResult()
    config = deps.config
    chart = config.chart

    values = render_values(config)
    validate_values(values)

    values_path = write_yaml(Path(deps.workdir) / "values.yaml", redact_values(values))
    result.add_debug(f"Rendered values written to {values_path}", system="helm")

    existing = deps.helm.status(chart)
    action = "Upgrading" if existing else "Installing"
    result.add_info(f"{action} release {chart.release} from {chart.reference}", system="helm")

    deps.helm.upgrade(
        chart,
        values,
        install=True,
        create_namespace=True,
        wait=bool(step_input.params.get("helm_wait", False)),
    )

    status = deps.helm.status(chart)
    deploy_vars = dict(step_input.vars.get("deploy", {}))
    if status is not None:
        deploy_vars["revision"] = status.revision
        deploy_vars["release_status"] = status.status
        result.add_info(
            f"Release {status.name} revision {status.revision}: {status.status}",
            system="helm",
        )
        if not status.deployed and not deps.runner.dry_run:
            result.add_warning(f"Release status is {status.status}", system="helm")

    result.context_updates["deploy"] = deploy_vars
    result.output = {"release": chart.release, "values_file": str(values_path)}
    return result
