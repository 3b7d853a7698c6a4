"""Deploy finalize step handler.

Summarizes the run and writes deploy-report.json.
"""

from __future__ import annotations

from pathlib import Path

from airflow_deploykit.diagnose import webserver_service_name
from airflow_deploykit.io import write_json
from airflow_deploykit.runbook import (
    StepDeps,
    StepInput,
    StepResult,
    register_step,
)


@register_step("deploy-finalize")
def handle_finalize(step_input: StepInput, deps: StepDeps) -> StepResult:
    """Finalize the deploy runbook.

    This step always runs, even if previous steps failed.
    """
    result = StepResult()
    config = deps.config

    image_vars = step_input.vars.get("image", {})
    deploy_vars = step_input.vars.get("deploy", {})
    secrets_vars = step_input.vars.get("secrets", {})
    ui_vars = step_input.vars.get("ui", {})

    service = webserver_service_name(config)
    summary = {
        "runbook_result": step_input.runbook_result,
        "dry_run": deps.runner.dry_run,
        "image": image_vars.get("deployed_ref", config.image_ref()),
        "pushed": image_vars.get("pushed", []),
        "release": config.chart.release,
        "namespace": config.chart.namespace,
        "revision": deploy_vars.get("revision"),
        "release_status": deploy_vars.get("release_status"),
        "secrets_written": secrets_vars.get("written", []),
        "ui_url": ui_vars.get("url"),
        "port_forward": (
            f"kubectl -n {config.chart.namespace} port-forward svc/{service} "
            f"{config.service.port}:{config.service.port}"
        ),
    }

    report_path = write_json(Path(deps.workdir) / "deploy-report.json", summary)
    result.add_info(f"Report written to: {report_path}", system="deploy")

    if step_input.runbook_result == "Succeeded":
        where = summary["ui_url"] or f"'{summary['port_forward']}'"
        result.add_info(f"Airflow {config.chart.release} deployed; UI: {where}", system="deploy")
    else:
        result.add_warning(
            f"Deploy did not complete ({step_input.runbook_result}); "
            "run 'airflow-deploy diagnose' for details",
            system="deploy",
        )

    result.output = summary
    return result
