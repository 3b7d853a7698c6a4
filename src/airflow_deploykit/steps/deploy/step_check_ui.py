"""Deploy check-ui step handler.

Probes the Airflow web UI through the webserver service. An unreachable
UI is a warning: the service may sit behind a firewall the deploy host
cannot pass, in which case port-forwarding is the way in.
"""

from __future__ import annotations

from airflow_deploykit.clients.webui import HEALTH_PATH, check_health
from airflow_deploykit.diagnose import probe_urls, webserver_service_name
from airflow_deploykit.runbook import (
    StepDeps,
    StepInput,
    StepResult,
    register_step,
)


@register_step("deploy-check-ui")
def handle_check_ui(step_input: StepInput, deps: StepDeps) -> StepResult:
    """Probe /health on every address the service should answer on.

    Optional params:
        timeout_seconds: Per-probe timeout (default: 5).
    """
    result = StepResult()
    config = deps.config
    name = webserver_service_name(config)
    port_forward = (
        f"kubectl -n {deps.kubectl.namespace} port-forward svc/{name} "
        f"{config.service.port}:{config.service.port}"
    )

    if deps.runner.dry_run:
        result.add_info("Dry run: skipping UI probe", system="webui")
        return result

    service = deps.kubectl.get_service(name)
    if service is None:
        result.add_error(f"Service {name} not found", system="webui")
        return result

    urls = probe_urls(deps.kubectl, service)
    if not urls:
        result.add_info(
            f"{service.type} service {name} is not exposed outside the cluster",
            system="webui",
            command=port_forward,
        )
        return result

    timeout = float(step_input.params.get("timeout_seconds", 5.0))
    for url in urls:
        health = check_health(deps.http, url, timeout=timeout)
        if health.healthy:
            result.add_info(f"Web UI healthy at {url}", system="webui")
            result.context_updates["ui"] = {"url": url.removesuffix(HEALTH_PATH)}
            result.output = {"url": url, "components": health.components}
            return result
        if health.reachable:
            result.add_warning(
                f"Web UI at {url} reports unhealthy: "
                f"{', '.join(health.unhealthy_components) or health.status_code}",
                system="webui",
            )
            return result

    result.add_warning(
        f"Web UI unreachable at {', '.join(urls)}; check firewall rules or port-forward",
        system="webui",
        command=port_forward,
    )
    return result
