"""Deploy wait-for-pods step handler.

Polls the release's pods until every one is ready (or, for the migration
job, completed).
"""

from __future__ import annotations

import math

from airflow_deploykit.clients.kubectl import PodInfo, retried_job_pods
from airflow_deploykit.runbook import (
    StepDeps,
    StepInput,
    StepResult,
    register_step,
)

DEFAULT_TIMEOUT_SECONDS = 600
DEFAULT_POLL_INTERVAL_SECONDS = 10


def _describe(pod: PodInfo) -> str:
    waiting = [c.reason for c in pod.all_containers() if c.reason and not c.ready]
    detail = f" ({', '.join(sorted(set(waiting)))})" if waiting else ""
    return f"{pod.name}: {pod.phase}{detail}, {pod.restarts} restarts"


def pending_pods(pods: list[PodInfo]) -> list[PodInfo]:
    """Pods that are neither ready nor completed.

    A failed job attempt is ignored once a retry of the same job succeeded.
    """
    retried = retried_job_pods(pods)
    return [pod for pod in pods if not pod.settled and pod.name not in retried]


@register_step("deploy-wait-for-pods")
def handle_wait_for_pods(step_input: StepInput, deps: StepDeps) -> StepResult:
    """Wait for all pods of the release to settle.

    Optional params:
        timeout_seconds: Give up after this long (default: 600).
        poll_interval_seconds: Delay between polls (default: 10).
    """
    result = StepResult()
    release = deps.config.chart.release

    if deps.runner.dry_run:
        result.add_info("Dry run: not waiting for pods", system="kubectl")
        return result

    timeout = float(step_input.params.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS))
    interval = float(step_input.params.get("poll_interval_seconds", DEFAULT_POLL_INTERVAL_SECONDS))
    polls = max(1, math.ceil(timeout / interval)) if interval > 0 else 1

    pods: list[PodInfo] = []
    pending: list[PodInfo] = []
    for poll in range(polls):
        pods = deps.kubectl.get_pods(f"release={release}")
        pending = pending_pods(pods)
        if pods and not pending:
            break
        deps.logger.info(
            f"Waiting for {len(pending)}/{len(pods)} pods of {release} "
            f"(poll {poll + 1}/{polls})"
        )
        if poll < polls - 1:
            deps.sleep(interval)

    result.output = {
        "pods": {pod.name: {"phase": pod.phase, "ready": pod.ready} for pod in pods},
    }

    if not pods:
        result.add_error(
            f"No pods found for release {release}",
            system="kubectl",
            command=f"kubectl -n {deps.kubectl.namespace} get pods",
        )
        return result

    if pending:
        for pod in pending:
            result.add_warning(_describe(pod), system="kubectl")
        result.add_error(
            f"{len(pending)} pod(s) not ready after {timeout:.0f}s",
            system="kubectl",
            command="airflow-deploy diagnose",
        )
        return result

    result.add_info(f"All {len(pods)} pods of {release} are ready", system="kubectl")
    return result
