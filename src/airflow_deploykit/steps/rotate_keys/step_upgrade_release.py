"""Key rotation upgrade-release step handler.

The chart references the key secrets by name, so changing their contents
does not roll the pods; after the upgrade every Airflow workload is
restarted explicitly.
"""

from __future__ import annotations

from airflow_deploykit.runbook import (
    StepDeps,
    StepInput,
    StepResult,
    register_step,
)
from airflow_deploykit.values import render_values

DEFAULT_RESTART_TARGETS = [
    "deployment/{release}-scheduler",
    "deployment/{release}-webserver",
    "statefulset/{release}-worker",
    "deployment/{release}-triggerer",
    "statefulset/{release}-triggerer",
]


def restart_workloads(step_input: StepInput, deps: StepDeps, result: StepResult) -> list[str]:
    """Restart the release's workloads and wait for each rollout.

    Targets come from the restart_targets param ({release} is substituted);
    targets that do not exist are skipped.

    Returns:
        Targets that were restarted.
    """
    release = deps.config.chart.release
    templates = step_input.params.get("restart_targets") or DEFAULT_RESTART_TARGETS
    rollout_timeout = str(step_input.params.get("rollout_timeout", "5m"))

    restarted: list[str] = []
    for template in templates:
        target = template.format(release=release)
        if not deps.kubectl.resource_exists(target):
            deps.logger.debug(f"Skipping missing workload {target}")
            continue
        deps.kubectl.rollout_restart(target)
        restarted.append(target)

    if not deps.runner.dry_run:
        for target in restarted:
            deps.kubectl.rollout_status(target, timeout=rollout_timeout)

    if restarted:
        result.add_info(f"Restarted {', '.join(restarted)}", system="rotate-keys")
    else:
        result.add_warning("No workloads found to restart", system="rotate-keys")
    return restarted


@register_step("rotate-keys-upgrade-release")
def handle_upgrade_release(step_input: StepInput, deps: StepDeps) -> StepResult:
    """Upgrade the release and restart its pods onto the new keys.

    Optional params:
        restart_targets: Workloads to restart (default: scheduler, webserver,
            worker and triggerer).
        rollout_timeout: Per-workload rollout timeout (default: 5m).
    """
    result = StepResult()
    config = deps.config

    deps.helm.upgrade(config.chart, render_values(config), install=False)
    status = deps.helm.status(config.chart)
    if status is not None:
        result.add_info(f"Release {status.name} at revision {status.revision}", system="rotate-keys")

    restarted = restart_workloads(step_input, deps, result)
    result.output = {"restarted": restarted}
    return result
