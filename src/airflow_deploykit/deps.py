"""Dependency wiring for runbook steps."""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager

import httpx

from airflow_deploykit.clients.command import CommandRunner
from airflow_deploykit.clients.docker import Docker
from airflow_deploykit.clients.helm import Helm
from airflow_deploykit.clients.kubectl import Kubectl
from airflow_deploykit.config import DeploymentConfig
from airflow_deploykit.runbook.models import StepDeps

logger = logging.getLogger(__name__)


@contextmanager
def build_deps(
    config: DeploymentConfig,
    *,
    workdir: str,
    dry_run: bool = False,
    kube_context: str | None = None,
    env: Mapping[str, str] | None = None,
    command_timeout: float = 300.0,
    http_timeout: float = 10.0,
) -> Iterator[StepDeps]:
    """Build dependencies for runbook execution.

    This is a context manager that properly cleans up resources.

    Args:
        config: Deployment configuration.
        workdir: Working directory for the run.
        dry_run: Record mutating commands instead of running them.
        kube_context: Optional kubeconfig context for helm and kubectl.
        env: Environment variables mapping (defaults to os.environ).
        command_timeout: Default timeout for external commands.
        http_timeout: HTTP client timeout in seconds.

    Yields:
        A StepDeps instance with all dependencies wired up.

    Example:
        with build_deps(config, workdir="./runs/deploy") as deps:
            result = handler(step_input, deps)
    """
    runner = CommandRunner(timeout=command_timeout, dry_run=dry_run)
    http_client = httpx.Client(timeout=http_timeout, follow_redirects=True)

    if dry_run:
        logger.info("Dry run: mutating commands will be logged, not executed")

    try:
        yield StepDeps(
            config=config,
            runner=runner,
            helm=Helm(runner=runner, kube_context=kube_context),
            kubectl=Kubectl(
                runner=runner,
                namespace=config.chart.namespace,
                context=kube_context,
            ),
            docker=Docker(runner=runner),
            http=http_client,
            logger=logging.getLogger("airflow_deploykit.step"),
            env=dict(env if env is not None else os.environ),
            workdir=workdir,
            sleep=time.sleep,
        )
    finally:
        http_client.close()
