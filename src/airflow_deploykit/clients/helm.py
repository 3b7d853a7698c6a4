"""Helm CLI wrapper for the Airflow chart release."""

from __future__ import annotations

import json
import logging
import tempfile
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from airflow_deploykit.clients.command import CommandResult, CommandRunner
from airflow_deploykit.config import ChartConfig
from airflow_deploykit.io import dump_yaml

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReleaseStatus:
    """Parsed `helm status -o json` output."""

    name: str
    namespace: str
    revision: int
    status: str
    chart: str | None = None

    @property
    def deployed(self) -> bool:
        return self.status == "deployed"


@contextmanager
def values_file(values: Mapping[str, Any]) -> Iterator[Path]:
    """Write values to a temporary YAML file for `helm -f`.

    The file is removed on exit since it may carry inline key material.
    """
    with tempfile.TemporaryDirectory(prefix="airflow-deploykit-") as tmp:
        path = Path(tmp) / "values.yaml"
        path.write_text(dump_yaml(dict(values)), encoding="utf-8")
        yield path


@dataclass
class Helm:
    """Thin wrapper over the helm binary.

    Args:
        runner: Command runner used for every invocation.
        binary: Helm executable name or path.
        kube_context: Optional kubeconfig context.
    """

    runner: CommandRunner
    binary: str = "helm"
    kube_context: str | None = None

    def _base(self) -> list[str]:
        argv = [self.binary]
        if self.kube_context:
            argv += ["--kube-context", self.kube_context]
        return argv

    def repo_add(self, name: str, url: str, *, force_update: bool = True) -> CommandResult:
        """Register a chart repository (helm repo add)."""
        argv = self._base() + ["repo", "add", name, url]
        if force_update:
            argv.append("--force-update")
        return self.runner.run(argv)

    def repo_update(self, *names: str) -> CommandResult:
        """Refresh chart repository indexes (helm repo update)."""
        return self.runner.run(self._base() + ["repo", "update", *names])

    def _release_argv(
        self,
        verb: str,
        chart: ChartConfig,
        values_path: Path | None,
        *,
        wait: bool,
        extra: list[str] | None = None,
    ) -> list[str]:
        argv = self._base() + [
            verb,
            chart.release,
            chart.reference,
            "--namespace",
            chart.namespace,
        ]
        if chart.version:
            argv += ["--version", chart.version]
        if values_path is not None:
            argv += ["-f", str(values_path)]
        if wait:
            argv += ["--wait", "--timeout", chart.timeout]
        if extra:
            argv += extra
        return argv

    def install(
        self,
        chart: ChartConfig,
        values: Mapping[str, Any] | None = None,
        *,
        create_namespace: bool = True,
        wait: bool = False,
    ) -> CommandResult:
        """Install the chart as a new release (helm install)."""
        extra = ["--create-namespace"] if create_namespace else []
        with _optional_values_file(values) as path:
            return self.runner.run(
                self._release_argv("install", chart, path, wait=wait, extra=extra),
                timeout=_helm_timeout(chart, wait),
            )

    def upgrade(
        self,
        chart: ChartConfig,
        values: Mapping[str, Any] | None = None,
        *,
        install: bool = True,
        create_namespace: bool = True,
        reuse_values: bool = False,
        wait: bool = False,
    ) -> CommandResult:
        """Upgrade the release, installing it if missing (helm upgrade --install)."""
        extra: list[str] = []
        if install:
            extra.append("--install")
            if create_namespace:
                extra.append("--create-namespace")
        if reuse_values:
            extra.append("--reuse-values")
        with _optional_values_file(values) as path:
            return self.runner.run(
                self._release_argv("upgrade", chart, path, wait=wait, extra=extra),
                timeout=_helm_timeout(chart, wait),
            )

    def status(self, chart: ChartConfig) -> ReleaseStatus | None:
        """Current release status, or None if the release does not exist."""
        result = self.runner.run(
            self._base()
            + ["status", chart.release, "--namespace", chart.namespace, "-o", "json"],
            check=False,
            mutating=False,
        )
        if not result.ok or not result.stdout.strip():
            logger.debug(f"Release {chart.release} not found in {chart.namespace}")
            return None

        data = json.loads(result.stdout)
        info = data.get("info", {})
        chart_meta = data.get("chart", {}).get("metadata", {})
        chart_name = (
            f"{chart_meta['name']}-{chart_meta['version']}"
            if "name" in chart_meta and "version" in chart_meta
            else None
        )
        return ReleaseStatus(
            name=data.get("name", chart.release),
            namespace=data.get("namespace", chart.namespace),
            revision=int(data.get("version", 0)),
            status=info.get("status", "unknown"),
            chart=chart_name,
        )

    def uninstall(self, chart: ChartConfig) -> CommandResult:
        """Remove the release (helm uninstall)."""
        return self.runner.run(
            self._base() + ["uninstall", chart.release, "--namespace", chart.namespace]
        )


@contextmanager
def _optional_values_file(values: Mapping[str, Any] | None) -> Iterator[Path | None]:
    if values is None:
        yield None
        return
    with values_file(values) as path:
        yield path


def _helm_timeout(chart: ChartConfig, wait: bool) -> float | None:
    """Subprocess timeout a little beyond helm's own --timeout."""
    if not wait:
        return None
    return parse_duration(chart.timeout) + 60


def parse_duration(value: str) -> float:
    """Parse a Go-style duration such as '10m0s' or '90s' into seconds."""
    total = 0.0
    number = ""
    units = {"h": 3600, "m": 60, "s": 1}
    for char in value.strip():
        if char.isdigit() or char == ".":
            number += char
        elif char in units and number:
            total += float(number) * units[char]
            number = ""
        else:
            raise ValueError(f"Invalid duration: {value!r}")
    if number:
        raise ValueError(f"Invalid duration (missing unit): {value!r}")
    return total
