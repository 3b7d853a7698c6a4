"""Testing utilities for step handlers and tool clients.

Provides helpers to exercise steps without a cluster:
- FakeCommandRunner: CommandRunner that answers from scripted responses
- make_deps(): Wire StepDeps around a FakeCommandRunner
- make_step_input(): Build a StepInput with sensible defaults
- chain_steps(): Run handlers in sequence, carrying vars between them
- pod_item() / service_item() / node_item() / items_json(): kubectl -o json payloads

Usage:
    from airflow_deploykit.testing import FakeCommandRunner, make_deps, make_step_input

    def test_install_chart_upgrades_release(tmp_path):
        runner = FakeCommandRunner()
        runner.respond(["helm", "status"], returncode=1, stderr="release: not found")
        deps = make_deps(runner, workdir=tmp_path)

        result = handle_install_chart(make_step_input("install-chart"), deps)

        assert runner.called(["helm", "upgrade", "airflow"])
"""

from __future__ import annotations

import base64
import json
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx

from airflow_deploykit.clients.command import CommandResult, CommandRunner, format_command
from airflow_deploykit.clients.docker import Docker
from airflow_deploykit.clients.helm import Helm
from airflow_deploykit.clients.kubectl import Kubectl
from airflow_deploykit.config import DeploymentConfig
from airflow_deploykit.errors import CommandError
from airflow_deploykit.runbook.models import StepDeps, StepInput, StepResult

logger = logging.getLogger(__name__)


def _contains(argv: Sequence[str], tokens: Sequence[str]) -> bool:
    """True if tokens appear in argv in order (not necessarily adjacent)."""
    it = iter(argv)
    return all(any(arg == token for arg in it) for token in tokens)


@dataclass
class ScriptedResponse:
    """Canned result for commands containing the given tokens."""

    tokens: tuple[str, ...]
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    times: int | None = None


@dataclass
class FakeCommandRunner(CommandRunner):
    """CommandRunner that never spawns processes.

    Responses are matched in registration order; the first whose tokens
    all appear in the argv (in order) wins. Unmatched commands succeed
    with empty output.
    Text piped to a command is kept in stdin as (argv, text) pairs.
    """

    responses: list[ScriptedResponse] = field(default_factory=list)
    stdin: list[tuple[tuple[str, ...], str]] = field(default_factory=list)

    def respond(
        self,
        tokens: Sequence[str],
        *,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        times: int | None = None,
    ) -> FakeCommandRunner:
        """Register a response; times limits how often it matches."""
        self.responses.append(
            ScriptedResponse(
                tokens=tuple(tokens),
                returncode=returncode,
                stdout=stdout,
                stderr=stderr,
                times=times,
            )
        )
        return self

    def _match(self, argv: tuple[str, ...]) -> ScriptedResponse | None:
        for response in self.responses:
            if response.times is not None and response.times <= 0:
                continue
            if _contains(argv, response.tokens):
                if response.times is not None:
                    response.times -= 1
                return response
        return None

    def run(
        self,
        argv: Sequence[str],
        *,
        check: bool = True,
        timeout: float | None = None,
        input_text: str | None = None,
        mutating: bool = True,
    ) -> CommandResult:
        argv = tuple(str(a) for a in argv)
        if input_text is not None:
            self.stdin.append((argv, input_text))
        if self.dry_run and mutating:
            result = CommandResult(argv=argv, returncode=0, dry_run=True)
            self.history.append(result)
            return result

        response = self._match(argv)
        result = CommandResult(
            argv=argv,
            returncode=response.returncode if response else 0,
            stdout=response.stdout if response else "",
            stderr=response.stderr if response else "",
        )
        self.history.append(result)
        logger.debug(f"[fake] {format_command(argv)} -> {result.returncode}")

        if check and not result.ok:
            raise CommandError(
                f"Command failed: {result.stderr.strip() or format_command(argv)}",
                command=format_command(argv),
                returncode=result.returncode,
                stderr=result.stderr,
            )
        return result

    def run_interactive(self, argv: Sequence[str]) -> int:
        return self.run(argv, check=False).returncode

    @property
    def commands(self) -> list[tuple[str, ...]]:
        """Every argv run (or recorded in dry-run), in order."""
        return [r.argv for r in self.history]

    def called(self, tokens: Sequence[str]) -> bool:
        """True if any executed command contains tokens in order."""
        return any(_contains(argv, tokens) for argv in self.commands)

    def calls(self, tokens: Sequence[str]) -> list[tuple[str, ...]]:
        """Executed commands containing tokens in order."""
        return [argv for argv in self.commands if _contains(argv, tokens)]


def make_step_input(
    step_name: str = "test-step",
    *,
    params: dict[str, Any] | None = None,
    vars: dict[str, Any] | None = None,
    attempt: int = 0,
    runbook_name: str = "test-runbook",
    runbook_result: str | None = None,
) -> StepInput:
    """Create a StepInput for calling a handler directly."""
    return StepInput(
        step_name=step_name,
        run_id="test-run",
        runbook_name=runbook_name,
        params=params or {},
        vars=vars or {},
        attempt=attempt,
        runbook_result=runbook_result,
    )


def chain_steps(
    *,
    steps: list[tuple[Callable[[StepInput, StepDeps], StepResult], dict[str, Any]]],
    deps: StepDeps,
    initial_vars: dict[str, Any] | None = None,
) -> tuple[list[StepResult], dict[str, Any]]:
    """Chain multiple handlers, passing vars between them.

    Useful for testing multi-step runbook behavior without the runner.

    Args:
        steps: List of (handler, params) tuples.
        deps: Dependencies (shared across all steps).
        initial_vars: Starting vars (defaults to empty).

    Returns:
        Tuple of (list_of_results, final_vars).

    Example:
        results, final_vars = chain_steps(
            steps=[
                (handle_init, {}),
                (handle_create_secrets, {"replace_secrets": False}),
            ],
            deps=deps,
        )
    """
    current = dict(initial_vars or {})
    results: list[StepResult] = []

    for handler, params in steps:
        result = handler(make_step_input(params=params, vars=current), deps)
        current.update(result.context_updates)
        results.append(result)

    return results, current


def make_deps(
    runner: CommandRunner,
    *,
    config: DeploymentConfig | None = None,
    workdir: str | Path = ".",
    http: httpx.Client | None = None,
    env: Mapping[str, str] | None = None,
) -> StepDeps:
    """StepDeps with real tool clients on top of the given runner.

    Without an explicit http client, every HTTP request gets a 503.
    """
    config = config or DeploymentConfig()
    if http is None:
        http = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
    return StepDeps(
        config=config,
        runner=runner,
        helm=Helm(runner=runner),
        kubectl=Kubectl(runner=runner, namespace=config.chart.namespace),
        docker=Docker(runner=runner),
        http=http,
        logger=logging.getLogger("test"),
        env=dict(env or {}),
        workdir=str(workdir),
        sleep=lambda _seconds: None,
    )


def container_status(
    name: str,
    *,
    ready: bool = True,
    restarts: int = 0,
    state: str = "running",
    reason: str | None = None,
) -> dict[str, Any]:
    """One entry of a pod's containerStatuses."""
    detail: dict[str, Any] = {}
    if reason:
        detail["reason"] = reason
    return {
        "name": name,
        "ready": ready,
        "restartCount": restarts,
        "state": {state: detail},
    }


def pod_item(
    name: str,
    *,
    phase: str = "Running",
    component: str | None = None,
    release: str = "airflow",
    containers: list[dict[str, Any]] | None = None,
    init_containers: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """A pod as returned by kubectl get pods -o json."""
    labels = {"release": release}
    if component:
        labels["component"] = component
    if containers is None:
        containers = [container_status(component or "main", ready=phase == "Running")]
    return {
        "metadata": {"name": name, "labels": labels},
        "status": {
            "phase": phase,
            "containerStatuses": containers,
            "initContainerStatuses": init_containers or [],
        },
    }


def service_item(
    name: str,
    *,
    type: str = "NodePort",
    port: int = 8080,
    node_port: int | None = 30080,
    port_name: str = "airflow-ui",
    cluster_ip: str = "10.96.0.10",
    ingress_ips: list[str] | None = None,
) -> dict[str, Any]:
    """A service as returned by kubectl get service NAME -o json."""
    port_spec: dict[str, Any] = {"name": port_name, "port": port}
    if node_port is not None:
        port_spec["nodePort"] = node_port
    return {
        "metadata": {"name": name},
        "spec": {"type": type, "clusterIP": cluster_ip, "ports": [port_spec]},
        "status": {"loadBalancer": {"ingress": [{"ip": ip} for ip in ingress_ips or []]}},
    }


def node_item(
    name: str,
    *,
    ready: bool = True,
    internal_ip: str = "192.168.1.10",
    external_ip: str | None = None,
) -> dict[str, Any]:
    """A node as returned by kubectl get nodes -o json."""
    addresses = [{"type": "InternalIP", "address": internal_ip}]
    if external_ip:
        addresses.append({"type": "ExternalIP", "address": external_ip})
    return {
        "metadata": {"name": name},
        "status": {
            "conditions": [{"type": "Ready", "status": "True" if ready else "False"}],
            "addresses": addresses,
        },
    }


def secret_item(name: str, data: Mapping[str, str]) -> dict[str, Any]:
    """A secret with base64-encoded data, as kubectl returns it."""
    return {
        "metadata": {"name": name},
        "data": {
            key: base64.b64encode(value.encode("utf-8")).decode("ascii")
            for key, value in data.items()
        },
    }


def items_json(*items: dict[str, Any]) -> str:
    """Wrap items in a kubectl List payload."""
    return json.dumps({"kind": "List", "items": list(items)})
