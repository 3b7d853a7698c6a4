"""kubectl wrapper with parsed pod, node and service views."""

from __future__ import annotations

import base64
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from airflow_deploykit.clients.command import CommandResult, CommandRunner
from airflow_deploykit.clients.helm import parse_duration

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContainerInfo:
    """Status of one container in a pod."""

    name: str
    ready: bool
    restart_count: int
    state: str
    reason: str | None = None

    @classmethod
    def from_status(cls, status: Mapping[str, Any]) -> ContainerInfo:
        state_map = status.get("state") or {}
        state = next(iter(state_map), "unknown")
        reason = (state_map.get(state) or {}).get("reason")
        return cls(
            name=status.get("name", ""),
            ready=bool(status.get("ready", False)),
            restart_count=int(status.get("restartCount", 0)),
            state=state,
            reason=reason,
        )


@dataclass(frozen=True)
class PodInfo:
    """Parsed view of a pod from `kubectl get pods -o json`.

    Attributes:
        name: Pod name.
        phase: Pod phase (Pending, Running, Succeeded, Failed, Unknown).
        labels: Pod labels.
        containers: Statuses of regular containers.
        init_containers: Statuses of init containers.
    """

    name: str
    phase: str
    labels: dict[str, str] = field(default_factory=dict)
    containers: tuple[ContainerInfo, ...] = ()
    init_containers: tuple[ContainerInfo, ...] = ()

    @classmethod
    def from_item(cls, item: Mapping[str, Any]) -> PodInfo:
        metadata = item.get("metadata", {})
        status = item.get("status", {})
        return cls(
            name=metadata.get("name", ""),
            phase=status.get("phase", "Unknown"),
            labels=dict(metadata.get("labels") or {}),
            containers=tuple(
                ContainerInfo.from_status(s) for s in status.get("containerStatuses") or []
            ),
            init_containers=tuple(
                ContainerInfo.from_status(s) for s in status.get("initContainerStatuses") or []
            ),
        )

    @property
    def component(self) -> str | None:
        """Airflow chart component label (scheduler, webserver, ...)."""
        return self.labels.get("component")

    @property
    def ready(self) -> bool:
        """Running with every container ready."""
        return self.phase == "Running" and bool(self.containers) and all(
            c.ready for c in self.containers
        )

    @property
    def settled(self) -> bool:
        """Ready, or a completed job pod."""
        return self.ready or self.phase == "Succeeded"

    @property
    def restarts(self) -> int:
        return sum(c.restart_count for c in self.containers)

    def all_containers(self) -> tuple[ContainerInfo, ...]:
        return self.init_containers + self.containers

    def container(self, name: str) -> ContainerInfo | None:
        for c in self.all_containers():
            if c.name == name:
                return c
        return None


def retried_job_pods(pods: list[PodInfo]) -> set[str]:
    """Names of Failed pods whose component also has a Succeeded pod.

    Job pods stay around after a failed attempt; once a retry of the same
    job completes, the failed attempt no longer matters.
    """
    completed = {pod.component for pod in pods if pod.phase == "Succeeded" and pod.component}
    return {pod.name for pod in pods if pod.phase == "Failed" and pod.component in completed}


@dataclass(frozen=True)
class NodeInfo:
    """Parsed view of a node from `kubectl get nodes -o json`."""

    name: str
    ready: bool
    addresses: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_item(cls, item: Mapping[str, Any]) -> NodeInfo:
        status = item.get("status", {})
        conditions = status.get("conditions") or []
        ready = any(
            c.get("type") == "Ready" and c.get("status") == "True" for c in conditions
        )
        addresses = {a.get("type", ""): a.get("address", "") for a in status.get("addresses") or []}
        return cls(name=item.get("metadata", {}).get("name", ""), ready=ready, addresses=addresses)

    @property
    def reachable_address(self) -> str | None:
        """External IP if present, else internal IP."""
        return self.addresses.get("ExternalIP") or self.addresses.get("InternalIP")


@dataclass(frozen=True)
class ServicePort:
    name: str | None
    port: int
    node_port: int | None = None


@dataclass(frozen=True)
class ServiceInfo:
    """Parsed view of a service from `kubectl get service -o json`."""

    name: str
    type: str
    cluster_ip: str | None
    ports: tuple[ServicePort, ...] = ()
    external_ips: tuple[str, ...] = ()

    @classmethod
    def from_item(cls, item: Mapping[str, Any]) -> ServiceInfo:
        spec = item.get("spec", {})
        ingress = (item.get("status", {}).get("loadBalancer") or {}).get("ingress") or []
        external = [i.get("ip") or i.get("hostname") for i in ingress]
        external += spec.get("externalIPs") or []
        return cls(
            name=item.get("metadata", {}).get("name", ""),
            type=spec.get("type", "ClusterIP"),
            cluster_ip=spec.get("clusterIP"),
            ports=tuple(
                ServicePort(name=p.get("name"), port=int(p["port"]), node_port=p.get("nodePort"))
                for p in spec.get("ports") or []
            ),
            external_ips=tuple(e for e in external if e),
        )

    def port(self, name: str | None = None) -> ServicePort | None:
        """Port by name, or the first port when name is None or not found."""
        for p in self.ports:
            if name is None or p.name == name:
                return p
        return self.ports[0] if self.ports else None


@dataclass
class Kubectl:
    """Thin wrapper over the kubectl binary.

    Args:
        runner: Command runner used for every invocation.
        namespace: Default namespace for namespaced commands.
        binary: kubectl executable name or path.
        context: Optional kubeconfig context.
    """

    runner: CommandRunner
    namespace: str = "default"
    binary: str = "kubectl"
    context: str | None = None

    def _base(self, namespaced: bool = True) -> list[str]:
        argv = [self.binary]
        if self.context:
            argv += ["--context", self.context]
        if namespaced:
            argv += ["--namespace", self.namespace]
        return argv

    def _get_json(self, argv: list[str]) -> dict[str, Any]:
        result = self.runner.run(argv + ["-o", "json"], mutating=False)
        if not result.stdout.strip():
            return {}
        return json.loads(result.stdout)

    def namespace_exists(self, name: str | None = None) -> bool:
        result = self.runner.run(
            self._base(namespaced=False) + ["get", "namespace", name or self.namespace],
            check=False,
            mutating=False,
        )
        return result.ok

    def create_namespace(self, name: str | None = None) -> bool:
        """Create the namespace if missing.

        Returns:
            True if it was created, False if it already existed.
        """
        name = name or self.namespace
        if self.namespace_exists(name):
            logger.info(f"Namespace {name} already exists")
            return False
        self.runner.run(self._base(namespaced=False) + ["create", "namespace", name])
        return True

    def get_pods(self, selector: str | None = None) -> list[PodInfo]:
        """Pods in the namespace, optionally filtered by label selector."""
        argv = self._base() + ["get", "pods"]
        if selector:
            argv += ["-l", selector]
        data = self._get_json(argv)
        return [PodInfo.from_item(item) for item in data.get("items", [])]

    def get_nodes(self) -> list[NodeInfo]:
        data = self._get_json(self._base(namespaced=False) + ["get", "nodes"])
        return [NodeInfo.from_item(item) for item in data.get("items", [])]

    def get_service(self, name: str) -> ServiceInfo | None:
        """Service by name, or None if it does not exist."""
        result = self.runner.run(
            self._base() + ["get", "service", name, "-o", "json"],
            check=False,
            mutating=False,
        )
        if not result.ok or not result.stdout.strip():
            return None
        return ServiceInfo.from_item(json.loads(result.stdout))

    def logs(
        self,
        pod: str,
        *,
        container: str | None = None,
        tail: int | None = 100,
        previous: bool = False,
    ) -> str:
        """Logs of a pod (or one of its containers)."""
        argv = self._base() + ["logs", pod]
        if container:
            argv += ["-c", container]
        if tail is not None:
            argv += [f"--tail={tail}"]
        if previous:
            argv.append("--previous")
        return self.runner.run(argv, check=False, mutating=False).stdout

    def secret_exists(self, name: str) -> bool:
        result = self.runner.run(
            self._base() + ["get", "secret", name], check=False, mutating=False
        )
        return result.ok

    def get_secret_data(self, name: str) -> dict[str, str]:
        """Decoded data of a secret (empty if it does not exist)."""
        if not self.secret_exists(name):
            return {}
        data = self._get_json(self._base() + ["get", "secret", name])
        return {
            key: base64.b64decode(value).decode("utf-8")
            for key, value in (data.get("data") or {}).items()
        }

    def secret_keys(self, name: str) -> list[str]:
        """Data keys of a secret (values are never decoded)."""
        data = self._get_json(self._base() + ["get", "secret", name])
        return sorted((data.get("data") or {}).keys())

    def create_secret(
        self,
        name: str,
        literals: Mapping[str, str],
        *,
        replace: bool = False,
    ) -> CommandResult | None:
        """Create a generic secret from literal values.

        Args:
            name: Secret name.
            literals: Key/value pairs stored in the secret.
            replace: Overwrite an existing secret in place. The manifest is
                rendered client-side and sent with `kubectl replace`, so a
                failure leaves the old secret untouched.

        Returns:
            The create or replace result, or None if the secret existed
            and was kept.
        """
        argv = self._base() + ["create", "secret", "generic", name]
        argv += [f"--from-literal={key}={value}" for key, value in literals.items()]

        if not self.secret_exists(name):
            return self.runner.run(argv)
        if not replace:
            logger.info(f"Secret {name} already exists, keeping it")
            return None

        manifest = self.runner.run(argv + ["--dry-run=client", "-o", "yaml"], mutating=False)
        return self.runner.run(self._base() + ["replace", "-f", "-"], input_text=manifest.stdout)

    def exec(self, target: str, command: list[str], *, container: str | None = None) -> CommandResult:
        """Run a command inside a pod or workload (e.g. deploy/airflow-scheduler)."""
        argv = self._base() + ["exec", target]
        if container:
            argv += ["-c", container]
        argv += ["--", *command]
        return self.runner.run(argv)

    def resource_exists(self, target: str) -> bool:
        """Whether a resource such as deployment/airflow-scheduler exists."""
        result = self.runner.run(self._base() + ["get", target], check=False, mutating=False)
        return result.ok

    def rollout_restart(self, target: str) -> CommandResult:
        return self.runner.run(self._base() + ["rollout", "restart", target])

    def rollout_status(self, target: str, *, timeout: str = "5m") -> CommandResult:
        """Block until a rollout finishes (kubectl rollout status)."""
        return self.runner.run(
            self._base() + ["rollout", "status", target, f"--timeout={timeout}"],
            timeout=parse_duration(timeout) + 30,
            mutating=False,
        )

    def port_forward_argv(self, target: str, local_port: int, remote_port: int) -> list[str]:
        return self._base() + ["port-forward", target, f"{local_port}:{remote_port}"]

    def port_forward(self, target: str, local_port: int, remote_port: int) -> int:
        """Forward a local port to a service or pod until interrupted."""
        return self.runner.run_interactive(
            self.port_forward_argv(target, local_port, remote_port)
        )
