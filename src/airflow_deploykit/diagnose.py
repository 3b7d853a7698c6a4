"""Automated checks for the common deployment failures.

Covers the three symptoms operators hit most:
- The database migration job fails
- The GitSync sidecar does not sync DAGs
- The web UI is unreachable

Each check inspects the cluster through kubectl (and the UI through HTTP)
and returns Findings that carry the manual follow-up command.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlsplit

import httpx

from airflow_deploykit.clients.kubectl import Kubectl, PodInfo, ServiceInfo, retried_job_pods
from airflow_deploykit.clients.webui import check_health, health_url
from airflow_deploykit.config import DeploymentConfig, ServiceType
from airflow_deploykit.values import WEBSERVER_PORT_NAME

logger = logging.getLogger(__name__)

MIGRATION_COMPONENT = "run-airflow-migrations"
GIT_SYNC_CONTAINERS = ("git-sync", "git-sync-init")
GIT_SYNC_COMPONENTS = ("scheduler", "worker", "triggerer", "dag-processor")

SUPPORTED_DB_SCHEMES = {"postgresql", "mysql", "mssql"}

_DB_ERROR = re.compile(
    r"OperationalError|could not connect|password authentication failed|"
    r"Connection refused|could not translate host name|Access denied|Unknown database",
    re.IGNORECASE,
)
_GIT_ERROR = re.compile(
    r"Permission denied \(publickey\)|Authentication failed|Host key verification failed|"
    r"could not read Username|Repository not found|couldn't find remote ref|"
    r"unknown revision|\berror\b",
    re.IGNORECASE,
)


class FindingLevel(str, Enum):
    OK = "ok"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Finding:
    """Outcome of a single diagnostic check.

    Attributes:
        check: Check name ("migrations", "git-sync", "webserver").
        level: ok, warning or error.
        text: Human-readable finding.
        command: Manual follow-up command for the operator, if any.
        detail: Supporting evidence (e.g. matching log lines).
    """

    check: str
    level: FindingLevel
    text: str
    command: str | None = None
    detail: str | None = None

    @property
    def is_problem(self) -> bool:
        return self.level != FindingLevel.OK


def _kubectl_cmd(kubectl: Kubectl, *args: str) -> str:
    return " ".join(["kubectl", "-n", kubectl.namespace, *args])


def _matching_lines(text: str, pattern: re.Pattern[str], limit: int = 5) -> list[str]:
    lines = [line.strip() for line in text.splitlines() if pattern.search(line)]
    return lines[-limit:]


def validate_connection_string(connection: str) -> list[str]:
    """Check that a metadata connection string is usable by Airflow.

    Returns:
        Problems found (empty if the string looks valid).
    """
    problems: list[str] = []
    try:
        parts = urlsplit(connection)
        port = parts.port
    except ValueError as e:
        return [f"Connection string does not parse: {e}"]

    scheme = parts.scheme.split("+", 1)[0]
    if not parts.scheme:
        problems.append("Connection string has no scheme (expected e.g. postgresql://)")
    elif scheme == "postgres":
        problems.append("Scheme 'postgres' is not accepted by SQLAlchemy; use 'postgresql'")
    elif scheme not in SUPPORTED_DB_SCHEMES:
        problems.append(f"Unsupported database scheme '{parts.scheme}'")

    if not parts.hostname:
        problems.append("Connection string has no host")
    if port is not None and not 0 < port < 65536:
        problems.append(f"Invalid port {port}")
    if not parts.path.strip("/"):
        problems.append("Connection string has no database name")
    if parts.username and parts.password is None:
        problems.append("Connection string has a user but no password")

    return problems


def check_migrations(kubectl: Kubectl, config: DeploymentConfig, *, tail: int = 50) -> list[Finding]:
    """Diagnose a failing database migration job."""
    findings: list[Finding] = []
    release = config.chart.release

    pods = kubectl.get_pods(f"component={MIGRATION_COMPONENT},release={release}")
    if not pods:
        findings.append(
            Finding(
                check="migrations",
                level=FindingLevel.WARNING,
                text="No migration job pods found (job may have been cleaned up)",
                command=_kubectl_cmd(kubectl, "get", "jobs"),
            )
        )

    retried = retried_job_pods(pods)
    for pod in pods:
        failed_container = next(
            (c for c in pod.containers if c.state == "terminated" and c.reason == "Error"),
            None,
        )
        if pod.phase == "Succeeded":
            findings.append(
                Finding(check="migrations", level=FindingLevel.OK, text=f"Migration pod {pod.name} succeeded")
            )
            continue
        if pod.name in retried:
            findings.append(
                Finding(
                    check="migrations",
                    level=FindingLevel.WARNING,
                    text=f"Migration pod {pod.name} failed but a later attempt succeeded",
                    command=_kubectl_cmd(kubectl, "logs", pod.name),
                )
            )
            continue
        if pod.phase == "Failed" or failed_container or pod.restarts > 0:
            logs = kubectl.logs(pod.name, tail=tail)
            evidence = _matching_lines(logs, _DB_ERROR)
            findings.append(
                Finding(
                    check="migrations",
                    level=FindingLevel.ERROR,
                    text=f"Migration pod {pod.name} is failing (phase {pod.phase}, {pod.restarts} restarts)",
                    command=_kubectl_cmd(kubectl, "logs", pod.name),
                    detail="\n".join(evidence) or None,
                )
            )
        else:
            findings.append(
                Finding(
                    check="migrations",
                    level=FindingLevel.WARNING,
                    text=f"Migration pod {pod.name} is still {pod.phase}",
                    command=_kubectl_cmd(kubectl, "describe", "pod", pod.name),
                )
            )

    findings.extend(_check_metadata_secret(kubectl, config))
    return findings


def _check_metadata_secret(kubectl: Kubectl, config: DeploymentConfig) -> list[Finding]:
    database = config.database
    if database.connection is None:
        return [
            Finding(
                check="migrations",
                level=FindingLevel.OK,
                text="Using the chart's bundled PostgreSQL",
            )
        ]

    findings: list[Finding] = []
    for problem in validate_connection_string(database.connection):
        findings.append(
            Finding(
                check="migrations",
                level=FindingLevel.ERROR,
                text=f"Metadata connection string: {problem}",
            )
        )

    if not kubectl.secret_exists(database.secret_name):
        findings.append(
            Finding(
                check="migrations",
                level=FindingLevel.ERROR,
                text=f"Metadata secret '{database.secret_name}' does not exist",
                command=_kubectl_cmd(
                    kubectl,
                    "create",
                    "secret",
                    "generic",
                    database.secret_name,
                    "--from-literal=connection=<uri>",
                ),
            )
        )
    elif "connection" not in kubectl.secret_keys(database.secret_name):
        findings.append(
            Finding(
                check="migrations",
                level=FindingLevel.ERROR,
                text=f"Metadata secret '{database.secret_name}' has no 'connection' key",
            )
        )
    return findings


def _git_sync_pods(pods: list[PodInfo]) -> list[PodInfo]:
    return [
        pod
        for pod in pods
        if pod.component in GIT_SYNC_COMPONENTS
        and any(pod.container(name) for name in GIT_SYNC_CONTAINERS)
    ]


def check_git_sync(kubectl: Kubectl, config: DeploymentConfig, *, tail: int = 50) -> list[Finding]:
    """Diagnose a GitSync sidecar that is not syncing DAGs."""
    git_sync = config.dags.git_sync
    if not git_sync.enabled:
        return [Finding(check="git-sync", level=FindingLevel.OK, text="GitSync is disabled")]

    findings: list[Finding] = []
    pods = _git_sync_pods(kubectl.get_pods(f"release={config.chart.release}"))
    if not pods:
        findings.append(
            Finding(
                check="git-sync",
                level=FindingLevel.ERROR,
                text="No pods with a git-sync container found",
                command=_kubectl_cmd(kubectl, "get", "pods", "-l", f"release={config.chart.release}"),
            )
        )

    for pod in pods:
        for name in GIT_SYNC_CONTAINERS:
            container = pod.container(name)
            if container is None:
                continue
            # git-sync-init exits after the first clone
            healthy = (
                container.ready
                or (name == "git-sync-init" and container.state == "terminated" and container.reason == "Completed")
            )
            if healthy and container.restart_count == 0:
                continue
            logs = kubectl.logs(pod.name, container=name, tail=tail)
            evidence = _matching_lines(logs, _GIT_ERROR)
            findings.append(
                Finding(
                    check="git-sync",
                    level=FindingLevel.ERROR if not healthy else FindingLevel.WARNING,
                    text=(
                        f"{name} in {pod.name} is {container.state}"
                        f"{f' ({container.reason})' if container.reason else ''}, "
                        f"{container.restart_count} restarts"
                    ),
                    command=_kubectl_cmd(kubectl, "logs", pod.name, "-c", name),
                    detail="\n".join(evidence) or None,
                )
            )

    for secret_name in (git_sync.ssh_key_secret, git_sync.credentials_secret):
        if secret_name and not kubectl.secret_exists(secret_name):
            findings.append(
                Finding(
                    check="git-sync",
                    level=FindingLevel.ERROR,
                    text=f"GitSync secret '{secret_name}' does not exist",
                    command=_kubectl_cmd(kubectl, "get", "secret", secret_name),
                )
            )

    if git_sync.repo and git_sync.repo.startswith(("git@", "ssh://")) and not git_sync.ssh_key_secret:
        findings.append(
            Finding(
                check="git-sync",
                level=FindingLevel.WARNING,
                text="Repository uses SSH but no ssh_key_secret is configured",
            )
        )

    if not findings:
        findings.append(
            Finding(check="git-sync", level=FindingLevel.OK, text=f"git-sync healthy in {len(pods)} pod(s)")
        )
    return findings


def webserver_service_name(config: DeploymentConfig) -> str:
    return f"{config.chart.release}-webserver"


def _service_mismatches(service: ServiceInfo, config: DeploymentConfig) -> list[str]:
    expected = config.service
    problems: list[str] = []
    if service.type != expected.type.value:
        problems.append(f"service type is {service.type}, expected {expected.type.value}")
    port = service.port(WEBSERVER_PORT_NAME)
    if port is None:
        problems.append("service exposes no ports")
        return problems
    if port.port != expected.port:
        problems.append(f"service port is {port.port}, expected {expected.port}")
    if expected.node_port is not None and port.node_port != expected.node_port:
        problems.append(f"nodePort is {port.node_port}, expected {expected.node_port}")
    return problems


def probe_urls(kubectl: Kubectl, service: ServiceInfo) -> list[str]:
    """Health URLs the UI should answer on for this service.

    LoadBalancer services use their ingress addresses, falling back to the
    node ports while no address has been assigned. ClusterIP services are
    probed on the cluster IP, which only answers from inside the cluster.
    """
    port = service.port(WEBSERVER_PORT_NAME)
    if port is None:
        return []

    if service.type == ServiceType.LOAD_BALANCER.value and service.external_ips:
        return [health_url(ip, port.port) for ip in service.external_ips]
    if service.type in (ServiceType.NODE_PORT.value, ServiceType.LOAD_BALANCER.value):
        if not port.node_port:
            return []
        nodes = [n for n in kubectl.get_nodes() if n.ready and n.reachable_address]
        return [health_url(n.reachable_address, port.node_port) for n in nodes]  # type: ignore[arg-type]
    if service.cluster_ip and service.cluster_ip != "None":
        return [health_url(service.cluster_ip, port.port)]
    return []


def check_webserver(
    kubectl: Kubectl,
    http: httpx.Client,
    config: DeploymentConfig,
    *,
    timeout: float = 5.0,
) -> list[Finding]:
    """Diagnose an unreachable web UI."""
    findings: list[Finding] = []
    name = webserver_service_name(config)
    port_forward = _kubectl_cmd(kubectl, "port-forward", f"svc/{name}", f"{config.service.port}:{config.service.port}")

    service = kubectl.get_service(name)
    if service is None:
        return [
            Finding(
                check="webserver",
                level=FindingLevel.ERROR,
                text=f"Service '{name}' not found",
                command=_kubectl_cmd(kubectl, "get", "svc"),
            )
        ]

    for problem in _service_mismatches(service, config):
        findings.append(
            Finding(
                check="webserver",
                level=FindingLevel.WARNING,
                text=f"Service '{name}': {problem}",
                command=_kubectl_cmd(kubectl, "get", "svc", name, "-o", "yaml"),
            )
        )

    webserver_pods = kubectl.get_pods(f"component=webserver,release={config.chart.release}")
    if not any(pod.ready for pod in webserver_pods):
        findings.append(
            Finding(
                check="webserver",
                level=FindingLevel.ERROR,
                text="No ready webserver pod",
                command=_kubectl_cmd(kubectl, "get", "pods", "-l", "component=webserver"),
            )
        )

    urls = probe_urls(kubectl, service)
    if not urls:
        findings.append(
            Finding(
                check="webserver",
                level=FindingLevel.WARNING,
                text=f"{service.type} service has no address to probe; use port-forward",
                command=port_forward,
            )
        )
        return findings

    reachable = False
    for url in urls:
        health = check_health(http, url, timeout=timeout)
        if health.healthy:
            reachable = True
            findings.append(Finding(check="webserver", level=FindingLevel.OK, text=f"UI healthy at {url}"))
            break
        if health.reachable:
            reachable = True
            unhealthy = ", ".join(health.unhealthy_components) or f"HTTP {health.status_code}"
            findings.append(
                Finding(
                    check="webserver",
                    level=FindingLevel.WARNING,
                    text=f"UI reachable at {url} but unhealthy: {unhealthy}",
                )
            )
            break

    if reachable:
        return findings
    if service.type == ServiceType.CLUSTER_IP.value:
        findings.append(
            Finding(
                check="webserver",
                level=FindingLevel.WARNING,
                text=(
                    f"UI unreachable at {', '.join(urls)}; the cluster IP only answers "
                    "from inside the cluster, use port-forward"
                ),
                command=port_forward,
            )
        )
    else:
        findings.append(
            Finding(
                check="webserver",
                level=FindingLevel.ERROR,
                text=(
                    f"UI unreachable at {', '.join(urls)}; check firewall rules for "
                    "the node port or use port-forward"
                ),
                command=port_forward,
            )
        )
    return findings
