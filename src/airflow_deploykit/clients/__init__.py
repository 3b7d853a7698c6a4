"""Clients for the external tools a deployment drives.

These wrap helm, kubectl, docker and the Airflow web UI so runbook
steps can compose them without touching subprocess or httpx directly.
"""

from airflow_deploykit.clients.command import CommandResult, CommandRunner
from airflow_deploykit.clients.docker import Docker
from airflow_deploykit.clients.helm import Helm, ReleaseStatus
from airflow_deploykit.clients.http import HTTPResponse, request
from airflow_deploykit.clients.kubectl import (
    ContainerInfo,
    Kubectl,
    NodeInfo,
    PodInfo,
    ServiceInfo,
)
from airflow_deploykit.clients.webui import WebUIHealth, check_health

__all__ = [
    "CommandResult",
    "CommandRunner",
    "ContainerInfo",
    "Docker",
    "HTTPResponse",
    "Helm",
    "Kubectl",
    "NodeInfo",
    "PodInfo",
    "ReleaseStatus",
    "ServiceInfo",
    "WebUIHealth",
    "check_health",
    "request",
]
