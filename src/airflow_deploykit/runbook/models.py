"""What a runbook step handler receives and returns.

Handlers are plain functions of (StepInput, StepDeps) -> StepResult. The
runner owns StepInput construction; StepDeps carries the tool clients so a
handler never spawns helm, kubectl or docker on its own.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel, Field

from airflow_deploykit.clients.command import CommandRunner
from airflow_deploykit.clients.docker import Docker
from airflow_deploykit.clients.helm import Helm
from airflow_deploykit.clients.kubectl import Kubectl
from airflow_deploykit.config import DeploymentConfig


class Severity(str, Enum):

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Message(BaseModel):
    """One line of step output, logged by the runner and kept in the step result file.

    system names the area the message concerns ("helm", "secrets", "diagnose").
    data carries structured extras, most often the kubectl or helm command an
    operator should run next.
    """

    system: str = "internal"
    severity: Severity = Severity.INFO
    text: str
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    data: dict[str, Any] = Field(default_factory=dict)


class StepInput(BaseModel):
    """Per-attempt input for a handler.

    Attributes:
        params: Runbook --param values overlaid with the step's own params.
        vars: context_updates of earlier steps, as persisted in vars.yaml.
        attempt: 0 on the first try.
        runbook_result: "Succeeded" or "Failed" so far; set only for finalize steps.
    """

    step_name: str
    run_id: str
    runbook_name: str
    params: dict[str, Any] = Field(default_factory=dict)
    vars: dict[str, Any] = Field(default_factory=dict)
    attempt: int = 0
    total_retries: int = 3
    runbook_result: str | None = None


class StepResult(BaseModel):
    """Outcome of one handler attempt.

    Any error message fails the attempt. context_updates are merged into the
    run vars (top-level keys replace); flow_control flags such as build_image,
    skip_remaining and mark_failed steer the remaining steps.
    """

    messages: list[Message] = Field(default_factory=list)
    output: dict[str, Any] | None = None
    context_updates: dict[str, Any] = Field(default_factory=dict)
    flow_control: dict[str, Any] | None = None

    def add_message(
        self,
        text: str,
        *,
        severity: Severity = Severity.INFO,
        system: str = "internal",
        data: dict[str, Any] | None = None,
    ) -> None:
        self.messages.append(Message(system=system, severity=severity, text=text, data=data or {}))

    def add_debug(self, text: str, system: str = "internal", **data: Any) -> None:
        self.add_message(text, severity=Severity.DEBUG, system=system, data=data)

    def add_info(self, text: str, system: str = "internal", **data: Any) -> None:
        self.add_message(text, severity=Severity.INFO, system=system, data=data)

    def add_warning(self, text: str, system: str = "internal", **data: Any) -> None:
        self.add_message(text, severity=Severity.WARNING, system=system, data=data)

    def add_error(self, text: str, system: str = "internal", **data: Any) -> None:
        self.add_message(text, severity=Severity.ERROR, system=system, data=data)

    def _count(self, severity: Severity) -> int:
        return sum(1 for m in self.messages if m.severity == severity)

    @property
    def error_count(self) -> int:
        return self._count(Severity.ERROR)

    @property
    def warning_count(self) -> int:
        return self._count(Severity.WARNING)

    @property
    def has_errors(self) -> bool:
        return self.error_count > 0

    @property
    def has_warnings(self) -> bool:
        return self.warning_count > 0


@dataclass(frozen=True)
class StepDeps:
    """Everything a handler may touch, built once per run by build_deps().

    helm, kubectl and docker share runner, so dry run and command history
    apply to all three. kubectl is bound to the release namespace. workdir is
    where handlers write build contexts and reports; sleep is swapped out in
    polling tests.
    """

    config: DeploymentConfig
    runner: CommandRunner
    helm: Helm
    kubectl: Kubectl
    docker: Docker
    http: httpx.Client
    logger: logging.Logger
    env: Mapping[str, str]
    workdir: str
    sleep: Callable[[float], None]

