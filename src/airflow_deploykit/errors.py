"""Exceptions raised by airflow-deploykit.

Everything derives from DeployError, whose context dict is appended to the
message and copied into step error messages by the runbook runner.
"""

from __future__ import annotations

from typing import Any


class DeployError(Exception):
    """Base class; message plus key=value context."""

    def __init__(self, message: str, *, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class ConfigError(DeployError):
    """Deployment configuration could not be loaded or is invalid."""

    def __init__(self, message: str, *, path: str | None = None, errors: list[str] | None = None):
        context: dict[str, Any] = {}
        if path:
            context["path"] = path
        super().__init__(message, context=context)
        self.path = path
        self.errors = errors or []


class CommandError(DeployError):
    """External command exited with a non-zero status."""

    def __init__(
        self,
        message: str,
        *,
        command: str | None = None,
        returncode: int | None = None,
        stderr: str | None = None,
    ):
        context: dict[str, Any] = {}
        if command:
            context["command"] = command
        if returncode is not None:
            context["returncode"] = returncode
        super().__init__(message, context=context)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr or ""


class ToolNotFoundError(CommandError):
    """Required executable is not installed or not on PATH."""

    def __init__(self, tool: str):
        super().__init__(f"Executable not found on PATH: {tool}", command=tool)
        self.tool = tool


class CommandTimeoutError(CommandError):
    """External command did not finish in time."""

    def __init__(self, message: str, *, command: str | None = None, timeout_seconds: float | None = None):
        super().__init__(message, command=command)
        if timeout_seconds:
            self.context["timeout_seconds"] = timeout_seconds
        self.timeout_seconds = timeout_seconds


class HTTPError(DeployError):
    """Request to the Airflow webserver could not be completed."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str | None = None,
        method: str = "GET",
    ):
        context = {"status_code": status_code, "url": url, "method": method}
        super().__init__(message, context={k: v for k, v in context.items() if v is not None})
        self.status_code = status_code
        self.url = url
        self.method = method


class TimeoutError(DeployError):
    """The webserver did not answer in time."""

    def __init__(self, message: str, *, timeout_seconds: float | None = None):
        context = {"timeout_seconds": timeout_seconds} if timeout_seconds else {}
        super().__init__(message, context=context)
        self.timeout_seconds = timeout_seconds


class SchemaValidationError(DeployError):
    """Rendered chart values failed schema validation."""

    def __init__(self, message: str, errors: list[str]) -> None:
        super().__init__(message)
        self.errors = errors
