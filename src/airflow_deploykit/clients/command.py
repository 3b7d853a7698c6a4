"""External command runner.

Provides a clean interface for invoking helm, kubectl and docker with:
- Typed result objects
- Consistent error handling
- Centralized logging with secrets redacted
- A dry-run mode that records commands instead of running them
"""

from __future__ import annotations

import logging
import os
import re
import shlex
import subprocess
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from airflow_deploykit.errors import CommandError, CommandTimeoutError, ToolNotFoundError

logger = logging.getLogger(__name__)

_LITERAL = re.compile(r"^(--from-literal=[^=]+=).+$")
_SECRET_FLAGS = {"--password", "--docker-password"}


@dataclass(frozen=True)
class CommandResult:
    """Structured result of an external command.

    Attributes:
        argv: The command that was run.
        returncode: Process exit status.
        stdout: Captured standard output.
        stderr: Captured standard error.
        elapsed_ms: Wall-clock duration in milliseconds.
        dry_run: True if the command was only recorded.
    """

    argv: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    elapsed_ms: float = 0.0
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        """True if the command exited with status 0."""
        return self.returncode == 0

    @property
    def command_line(self) -> str:
        """Redacted, shell-quoted command line for display."""
        return format_command(self.argv)


def redact_argv(argv: Sequence[str]) -> list[str]:
    """Mask secret payloads in an argv list.

    Hides --from-literal values and the argument following password flags.
    """
    redacted: list[str] = []
    hide_next = False
    for arg in argv:
        if hide_next:
            redacted.append("***")
            hide_next = False
            continue
        if arg in _SECRET_FLAGS:
            redacted.append(arg)
            hide_next = True
            continue
        flag, sep, _ = arg.partition("=")
        if sep and flag in _SECRET_FLAGS:
            redacted.append(f"{flag}=***")
            continue
        match = _LITERAL.match(arg)
        redacted.append(f"{match.group(1)}***" if match else arg)
    return redacted


def format_command(argv: Sequence[str]) -> str:
    """Shell-quoted command line with secrets redacted."""
    return shlex.join(redact_argv(argv))


@dataclass
class CommandRunner:
    """Runs external commands with captured output.

    Args:
        timeout: Default per-command timeout in seconds.
        dry_run: Record commands without executing them.
        env: Extra environment variables for child processes.
    """

    timeout: float = 300.0
    dry_run: bool = False
    env: Mapping[str, str] | None = None
    history: list[CommandResult] = field(default_factory=list)

    def run(
        self,
        argv: Sequence[str],
        *,
        check: bool = True,
        timeout: float | None = None,
        input_text: str | None = None,
        mutating: bool = True,
    ) -> CommandResult:
        """Run a command and return its result.

        Args:
            argv: Command and arguments.
            check: Raise CommandError on non-zero exit.
            timeout: Override the default timeout.
            input_text: Text passed on stdin.
            mutating: Whether the command changes external state. Read-only
                commands still run in dry-run mode.

        Returns:
            CommandResult with captured output.

        Raises:
            ToolNotFoundError: If the executable is missing.
            CommandTimeoutError: If the command times out.
            CommandError: If check is set and the command fails.
        """
        argv = tuple(str(a) for a in argv)
        command_line = format_command(argv)
        effective_timeout = timeout or self.timeout

        if self.dry_run and mutating:
            logger.info(f"[dry-run] {command_line}")
            result = CommandResult(argv=argv, returncode=0, dry_run=True)
            self.history.append(result)
            return result

        logger.debug(f"Running: {command_line}")
        started = time.monotonic()

        try:
            completed = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=effective_timeout,
                input=input_text,
                env=self._child_env(),
                check=False,
            )
        except FileNotFoundError as e:
            raise ToolNotFoundError(argv[0]) from e
        except subprocess.TimeoutExpired as e:
            raise CommandTimeoutError(
                f"Command timed out: {command_line}",
                command=command_line,
                timeout_seconds=effective_timeout,
            ) from e

        elapsed_ms = round((time.monotonic() - started) * 1000, 2)
        result = CommandResult(
            argv=argv,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            elapsed_ms=elapsed_ms,
        )
        self.history.append(result)

        logger.debug(f"{command_line} -> {result.returncode} in {elapsed_ms}ms")

        if check and not result.ok:
            raise CommandError(
                f"Command failed: {_first_line(result.stderr) or command_line}",
                command=command_line,
                returncode=result.returncode,
                stderr=result.stderr,
            )
        return result

    def run_interactive(self, argv: Sequence[str]) -> int:
        """Run a long-lived command attached to the terminal (e.g. port-forward).

        Returns:
            The process exit status.
        """
        argv = tuple(str(a) for a in argv)
        command_line = format_command(argv)
        if self.dry_run:
            logger.info(f"[dry-run] {command_line}")
            return 0

        logger.info(f"Running: {command_line}")
        try:
            return subprocess.run(argv, env=self._child_env(), check=False).returncode
        except FileNotFoundError as e:
            raise ToolNotFoundError(argv[0]) from e

    def _child_env(self) -> dict[str, str] | None:
        if not self.env:
            return None
        return {**os.environ, **self.env}


def _first_line(text: str) -> str:
    for line in text.splitlines():
        if line.strip():
            return line.strip()
    return ""
