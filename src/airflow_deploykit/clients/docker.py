"""Docker CLI wrapper for building and shipping the custom image."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from airflow_deploykit.clients.command import CommandResult, CommandRunner

# Builds pull the base image and install packages; allow far more than the default
BUILD_TIMEOUT = 3600.0


@dataclass
class Docker:
    """Thin wrapper over the docker binary."""

    runner: CommandRunner
    binary: str = "docker"

    def build(
        self,
        context_dir: str | Path,
        tag: str,
        *,
        dockerfile: str | Path | None = None,
        platform: str | None = None,
        no_cache: bool = False,
    ) -> CommandResult:
        """Build an image (docker build -t TAG CONTEXT)."""
        argv = [self.binary, "build", "-t", tag]
        if dockerfile:
            argv += ["-f", str(dockerfile)]
        if platform:
            argv += ["--platform", platform]
        if no_cache:
            argv.append("--no-cache")
        argv.append(str(context_dir))
        return self.runner.run(argv, timeout=BUILD_TIMEOUT)

    def tag(self, source: str, target: str) -> CommandResult:
        return self.runner.run([self.binary, "tag", source, target])

    def push(self, ref: str) -> CommandResult:
        return self.runner.run([self.binary, "push", ref], timeout=BUILD_TIMEOUT)

    def pull(self, ref: str) -> CommandResult:
        return self.runner.run([self.binary, "pull", ref], timeout=BUILD_TIMEOUT)

    def save(self, ref: str, output: str | Path) -> CommandResult:
        """Export an image to a tarball (docker save -o OUTPUT REF)."""
        Path(output).parent.mkdir(parents=True, exist_ok=True)
        return self.runner.run([self.binary, "save", "-o", str(output), ref], timeout=BUILD_TIMEOUT)

    def image_exists(self, ref: str) -> bool:
        result = self.runner.run(
            [self.binary, "image", "inspect", ref], check=False, mutating=False
        )
        return result.ok
