"""Tests for runbook definitions."""

from __future__ import annotations

from pathlib import Path

import pytest

from airflow_deploykit.runbook.definition import (
    RunbookDefinition,
    RunbookStep,
    StepTemplate,
    list_runbooks,
    load_runbook,
    resolve_runbook,
)


def _runbook(*steps: RunbookStep, prefix: str | None = "deploy") -> RunbookDefinition:
    return RunbookDefinition(name="test", handler_prefix=prefix, steps=list(steps))


class TestExecutionOrder:
    """Tests for topological ordering."""

    def test_dependencies_first(self):
        runbook = _runbook(
            RunbookStep(name="finalize", template="finalize", depends=["install"]),
            RunbookStep(name="install", depends=["init"]),
            RunbookStep(name="init", template="init"),
        )

        assert [s.name for s in runbook.get_execution_order()] == ["init", "install", "finalize"]

    def test_independent_steps_sorted_alphabetically(self):
        runbook = _runbook(
            RunbookStep(name="init"),
            RunbookStep(name="check-webserver", depends=["init"]),
            RunbookStep(name="check-git-sync", depends=["init"]),
            RunbookStep(name="check-migrations", depends=["init"]),
        )

        assert [s.name for s in runbook.get_execution_order()] == [
            "init",
            "check-git-sync",
            "check-migrations",
            "check-webserver",
        ]

    def test_cycle_raises(self):
        runbook = _runbook(
            RunbookStep(name="a", depends=["b"]),
            RunbookStep(name="b", depends=["a"]),
        )

        with pytest.raises(ValueError, match="Circular dependency"):
            runbook.get_execution_order()

    def test_finalize_split(self):
        runbook = _runbook(
            RunbookStep(name="init", template="init"),
            RunbookStep(name="finalize", template="finalize", depends=["init"]),
        )

        assert [s.name for s in runbook.get_non_finalize_steps()] == ["init"]
        assert [s.name for s in runbook.get_finalize_steps()] == ["finalize"]


class TestValidation:
    """Tests for structural validation."""

    def test_unknown_dependency(self):
        runbook = _runbook(RunbookStep(name="install", depends=["init"]))

        assert runbook.validate_dependencies() == ["Step 'install' depends on unknown step 'init'"]

    def test_duplicate_names(self):
        runbook = _runbook(RunbookStep(name="init"), RunbookStep(name="init"))

        assert runbook.validate_dependencies() == ["Duplicate step name 'init'"]

    def test_handler_names(self):
        step = RunbookStep(name="install-chart")

        assert _runbook(step).get_step_handler_name(step) == "deploy-install-chart"
        assert _runbook(step, prefix=None).get_step_handler_name(step) == "install-chart"


class TestLoading:
    """Tests for loading runbook YAML."""

    def test_from_yaml(self, tmp_path: Path):
        path = tmp_path / "custom.yaml"
        path.write_text(
            "name: custom\n"
            "handler_prefix: deploy\n"
            "default_retries: 1\n"
            "steps:\n"
            "  - name: init\n"
            "    template: init\n"
            "  - name: build-image\n"
            "    template: no-retry\n"
            "    depends: [init]\n"
            "    when_flow_control: build_image == true\n",
            encoding="utf-8",
        )

        runbook = RunbookDefinition.from_yaml(path)

        assert runbook.default_retries == 1
        assert runbook.get_step_by_name("build-image").template == StepTemplate.NO_RETRY
        assert runbook.get_step_by_name("build-image").when_flow_control == "build_image == true"
        assert runbook.get_step_by_name("missing") is None

    def test_non_mapping_yaml(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text("- init\n", encoding="utf-8")

        with pytest.raises(ValueError, match="YAML object"):
            RunbookDefinition.from_yaml(path)

    def test_bundled_runbooks(self):
        assert list_runbooks() == ["deploy", "diagnose", "publish-image", "rotate-keys"]

    def test_resolve_by_name_and_path(self, tmp_path: Path):
        assert resolve_runbook("deploy").name == "deploy.yaml"

        path = tmp_path / "mine.yaml"
        path.write_text("name: mine\n", encoding="utf-8")
        assert resolve_runbook(path) == path

    def test_unknown_name(self):
        with pytest.raises(FileNotFoundError, match="Available: deploy"):
            resolve_runbook("uninstall")

    def test_missing_path(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError, match="not found"):
            resolve_runbook(tmp_path / "missing.yaml")

    def test_load_runbook(self):
        runbook = load_runbook("deploy")

        assert runbook.handler_prefix == "deploy"
        assert runbook.get_execution_order()[0].name == "init"
