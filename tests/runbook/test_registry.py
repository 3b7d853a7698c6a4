"""Tests for step registry."""

from __future__ import annotations

import pytest

from airflow_deploykit.runbook.models import StepDeps, StepInput, StepResult
from airflow_deploykit.runbook.registry import (
    _STEP_REGISTRY,
    StepAlreadyRegisteredError,
    StepNotFoundError,
    clear_steps,
    get_step,
    has_step,
    list_steps,
    normalize_step_name,
    register_step,
)


@pytest.fixture
def isolated_registry():
    """Snapshot the registry and restore it afterwards."""
    saved = dict(_STEP_REGISTRY)
    yield
    _STEP_REGISTRY.clear()
    _STEP_REGISTRY.update(saved)


def _noop(step_input: StepInput, deps: StepDeps) -> StepResult:
    return StepResult()


@pytest.mark.usefixtures("isolated_registry")
class TestRegisterStep:
    """Tests for @register_step decorator."""

    def test_register_step_decorator(self):
        @register_step("test-registry-basic")
        def my_handler(step_input: StepInput, deps: StepDeps) -> StepResult:
            result = StepResult()
            result.add_info("Handler called", system="test")
            return result

        assert has_step("test-registry-basic")
        assert get_step("test-registry-basic") is my_handler

    def test_direct_registration(self):
        register_step("test-registry-direct", _noop)

        assert get_step("test-registry-direct") is _noop

    def test_duplicate_raises(self):
        register_step("test-registry-duplicate", _noop)

        with pytest.raises(StepAlreadyRegisteredError) as exc_info:
            register_step("test-registry-duplicate", _noop)

        assert exc_info.value.step_name == "test-registry-duplicate"

    def test_override_allowed(self):
        register_step("test-registry-override", _noop)

        def replacement(step_input: StepInput, deps: StepDeps) -> StepResult:
            return StepResult()

        register_step("test-registry-override", replacement, allow_override=True)

        assert get_step("test-registry-override") is replacement

    def test_names_are_normalized(self):
        register_step("Test_Registry_Normalized", _noop)

        assert has_step("test-registry-normalized")
        assert "test-registry-normalized" in list_steps()

    def test_clear_steps(self):
        register_step("test-registry-clear", _noop)

        clear_steps()

        assert list_steps() == []


class TestGetStep:
    """Tests for lookups."""

    def test_missing_step_lists_available(self):
        with pytest.raises(StepNotFoundError) as exc_info:
            get_step("no-such-step")

        assert exc_info.value.step_name == "no-such-step"
        assert "Available" in str(exc_info.value)

    def test_normalize_step_name(self):
        assert normalize_step_name("Deploy_Install_Chart") == "deploy-install-chart"
