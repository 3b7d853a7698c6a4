"""Runbook runner.

Executes a runbook's steps in dependency order against a live (or dry-run)
cluster, recording every attempt in a working directory.

Usage:
    with build_deps(config, workdir="./runs/deploy") as deps:
        runner = RunbookRunner(load_runbook("deploy"), deps, workdir="./runs/deploy")
        result = runner.run()  # Returns "Succeeded" | "Failed" | "Error"
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml

from airflow_deploykit.errors import DeployError
from airflow_deploykit.runbook.definition import RunbookDefinition, RunbookStep, StepTemplate
from airflow_deploykit.runbook.models import Severity, StepDeps, StepInput, StepResult
from airflow_deploykit.runbook.registry import get_step, has_step

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    Severity.DEBUG: logging.DEBUG,
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}

@dataclass
class RunbookExecutionResult:
    """Outcome of one runbook run, written to execution-result.json.

    result is "Succeeded", "Failed" or "Error"; error is only set for "Error".
    step_results maps step name to {"success": ..., "skipped": ...}.
    """

    runbook_name: str
    run_id: str
    workdir: str
    result: str = "Succeeded"
    step_results: dict[str, dict[str, Any]] = field(default_factory=dict)
    duration_seconds: float = 0.0
    error: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key in ("start_time", "end_time"):
            stamp = getattr(self, key)
            data[key] = stamp.isoformat() if stamp else None
        return data


class RunbookRunner:
    """Run a runbook's steps against the cluster described by deps.

    Action steps are retried up to the runbook's default_retries, with
    retry_delay_seconds between attempts; init, finalize and no-retry steps
    get one attempt. The first failing step stops the action phase, and
    finalize steps then run with runbook_result set. Every attempt is saved
    under workdir/steps/<name>/ and vars are kept in workdir/vars.yaml, so
    a rerun in the same workdir starts from the vars it left behind.
    """

    def __init__(
        self,
        runbook: RunbookDefinition,
        deps: StepDeps,
        workdir: str | Path,
        params: dict[str, Any] | None = None,
        run_id: str | None = None,
    ) -> None:
        self.runbook = runbook
        self.deps = deps
        self.workdir = Path(workdir)
        self.params = dict(params or {})
        self.run_id = run_id or uuid.uuid4().hex[:8]

        problems = runbook.validate_dependencies()
        if problems:
            raise ValueError(f"Runbook validation failed: {'; '.join(problems)}")

        self.vars: dict[str, Any] = {}
        self.step_outputs: dict[str, dict[str, Any]] = {}
        self.messages: list[tuple[str, Any]] = []
        self.execution: RunbookExecutionResult | None = None

        self._failed_steps: set[str] = set()
        self._skipped_steps: set[str] = set()
        self._flow_control: dict[str, Any] = {}

    @staticmethod
    def default_workdir(runbook_name: str) -> Path:
        timestamp = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
        return Path(f"./runbook-runs/{runbook_name}-{timestamp}")

    @property
    def _vars_path(self) -> Path:
        return self.workdir / "vars.yaml"

    def _prepare_workdir(self) -> None:
        (self.workdir / "steps").mkdir(parents=True, exist_ok=True)
        if self._vars_path.exists():
            loaded = yaml.safe_load(self._vars_path.read_text(encoding="utf-8"))
            self.vars = loaded if isinstance(loaded, dict) else {}
        else:
            self._save_vars()

    def _save_vars(self) -> None:
        self._vars_path.write_text(
            yaml.safe_dump(self.vars, default_flow_style=False), encoding="utf-8"
        )

    def _save_attempt(self, step: RunbookStep, result: StepResult, attempt: int) -> None:
        step_dir = self.workdir / "steps" / step.name
        step_dir.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(result.model_dump(mode="json"), indent=2, default=str)
        (step_dir / f"result-attempt-{attempt}.json").write_text(payload, encoding="utf-8")

    def _step_input(self, step: RunbookStep, attempt: int, runbook_result: str | None) -> StepInput:
        return StepInput(
            step_name=step.name,
            run_id=self.run_id,
            runbook_name=self.runbook.name,
            params={**self.params, **step.params},
            vars=dict(self.vars),
            attempt=attempt,
            total_retries=self.runbook.default_retries,
            runbook_result=runbook_result,
        )

    def _should_skip_step(self, step: RunbookStep) -> bool:
        if step.template != StepTemplate.FINALIZE and self._flow_control.get("skip_remaining"):
            return True
        if not step.when_flow_control:
            return False
        return not _condition_holds(step.when_flow_control, self._flow_control)

    def _attempts_for(self, step: RunbookStep) -> int:
        if step.template in (StepTemplate.INIT, StepTemplate.FINALIZE, StepTemplate.NO_RETRY):
            return 1
        return self.runbook.default_retries + 1

    def _call_handler(self, step: RunbookStep, handler: Any, step_input: StepInput) -> StepResult:
        try:
            return handler(step_input, self.deps)
        except DeployError as e:
            logger.error(f"Step {step.name} failed: {e}")
            result = StepResult()
            result.add_error(str(e), system="runner", **_error_data(e))
        except Exception as e:
            logger.exception(f"Step {step.name} raised exception: {e}")
            result = StepResult()
            result.add_error(f"Exception: {e}", system="runner")
        return result

    def _absorb(self, step: RunbookStep, result: StepResult) -> None:
        for msg in result.messages:
            logger.log(_LOG_LEVELS[msg.severity], f"[{step.name}] {msg.text}")
            self.messages.append((step.name, msg))

        if result.context_updates:
            self.vars.update(result.context_updates)
            self._save_vars()
        if result.flow_control:
            self._flow_control.update(result.flow_control)
        if result.output:
            self.step_outputs[step.name] = result.output

    def _execute_step(self, step: RunbookStep, runbook_result: str | None = None) -> bool:
        """Run one step through its attempts.

        Returns True when the step succeeded or was skipped.
        """
        handler_name = self.runbook.get_step_handler_name(step)
        if not has_step(handler_name):
            logger.error(f"No handler registered for step {step.name}: {handler_name}")
            self._failed_steps.add(step.name)
            return False

        if self._should_skip_step(step):
            logger.info(f"Skipping step {step.name}")
            self._skipped_steps.add(step.name)
            return True

        handler = get_step(handler_name)
        attempts = self._attempts_for(step)

        for attempt in range(attempts):
            logger.info(f"Step {step.name} ({handler_name}) attempt {attempt + 1}/{attempts}")
            step_input = self._step_input(step, attempt, runbook_result)
            result = self._call_handler(step, handler, step_input)
            self._save_attempt(step, result, attempt)
            self._absorb(step, result)

            if not result.has_errors:
                logger.info(f"Step {step.name} succeeded")
                return True
            if attempt + 1 < attempts:
                delay = self.runbook.retry_delay_seconds
                logger.warning(f"Step {step.name} failed, retrying in {delay}s")
                self.deps.sleep(delay)

        logger.error(f"Step {step.name} failed after {attempts} attempt(s)")
        self._failed_steps.add(step.name)
        return False

    def _record(self, execution: RunbookExecutionResult, step: RunbookStep, success: bool) -> None:
        execution.step_results[step.name] = {
            "success": success,
            "skipped": step.name in self._skipped_steps,
        }

    def run(self) -> str:
        """Run every step and return "Succeeded", "Failed" or "Error"."""
        execution = RunbookExecutionResult(
            runbook_name=self.runbook.name,
            run_id=self.run_id,
            workdir=str(self.workdir),
            start_time=datetime.now(UTC),
        )
        logger.info(f"Runbook {self.runbook.name} run {self.run_id} in {self.workdir}")

        try:
            self._prepare_workdir()

            for step in self.runbook.get_non_finalize_steps():
                success = self._execute_step(step)
                self._record(execution, step, success)
                if not success:
                    logger.error(f"Step {step.name} failed; running finalize steps only")
                    execution.result = "Failed"
                    break

            for step in self.runbook.get_finalize_steps():
                success = self._execute_step(step, runbook_result=execution.result)
                self._record(execution, step, success)

            failed = bool(self._failed_steps) or bool(self._flow_control.get("mark_failed"))
            execution.result = "Failed" if failed else "Succeeded"

        except Exception as e:
            logger.exception(f"Runbook {self.runbook.name} errored: {e}")
            execution.result = "Error"
            execution.error = str(e)

        finally:
            execution.end_time = datetime.now(UTC)
            execution.duration_seconds = (execution.end_time - execution.start_time).total_seconds()
            self.workdir.mkdir(parents=True, exist_ok=True)
            (self.workdir / "execution-result.json").write_text(
                json.dumps(execution.to_dict(), indent=2, default=str), encoding="utf-8"
            )
            logger.info(
                f"Runbook {self.runbook.name} finished: {execution.result} "
                f"({execution.duration_seconds:.2f}s)"
            )

        self.execution = execution
        return execution.result

    def validate(self) -> list[str]:
        """Static problems with the runbook: missing handlers, bad or cyclic dependencies."""
        return validate_runbook(self.runbook)


def validate_runbook(runbook: RunbookDefinition) -> list[str]:
    """Static checks on a runbook definition (see RunbookRunner.validate)."""
    errors: list[str] = []

    errors.extend(runbook.validate_dependencies())

    for step in runbook.steps:
        handler_name = runbook.get_step_handler_name(step)
        if not has_step(handler_name):
            errors.append(f"Handler not found for step '{step.name}': {handler_name}")

    try:
        runbook.get_execution_order()
    except ValueError as e:
        errors.append(str(e))

    return errors


def _flow_value(value: Any) -> str:
    """Render a flow-control value the way YAML conditions spell it."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _error_data(error: DeployError) -> dict[str, Any]:
    data = {k: v for k, v in error.context.items() if isinstance(v, (str, int, float))}
    stderr = getattr(error, "stderr", "")
    if stderr:
        data["stderr"] = stderr[-2000:]
    return data


def _condition_holds(expr: str, flags: dict[str, Any]) -> bool:
    """Evaluate ``key == value`` or ``key != value`` against flow-control flags.

    Missing keys compare as the empty string; an expression with neither
    operator always holds.
    """
    for op in ("!=", "=="):
        if op in expr:
            key, _, expected = expr.partition(op)
            actual = _flow_value(flags.get(key.strip(), ""))
            matches = actual == expected.strip().strip("'\"")
            return matches if op == "==" else not matches
    return True
