"""Runbook definitions and runner for airflow-deploykit.

A runbook replaces a manual sequence of helm/kubectl/docker commands
with YAML-declared steps backed by registered Python handlers:
- RunbookDefinition: YAML-defined structure with steps and dependencies
- RunbookRunner: Execute a runbook, recording every attempt in a workdir
- StepInput/StepResult: Clean I/O contracts for step handlers
- @register_step: Decorator for registering step handlers

Example runbook YAML:
    name: deploy
    handler_prefix: deploy
    steps:
      - name: init
        template: init
      - name: install-chart
        depends: [init]
      - name: finalize
        template: finalize
        depends: [install-chart]
    default_retries: 2
"""

from airflow_deploykit.runbook.definition import (
    RunbookDefinition,
    RunbookStep,
    StepTemplate,
    list_runbooks,
    load_runbook,
    resolve_runbook,
)
from airflow_deploykit.runbook.models import (
    Message,
    Severity,
    StepDeps,
    StepInput,
    StepResult,
)
from airflow_deploykit.runbook.registry import (
    StepAlreadyRegisteredError,
    StepHandler,
    StepNotFoundError,
    get_step,
    has_step,
    list_steps,
    register_step,
)
from airflow_deploykit.runbook.runner import (
    RunbookExecutionResult,
    RunbookRunner,
    validate_runbook,
)

__all__ = [
    # Definitions
    "RunbookDefinition",
    "RunbookStep",
    "StepTemplate",
    "list_runbooks",
    "load_runbook",
    "resolve_runbook",
    # Runner
    "RunbookExecutionResult",
    "RunbookRunner",
    "validate_runbook",
    # Models
    "Message",
    "Severity",
    "StepDeps",
    "StepInput",
    "StepResult",
    # Registry
    "StepAlreadyRegisteredError",
    "StepHandler",
    "StepNotFoundError",
    "get_step",
    "has_step",
    "list_steps",
    "register_step",
]
