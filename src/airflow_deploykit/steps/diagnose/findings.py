"""Turn diagnostic findings into step messages and vars."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import asdict

from airflow_deploykit.diagnose import Finding, FindingLevel
from airflow_deploykit.errors import DeployError
from airflow_deploykit.runbook import StepInput, StepResult

logger = logging.getLogger(__name__)


def run_check(step_input: StepInput, check: str, collect: Callable[[], list[Finding]]) -> StepResult:
    """Run one diagnostic check and record what it found.

    A check that cannot talk to the cluster becomes an error finding
    instead of a failed step, so the remaining checks still run.
    """
    result = StepResult()
    try:
        findings = collect()
    except DeployError as e:
        logger.warning(f"Check {check} could not complete: {e}")
        findings = [
            Finding(
                check=check,
                level=FindingLevel.ERROR,
                text=f"Check could not complete: {e.message}",
                command=getattr(e, "command", None),
                detail=getattr(e, "stderr", None) or None,
            )
        ]
    record_findings(step_input, result, findings)
    return result


def record_findings(step_input: StepInput, result: StepResult, findings: list[Finding]) -> None:
    """Report findings as messages and accumulate them under vars["diagnose"].

    Problems are warnings rather than errors so every check runs;
    finalize decides the overall result.
    """
    for finding in findings:
        data = {"check": finding.check}
        if finding.command:
            data["command"] = finding.command
        if finding.detail:
            data["detail"] = finding.detail
        if finding.level == FindingLevel.OK:
            result.add_info(finding.text, system="diagnose", **data)
        else:
            result.add_warning(finding.text, system="diagnose", **data)

    diagnose_vars = dict(step_input.vars.get("diagnose", {}))
    recorded = list(diagnose_vars.get("findings", []))
    recorded.extend({**asdict(f), "level": f.level.value} for f in findings)
    diagnose_vars["findings"] = recorded
    result.context_updates["diagnose"] = diagnose_vars
