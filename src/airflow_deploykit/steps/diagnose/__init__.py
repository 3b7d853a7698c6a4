"""Diagnose runbook step handlers.

Automates the manual checks for the three common failure symptoms:
- diagnose-init: Confirm the release and namespace exist
- diagnose-check-migrations: Migration job failing
- diagnose-check-git-sync: GitSync sidecar not syncing DAGs
- diagnose-check-webserver: Web UI unreachable
- diagnose-finalize: Summarize findings and write diagnose-report.json
"""

# Import step modules to register handlers
from airflow_deploykit.steps.diagnose import (
    step_check_git_sync,
    step_check_migrations,
    step_check_webserver,
    step_finalize,
    step_init,
)

__all__ = [
    "step_init",
    "step_check_migrations",
    "step_check_git_sync",
    "step_check_webserver",
    "step_finalize",
]
