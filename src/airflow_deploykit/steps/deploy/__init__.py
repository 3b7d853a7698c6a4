"""Deploy runbook step handlers.

This package replaces the manual build/push/helm sequence:
- deploy-init: Validate config and rendered values, decide what to run
- deploy-build-image: Render the build context and docker build it
- deploy-push-image: Tag and push the image to every registry
- deploy-add-repo: Add and refresh the Airflow chart repository
- deploy-create-namespace: Create the target namespace if missing
- deploy-create-secrets: Create metadata, key and GitSync secrets
- deploy-install-chart: helm upgrade --install with rendered values
- deploy-wait-for-pods: Poll until the release's pods settle
- deploy-check-ui: Probe the web UI health endpoint
- deploy-finalize: Summarize and write deploy-report.json
"""

# Import step modules to register handlers
from airflow_deploykit.steps.deploy import (
    step_add_repo,
    step_build_image,
    step_check_ui,
    step_create_namespace,
    step_create_secrets,
    step_finalize,
    step_init,
    step_install_chart,
    step_push_image,
    step_wait_for_pods,
)

__all__ = [
    "step_init",
    "step_build_image",
    "step_push_image",
    "step_add_repo",
    "step_create_namespace",
    "step_create_secrets",
    "step_install_chart",
    "step_wait_for_pods",
    "step_check_ui",
    "step_finalize",
]
