"""Publish-image runbook step handlers.

Builds the custom image and ships it without touching the cluster:
- publish-image-init: Decide which registries and outputs apply
- publish-image-build: Same handler as deploy-build-image
- publish-image-push: Same handler as deploy-push-image
- publish-image-save: Export the image to a tarball (optional)
- publish-image-finalize: Summarize and write publish-image-report.json
"""

# Import step modules to register handlers
from airflow_deploykit.steps.publish_image import (
    step_build,
    step_finalize,
    step_init,
    step_push,
    step_save,
)

__all__ = [
    "step_init",
    "step_build",
    "step_push",
    "step_save",
    "step_finalize",
]
