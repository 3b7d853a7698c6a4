"""Publish-image push step handler."""

from __future__ import annotations

from airflow_deploykit.runbook import register_step
from airflow_deploykit.steps.deploy.step_push_image import handle_push_image

register_step("publish-image-push", handle_push_image)
