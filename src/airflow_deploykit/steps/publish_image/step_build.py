"""Publish-image build step handler."""

from __future__ import annotations

from airflow_deploykit.runbook import register_step
from airflow_deploykit.steps.deploy.step_build_image import handle_build_image

register_step("publish-image-build", handle_build_image)
