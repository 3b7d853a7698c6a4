"""Step implementations for runbook handlers.

Import all step modules to register their handlers with @register_step.
"""

# Import all step packages to register handlers
from airflow_deploykit.steps import deploy, diagnose, publish_image, rotate_keys

__all__ = [
    "deploy",
    "diagnose",
    "publish_image",
    "rotate_keys",
]
