"""airflow-deploykit: Build a custom Airflow image and deploy it with Helm."""

__version__ = "0.1.0"

from airflow_deploykit.config import (
    DeploymentConfig,
    ImageConfig,
    KeyStrategy,
    ServiceType,
    load_config,
)
from airflow_deploykit.credentials import SecretSpec, resolve_keys, secret_specs
from airflow_deploykit.deps import build_deps
from airflow_deploykit.diagnose import Finding, FindingLevel
from airflow_deploykit.errors import (
    CommandError,
    ConfigError,
    DeployError,
    SchemaValidationError,
)
from airflow_deploykit.image import render_dockerfile, render_requirements, write_build_context
from airflow_deploykit.keys import generate_fernet_key, generate_webserver_secret_key
from airflow_deploykit.runbook import RunbookRunner, load_runbook
from airflow_deploykit.schema import validate_values
from airflow_deploykit.values import render_values

__all__ = [
    # Config
    "DeploymentConfig",
    "ImageConfig",
    "KeyStrategy",
    "ServiceType",
    "load_config",
    # Image
    "render_dockerfile",
    "render_requirements",
    "write_build_context",
    # Values
    "render_values",
    "validate_values",
    # Keys and secrets
    "SecretSpec",
    "generate_fernet_key",
    "generate_webserver_secret_key",
    "resolve_keys",
    "secret_specs",
    # Runbooks
    "RunbookRunner",
    "build_deps",
    "load_runbook",
    # Diagnostics
    "Finding",
    "FindingLevel",
    # Errors
    "CommandError",
    "ConfigError",
    "DeployError",
    "SchemaValidationError",
]
