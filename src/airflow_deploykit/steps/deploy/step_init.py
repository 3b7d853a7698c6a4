"""Deploy init step handler.

Validates the deployment config and the chart values it renders, and
decides which optional steps run.
"""

from __future__ import annotations

from collections.abc import Mapping

from airflow_deploykit.config import DeploymentConfig, KeyStrategy
from airflow_deploykit.credentials import GIT_PASSWORD_ENV, GIT_USERNAME_ENV
from airflow_deploykit.diagnose import validate_connection_string
from airflow_deploykit.errors import SchemaValidationError
from airflow_deploykit.keys import validate_fernet_key
from airflow_deploykit.runbook import (
    StepDeps,
    StepInput,
    StepResult,
    register_step,
)
from airflow_deploykit.schema import validate_values
from airflow_deploykit.values import render_values


def _check_config(config: DeploymentConfig, env: Mapping[str, str]) -> tuple[list[str], list[str]]:
    """Semantic checks pydantic cannot express.

    Returns:
        (errors, warnings)
    """
    errors: list[str] = []
    warnings: list[str] = []

    if config.database.connection:
        errors.extend(validate_connection_string(config.database.connection))
    elif not config.database.bundled_postgresql:
        errors.append("database.connection is required when the bundled PostgreSQL is disabled")
    else:
        warnings.append("Using the chart's bundled PostgreSQL; not suitable for production")

    keys = config.keys
    if keys.strategy == KeyStrategy.INLINE:
        # Generated inline keys would change on every upgrade
        if not keys.fernet_key or not keys.webserver_secret_key:
            errors.append(
                "Inline key strategy requires keys.fernet_key and keys.webserver_secret_key "
                "(run 'airflow-deploy keys generate')"
            )
    if keys.fernet_key:
        errors.extend(validate_fernet_key(keys.fernet_key))

    git_sync = config.dags.git_sync
    if git_sync.enabled:
        if git_sync.ssh_key_file and not git_sync.ssh_key_secret:
            errors.append("dags.git_sync.ssh_key_file requires dags.git_sync.ssh_key_secret")
        if git_sync.credentials_secret and not (env.get(GIT_USERNAME_ENV) and env.get(GIT_PASSWORD_ENV)):
            warnings.append(
                f"{GIT_USERNAME_ENV}/{GIT_PASSWORD_ENV} not set; "
                f"secret '{git_sync.credentials_secret}' must already exist"
            )
        if config.dags.persistence:
            warnings.append("Both DAG persistence and GitSync are enabled")

    return errors, warnings


@register_step("deploy-init")
def handle_init(step_input: StepInput, deps: StepDeps) -> StepResult:
    """Initialize the deploy runbook.

    Optional params:
        build_image: Build the image before deploying (default: true).
        push_image: Push to configured registries (default: true).
    """
    result = StepResult()
    config = deps.config

    errors, warnings = _check_config(config, deps.env)
    for error in errors:
        result.add_error(error, system="deploy")
    for warning in warnings:
        result.add_warning(warning, system="deploy")

    try:
        validate_values(render_values(config))
    except SchemaValidationError as e:
        for error in e.errors:
            result.add_error(f"Chart values: {error}", system="deploy")

    if result.has_errors:
        return result

    build_image = bool(step_input.params.get("build_image", True))
    push_image = bool(step_input.params.get("push_image", True)) and bool(config.registries)
    if step_input.params.get("push_image", True) and not config.registries:
        result.add_info(
            "No registries configured; the cluster must be able to use the local image",
            system="deploy",
        )

    result.context_updates["image"] = {
        "local_ref": config.image.local_ref,
        "deployed_ref": config.image_ref(),
        "pushed": [],
    }
    result.context_updates["deploy"] = {
        "release": config.chart.release,
        "namespace": config.chart.namespace,
        "chart": config.chart.reference,
        "dry_run": deps.runner.dry_run,
    }
    result.flow_control = {"build_image": build_image, "push_image": push_image}

    result.add_info(
        f"Deploying {config.image_ref()} as release {config.chart.release} "
        f"in namespace {config.chart.namespace}",
        system="deploy",
    )
    return result
