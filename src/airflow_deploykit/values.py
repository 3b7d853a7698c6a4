"""Helm values rendering for the official Airflow chart."""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any

from airflow_deploykit.config import DeploymentConfig, KeyStrategy
from airflow_deploykit.io import dump_yaml

logger = logging.getLogger(__name__)

# Secret keys the chart reads from referenced secrets
METADATA_SECRET_KEY = "connection"
FERNET_SECRET_KEY = "fernet-key"
WEBSERVER_SECRET_KEY = "webserver-secret-key"
GIT_SSH_SECRET_KEY = "gitSshKey"

WEBSERVER_PORT_NAME = "airflow-ui"


def deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge override into a copy of base.

    Nested mappings merge; everything else (lists included) is replaced.
    """
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _git_sync_values(config: DeploymentConfig) -> dict[str, Any]:
    git_sync = config.dags.git_sync
    values: dict[str, Any] = {"enabled": git_sync.enabled}
    if not git_sync.enabled:
        return values

    values.update(
        {
            "repo": git_sync.repo,
            "branch": git_sync.branch,
            "rev": git_sync.rev,
            "period": git_sync.period,
        }
    )
    if git_sync.sub_path:
        values["subPath"] = git_sync.sub_path
    if git_sync.ssh_key_secret:
        values["sshKeySecret"] = git_sync.ssh_key_secret
    if git_sync.credentials_secret:
        values["credentialsSecret"] = git_sync.credentials_secret
    return values


def _service_values(config: DeploymentConfig) -> dict[str, Any]:
    service = config.service
    port: dict[str, Any] = {"name": WEBSERVER_PORT_NAME, "port": service.port}
    if service.node_port is not None:
        port["nodePort"] = service.node_port
    return {"type": service.type.value, "ports": [port]}


def render_values(config: DeploymentConfig) -> dict[str, Any]:
    """Map the deployment config onto chart values.

    Inline keys are only emitted when present; with the secret strategy
    the values reference secrets by name and never carry key material.

    Args:
        config: Deployment configuration.

    Returns:
        Chart values mapping, ready to dump as YAML.
    """
    values: dict[str, Any] = {
        "images": {
            "airflow": {
                "repository": config.deployed_repository,
                "tag": config.image.tag,
                "pullPolicy": "IfNotPresent",
            }
        },
        "dags": {
            "persistence": {"enabled": config.dags.persistence},
            "gitSync": _git_sync_values(config),
        },
        "webserver": {"service": _service_values(config)},
    }

    if config.database.connection:
        values["data"] = {"metadataSecretName": config.database.secret_name}
    values["postgresql"] = {"enabled": config.database.bundled_postgresql}

    keys = config.keys
    if keys.strategy == KeyStrategy.SECRET:
        values["fernetKeySecretName"] = keys.fernet_secret_name
        values["webserverSecretKeySecretName"] = keys.webserver_secret_name
    else:
        if keys.fernet_key:
            values["fernetKey"] = keys.fernet_key
        if keys.webserver_secret_key:
            values["webserverSecretKey"] = keys.webserver_secret_key

    if config.extra_values:
        logger.debug(f"Merging extra values: {sorted(config.extra_values)}")
        values = deep_merge(values, config.extra_values)

    return values


def dump_values(values: Mapping[str, Any]) -> str:
    """Serialize chart values to YAML."""
    return dump_yaml(dict(values))


def redact_values(values: Mapping[str, Any]) -> dict[str, Any]:
    """Copy of values with inline key material masked, for display."""
    redacted = copy.deepcopy(dict(values))
    for key in ("fernetKey", "webserverSecretKey"):
        if redacted.get(key):
            redacted[key] = "***"
    return redacted
