"""Kubernetes secrets the Airflow chart references.

Builds the set of secrets a deployment needs (metadata connection, Fernet
key, webserver secret key, GitSync credentials) from config and environment,
and applies them through kubectl.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from airflow_deploykit.clients.kubectl import Kubectl
from airflow_deploykit.config import DeploymentConfig, KeyStrategy
from airflow_deploykit.errors import ConfigError
from airflow_deploykit.keys import (
    fingerprint,
    generate_fernet_key,
    generate_webserver_secret_key,
)
from airflow_deploykit.values import (
    FERNET_SECRET_KEY,
    GIT_SSH_SECRET_KEY,
    METADATA_SECRET_KEY,
    WEBSERVER_SECRET_KEY,
)

logger = logging.getLogger(__name__)

GIT_USERNAME_ENV = "AIRFLOW_DEPLOY_GIT_USERNAME"
GIT_PASSWORD_ENV = "AIRFLOW_DEPLOY_GIT_PASSWORD"


@dataclass(frozen=True)
class SecretSpec:
    """A secret to create, with its literal data.

    Attributes:
        name: Secret name.
        literals: Key/value pairs stored in the secret.
        purpose: Short label for logs and reports.
    """

    name: str
    literals: dict[str, str] = field(repr=False)
    purpose: str = ""

    def fingerprints(self) -> dict[str, str]:
        """Per-key fingerprints, safe to log."""
        return {key: fingerprint(value) for key, value in self.literals.items()}


@dataclass(frozen=True)
class ResolvedKeys:
    """Fernet and webserver keys after falling back to generation."""

    fernet_key: str = field(repr=False)
    webserver_secret_key: str = field(repr=False)
    generated: tuple[str, ...] = ()


def resolve_keys(config: DeploymentConfig) -> ResolvedKeys:
    """Use configured keys, generating any that are missing."""
    generated: list[str] = []

    fernet_key = config.keys.fernet_key
    if not fernet_key:
        fernet_key = generate_fernet_key()
        generated.append("fernet_key")

    webserver_key = config.keys.webserver_secret_key
    if not webserver_key:
        webserver_key = generate_webserver_secret_key()
        generated.append("webserver_secret_key")

    return ResolvedKeys(
        fernet_key=fernet_key,
        webserver_secret_key=webserver_key,
        generated=tuple(generated),
    )


def git_sync_secret(config: DeploymentConfig, environ: Mapping[str, str]) -> SecretSpec | None:
    """GitSync secret from an SSH key file or username/password env vars.

    Returns None when GitSync is off or nothing is configured to create.

    Raises:
        ConfigError: If the configured SSH key file cannot be read.
    """
    git_sync = config.dags.git_sync
    if not git_sync.enabled:
        return None

    if git_sync.ssh_key_secret and git_sync.ssh_key_file:
        key_path = Path(git_sync.ssh_key_file).expanduser()
        try:
            ssh_key = key_path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read GitSync SSH key: {e}", path=str(key_path)) from e
        return SecretSpec(
            name=git_sync.ssh_key_secret,
            literals={GIT_SSH_SECRET_KEY: ssh_key},
            purpose="gitsync-ssh",
        )

    username = environ.get(GIT_USERNAME_ENV)
    password = environ.get(GIT_PASSWORD_ENV)
    if git_sync.credentials_secret and username and password:
        # git-sync v3 and v4 read different variable names
        return SecretSpec(
            name=git_sync.credentials_secret,
            literals={
                "GIT_SYNC_USERNAME": username,
                "GIT_SYNC_PASSWORD": password,
                "GITSYNC_USERNAME": username,
                "GITSYNC_PASSWORD": password,
            },
            purpose="gitsync-credentials",
        )
    return None


def secret_specs(
    config: DeploymentConfig,
    keys: ResolvedKeys,
    environ: Mapping[str, str] | None = None,
) -> list[SecretSpec]:
    """All secrets the rendered chart values reference."""
    specs: list[SecretSpec] = []

    if config.database.connection:
        specs.append(
            SecretSpec(
                name=config.database.secret_name,
                literals={METADATA_SECRET_KEY: config.database.connection},
                purpose="metadata-connection",
            )
        )

    if config.keys.strategy == KeyStrategy.SECRET:
        specs.append(
            SecretSpec(
                name=config.keys.fernet_secret_name,
                literals={FERNET_SECRET_KEY: keys.fernet_key},
                purpose="fernet-key",
            )
        )
        specs.append(
            SecretSpec(
                name=config.keys.webserver_secret_name,
                literals={WEBSERVER_SECRET_KEY: keys.webserver_secret_key},
                purpose="webserver-secret-key",
            )
        )

    git_spec = git_sync_secret(config, environ or {})
    if git_spec is not None:
        specs.append(git_spec)

    return specs


def apply_secret(kubectl: Kubectl, spec: SecretSpec, *, replace: bool = False) -> bool:
    """Create one secret.

    Returns:
        True if the secret was written, False if an existing one was kept.
    """
    result = kubectl.create_secret(spec.name, spec.literals, replace=replace)
    if result is None:
        return False
    logger.info(f"Secret {spec.name} written ({spec.purpose}): {spec.fingerprints()}")
    return True
