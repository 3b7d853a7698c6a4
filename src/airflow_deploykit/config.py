"""Deployment configuration models.

A single YAML file describes one Airflow deployment: the custom image,
the Helm chart coordinates, DAG synchronization, the metadata database,
the webserver service, secret keys and the registries the image is pushed to.

Example deploy.yaml:
    image:
      repository: registry.example.com/data/airflow-custom
      tag: "1.0.0"
    chart:
      namespace: airflow
    dags:
      git_sync:
        enabled: true
        repo: git@github.com:example/dags.git
        ssh_key_secret: airflow-ssh-secret
    service:
      type: NodePort
      node_port: 30080
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from airflow_deploykit.errors import ConfigError

logger = logging.getLogger(__name__)

ENV_PREFIX = "AIRFLOW_DEPLOY_"

# Environment variables that override file values (single source of truth)
ENV_OVERRIDES = {
    "database.connection": "AIRFLOW_DEPLOY_DB_CONNECTION",
    "keys.fernet_key": "AIRFLOW_DEPLOY_FERNET_KEY",
    "keys.webserver_secret_key": "AIRFLOW_DEPLOY_WEBSERVER_SECRET_KEY",
    "chart.namespace": "AIRFLOW_DEPLOY_NAMESPACE",
    "image.tag": "AIRFLOW_DEPLOY_IMAGE_TAG",
}

NODE_PORT_RANGE = (30000, 32767)

_VERSION_TAG = re.compile(r"^(\d+\.\d+\.\d+)")


class PythonPackage(BaseModel):
    """Python distribution installed into the custom image."""

    name: str
    version: str | None = None

    @property
    def requirement(self) -> str:
        """Requirement line for pip (name==version, or bare name)."""
        if self.version:
            return f"{self.name}=={self.version}"
        return self.name


def _default_packages() -> list[PythonPackage]:
    return [
        PythonPackage(name="apache-airflow-providers-apache-spark", version="2.1.3"),
        PythonPackage(name="numpy", version="1.24.4"),
        PythonPackage(name="pandas", version="2.0.3"),
        PythonPackage(name="apache-airflow-providers-trino", version="5.4.0"),
    ]


class ImageConfig(BaseModel):
    """Custom Airflow image recipe.

    Attributes:
        base_image: Upstream Airflow image the recipe extends.
        repository: Repository name of the built image.
        tag: Tag of the built image.
        maintainer: Value of the maintainer label.
        os_packages: Debian packages installed as root.
        python_packages: Distributions installed via requirements.txt.
        env: Environment variables baked into the image.
        pin_airflow: Pin apache-airflow to the base image's version.
    """

    base_image: str = "apache/airflow:2.7.3"
    repository: str = "airflow-custom"
    tag: str = "1.0.0"
    maintainer: str = "Airflow-Custom-Image"
    os_packages: list[str] = Field(default_factory=lambda: ["openjdk-11-jre-headless"])
    python_packages: list[PythonPackage] = Field(default_factory=_default_packages)
    env: dict[str, str] = Field(
        default_factory=lambda: {"JAVA_HOME": "/usr/lib/jvm/java-11-openjdk-amd64"}
    )
    pin_airflow: bool = True

    @field_validator("python_packages", mode="before")
    @classmethod
    def parse_packages(cls, v: Any) -> Any:
        """Accept 'name==version' strings as well as mappings."""
        if not isinstance(v, list):
            return v
        parsed: list[Any] = []
        for item in v:
            if isinstance(item, str):
                name, _, version = item.partition("==")
                parsed.append({"name": name.strip(), "version": version.strip() or None})
            else:
                parsed.append(item)
        return parsed

    @property
    def airflow_version(self) -> str | None:
        """Airflow version encoded in the base image tag, if any."""
        _, _, tag = self.base_image.rpartition(":")
        if not tag or "/" in tag:
            return None
        match = _VERSION_TAG.match(tag)
        return match.group(1) if match else None

    @property
    def local_ref(self) -> str:
        """Reference of the locally built image."""
        return f"{self.repository}:{self.tag}"


class ChartConfig(BaseModel):
    """Coordinates of the Airflow Helm chart and its release."""

    repo_name: str = "apache-airflow"
    repo_url: str = "https://airflow.apache.org"
    name: str = "airflow"
    version: str | None = None
    release: str = "airflow"
    namespace: str = "airflow"
    timeout: str = "10m0s"

    @property
    def reference(self) -> str:
        """Chart reference as passed to helm (repo/chart)."""
        return f"{self.repo_name}/{self.name}"


class GitSyncConfig(BaseModel):
    """GitSync sidecar settings."""

    enabled: bool = False
    repo: str | None = None
    branch: str = "main"
    rev: str = "HEAD"
    sub_path: str | None = None
    period: str = "5s"
    ssh_key_secret: str | None = None
    ssh_key_file: str | None = None
    credentials_secret: str | None = None

    @model_validator(mode="after")
    def check_repo(self) -> GitSyncConfig:
        if self.enabled and not self.repo:
            raise ValueError("dags.git_sync.repo is required when git_sync is enabled")
        return self


class DagsConfig(BaseModel):
    """How DAG files reach the deployment."""

    persistence: bool = False
    git_sync: GitSyncConfig = Field(default_factory=GitSyncConfig)


class DatabaseConfig(BaseModel):
    """Metadata database settings.

    Attributes:
        connection: SQLAlchemy-style connection string (stored in a secret).
        secret_name: Name of the secret holding the connection string.
        use_bundled_postgresql: Keep the chart's bundled PostgreSQL.
    """

    connection: str | None = None
    secret_name: str = "airflow-metadata"
    use_bundled_postgresql: bool | None = None

    @property
    def bundled_postgresql(self) -> bool:
        """Whether the chart's PostgreSQL subchart stays enabled."""
        if self.use_bundled_postgresql is not None:
            return self.use_bundled_postgresql
        return self.connection is None


class ServiceType(str, Enum):
    """Kubernetes service types supported for the webserver."""

    CLUSTER_IP = "ClusterIP"
    NODE_PORT = "NodePort"
    LOAD_BALANCER = "LoadBalancer"


class ServiceConfig(BaseModel):
    """Webserver service exposure."""

    type: ServiceType = ServiceType.NODE_PORT
    port: int = 8080
    node_port: int | None = 30080

    @model_validator(mode="after")
    def check_node_port(self) -> ServiceConfig:
        if self.type == ServiceType.CLUSTER_IP and "node_port" not in self.model_fields_set:
            self.node_port = None
        if self.node_port is None:
            return self
        if self.type == ServiceType.CLUSTER_IP:
            raise ValueError("service.node_port is not allowed for ClusterIP services")
        low, high = NODE_PORT_RANGE
        if not low <= self.node_port <= high:
            raise ValueError(f"service.node_port must be within {low}-{high}, got {self.node_port}")
        return self


class KeyStrategy(str, Enum):
    """Where the Fernet and webserver keys live."""

    SECRET = "secret"
    INLINE = "inline"


class KeysConfig(BaseModel):
    """Fernet key and webserver secret key settings."""

    fernet_key: str | None = None
    webserver_secret_key: str | None = None
    strategy: KeyStrategy = KeyStrategy.SECRET
    fernet_secret_name: str = "airflow-fernet-key"
    webserver_secret_name: str = "airflow-webserver-secret"


class RegistryConfig(BaseModel):
    """Container registry the image is pushed to."""

    url: str
    repository: str | None = None

    def image_ref(self, image: ImageConfig) -> str:
        """Full reference of the image in this registry."""
        repository = self.repository or image.repository.rsplit("/", 1)[-1]
        return f"{self.url.rstrip('/')}/{repository}:{image.tag}"


class DeploymentConfig(BaseModel):
    """Complete deployment description loaded from YAML."""

    image: ImageConfig = Field(default_factory=ImageConfig)
    chart: ChartConfig = Field(default_factory=ChartConfig)
    dags: DagsConfig = Field(default_factory=DagsConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    service: ServiceConfig = Field(default_factory=ServiceConfig)
    keys: KeysConfig = Field(default_factory=KeysConfig)
    registries: list[RegistryConfig] = Field(default_factory=list)
    extra_values: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_yaml(cls, path: str | Path) -> DeploymentConfig:
        """Load a deployment config from a YAML file.

        Raises:
            ConfigError: If the file is missing, not YAML, or invalid.
        """
        data = _read_yaml(Path(path))
        return _validate(data, str(path))

    def image_ref(self, registry: RegistryConfig | None = None) -> str:
        """Image reference the chart should deploy.

        Uses the given registry, else the first configured registry,
        else the local repository:tag.
        """
        target = registry or (self.registries[0] if self.registries else None)
        if target is None:
            return self.image.local_ref
        return target.image_ref(self.image)

    @property
    def deployed_repository(self) -> str:
        """Repository part of image_ref()."""
        return self.image_ref().rsplit(":", 1)[0]


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}", path=str(path))

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}", path=str(path)) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("Config file must contain a YAML object", path=str(path))
    return data


def _validate(data: Mapping[str, Any], source: str | None) -> DeploymentConfig:
    try:
        return DeploymentConfig.model_validate(data)
    except ValidationError as e:
        errors = [
            f"At '{'.'.join(str(p) for p in err['loc']) or '(root)'}': {err['msg']}"
            for err in e.errors()
        ]
        raise ConfigError(
            f"Invalid deployment config with {len(errors)} error(s)",
            path=source,
            errors=errors,
        ) from e


def _set_dotted(data: dict[str, Any], dotted: str, value: Any) -> None:
    section, _, key = dotted.partition(".")
    target = data.setdefault(section, {})
    if not isinstance(target, dict):
        raise ConfigError(f"Config section '{section}' must be a mapping")
    target[key] = value


def apply_env_overrides(data: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """Overlay AIRFLOW_DEPLOY_* environment variables onto raw config data.

    Args:
        data: Raw config mapping (as loaded from YAML).
        environ: Environment mapping (typically os.environ).

    Returns:
        A new mapping with overrides applied.
    """
    merged = {k: dict(v) if isinstance(v, dict) else v for k, v in data.items()}
    for dotted, env_var in ENV_OVERRIDES.items():
        value = environ.get(env_var)
        if value:
            logger.debug(f"Config override from {env_var} -> {dotted}")
            _set_dotted(merged, dotted, value)
    return merged


def load_config(
    path: str | Path | None,
    environ: Mapping[str, str] | None = None,
) -> DeploymentConfig:
    """Load deployment config from YAML with environment overrides.

    Args:
        path: Path to deploy.yaml (None uses defaults only).
        environ: Environment mapping (defaults to os.environ).

    Returns:
        Validated DeploymentConfig.

    Raises:
        ConfigError: If loading or validation fails.
    """
    if environ is None:
        environ = os.environ

    data = _read_yaml(Path(path)) if path else {}
    data = apply_env_overrides(data, environ)
    return _validate(data, str(path) if path else None)
