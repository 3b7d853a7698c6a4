"""Airflow web UI reachability and health probe."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from airflow_deploykit.clients.http import request
from airflow_deploykit.errors import HTTPError, TimeoutError

logger = logging.getLogger(__name__)

HEALTH_PATH = "/health"


@dataclass(frozen=True)
class WebUIHealth:
    """Result of probing the Airflow /health endpoint.

    Attributes:
        url: Probed URL.
        reachable: True if any HTTP response was received.
        status_code: HTTP status (None if unreachable).
        components: Component name -> status ("healthy"/"unhealthy").
        error: Connection error text when unreachable.
    """

    url: str
    reachable: bool
    status_code: int | None = None
    components: dict[str, str] = field(default_factory=dict)
    error: str | None = None

    @property
    def healthy(self) -> bool:
        """Reachable, 2xx, and every reported component healthy."""
        if not self.reachable or self.status_code is None:
            return False
        if not 200 <= self.status_code < 300:
            return False
        return all(status == "healthy" for status in self.components.values())

    @property
    def unhealthy_components(self) -> list[str]:
        return sorted(name for name, status in self.components.items() if status != "healthy")


def health_url(host: str, port: int, scheme: str = "http") -> str:
    return f"{scheme}://{host}:{port}{HEALTH_PATH}"


def _components(payload: Any) -> dict[str, str]:
    if not isinstance(payload, dict):
        return {}
    components: dict[str, str] = {}
    for name, info in payload.items():
        if isinstance(info, dict) and "status" in info:
            components[name] = str(info["status"])
    return components


def check_health(client: httpx.Client, url: str, *, timeout: float = 5.0) -> WebUIHealth:
    """Probe the web UI health endpoint.

    Never raises for network failures; they are reported as unreachable.
    """
    try:
        response = request(client, "GET", url, timeout=timeout)
    except (HTTPError, TimeoutError) as e:
        logger.debug(f"Health probe failed for {url}: {e}")
        return WebUIHealth(url=url, reachable=False, error=str(e))

    return WebUIHealth(
        url=url,
        reachable=True,
        status_code=response.status_code,
        components=_components(response.json),
    )
