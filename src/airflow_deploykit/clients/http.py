"""httpx wrapper used to probe the Airflow web UI.

Transport failures surface as HTTPError or TimeoutError; any status code,
including 5xx from a webserver that is still starting, is returned as an
HTTPResponse for the caller to judge.
"""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import httpx

from airflow_deploykit.errors import HTTPError, TimeoutError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HTTPResponse:
    """What came back from the webserver.

    json is None unless the response declared a JSON content type and
    parsed cleanly; /health answers with JSON, the login page with HTML.
    """

    status_code: int
    body: str
    json: dict[str, Any] | list[Any] | None
    headers: dict[str, str]
    elapsed_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def request(
    client: httpx.Client,
    method: str,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    timeout: float | None = None,
) -> HTTPResponse:
    """Send one request and capture status, body and JSON.

    Args:
        client: Shared client from StepDeps.http.
        method: HTTP verb, any case.
        url: Full URL, e.g. http://<node-ip>:30080/health.
        headers: Extra request headers.
        timeout: Per-request timeout; the client's default when None.

    Raises:
        TimeoutError: The webserver did not answer in time.
        HTTPError: Connection refused, DNS failure or similar.
    """
    verb = method.upper()
    safe_url = _redact_url(url)
    logger.debug(f"{verb} {safe_url}")

    try:
        response = client.request(method=verb, url=url, headers=headers, timeout=timeout)
    except httpx.TimeoutException as e:
        raise TimeoutError(
            f"Request timed out: {verb} {safe_url}",
            timeout_seconds=timeout or client.timeout.connect,
        ) from e
    except httpx.RequestError as e:
        raise HTTPError(f"Request failed: {e}", url=safe_url, method=verb) from e

    payload = None
    if "application/json" in response.headers.get("content-type", ""):
        with contextlib.suppress(ValueError):
            payload = response.json()

    elapsed_ms = 0.0
    # elapsed is unset on responses that never went through a transport
    with contextlib.suppress(RuntimeError):
        elapsed_ms = round(response.elapsed.total_seconds() * 1000, 2)

    logger.debug(f"{verb} {safe_url} -> {response.status_code} ({elapsed_ms}ms)")
    return HTTPResponse(
        status_code=response.status_code,
        body=response.text,
        json=payload,
        headers=dict(response.headers),
        elapsed_ms=elapsed_ms,
    )


def _redact_url(url: str) -> str:
    """Mask the password of user:password@host URLs."""
    parts = urlsplit(url)
    if parts.password is None:
        return url
    netloc = f"{parts.username}:***@{parts.hostname or ''}"
    if parts.port:
        netloc += f":{parts.port}"
    return urlunsplit(parts._replace(netloc=netloc))
