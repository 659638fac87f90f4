"""HTTP health probe for the monitored etcd member.

Execute one GET request against `<address>/health` and decode the answer.
etcd replies with a JSON object whose `health` field is a boolean encoded as a
string::

    {"health": "true"}

Failure Kinds:
    ProbeConnectionError: Transport, TLS or timeout failure.
    ProbeReadError: The response body could not be read to the end.
    ProbePayloadError: The body is not a valid health payload.

All kinds map to the same metric value (unhealthy). The kind is only used as
the `reason` field of the error log line.
"""

import asyncio
from typing import Literal

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from etcd_monitor.core.logging_config import get_logger
from etcd_monitor.core.types import UNHEALTHY, HealthStatus

logger = get_logger(__name__)

HEALTH_PATH = "/health"
PROBE_TIMEOUT_SECONDS = 5.0


# --- Errors ---

class ProbeError(Exception):
    """Base class for a failed health probe."""

    reason = "unknown"
    summary = "Failed to check etcd health"


class ProbeConnectionError(ProbeError):
    reason = "connection"
    summary = "Failed to connect to etcd"


class ProbeReadError(ProbeError):
    reason = "read"
    summary = "Failed to get etcd health"


class ProbePayloadError(ProbeError):
    reason = "payload"
    summary = "Invalid health response payload"


# --- Wire format ---

class HealthPayload(BaseModel):
    """The `/health` response body. Newer etcd releases add a `reason` field."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    health: Literal["true", "false"]


def parse_health_payload(body: bytes) -> HealthStatus:
    """Decode a `/health` response body.

    Raises:
        ProbePayloadError: If the body is not JSON, is not an object, lacks the
            `health` field, or the field is not the string "true" or "false".
    """
    try:
        payload = HealthPayload.model_validate_json(body)
    except ValidationError as exc:
        raise ProbePayloadError(str(exc)) from exc
    return HealthStatus(is_healthy=payload.health == "true")


# --- Probe ---

async def _fetch(client: httpx.AsyncClient, url: str, timeout: float) -> bytes:
    try:
        async with client.stream("GET", url, timeout=timeout) as response:
            try:
                return await response.aread()
            except httpx.HTTPError as exc:
                raise ProbeReadError(str(exc) or type(exc).__name__) from exc
    except httpx.HTTPError as exc:
        raise ProbeConnectionError(str(exc) or type(exc).__name__) from exc


async def check_health(
    endpoint: str,
    client: httpx.AsyncClient,
    timeout: float = PROBE_TIMEOUT_SECONDS,
) -> HealthStatus:
    """Run one health check against `endpoint`.

    The HTTP status code is not consulted: etcd answers 503 with
    `{"health": "false"}` when it is unhealthy, which is a valid answer.

    Args:
        endpoint: Base URL of the etcd member, e.g. `https://127.0.0.1:2379`.
        client: Pre-configured (mutual TLS) HTTP client.
        timeout: Total time budget for the request, body included.

    Returns:
        The decoded health status.

    Raises:
        ProbeError: One of its subclasses, depending on where the check failed.
    """
    url = f"{endpoint.rstrip('/')}{HEALTH_PATH}"
    try:
        body = await asyncio.wait_for(_fetch(client, url, timeout), timeout)
    except asyncio.TimeoutError as exc:
        raise ProbeConnectionError(f"no answer from {url} within {timeout}s") from exc
    return parse_health_payload(body)


async def probe_unhealthy_count(endpoint: str, client: httpx.AsyncClient) -> float:
    """Check health and collapse the outcome into the metric value.

    Inability to confirm health counts as unhealthy.

    Returns:
        0.0 when etcd reports healthy, 1.0 in every other case.
    """
    try:
        status = await check_health(endpoint, client)
    except ProbeError as exc:
        logger.error(exc.summary, reason=exc.reason, error=str(exc), address=endpoint)
        return UNHEALTHY
    return status.unhealthy_count
