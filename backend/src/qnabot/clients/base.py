"""Shared HTTP plumbing and errors for upstream service clients."""

import logging
import time
from typing import Any

import httpx

from qnabot.constants.gateway import HTTP_TIMEOUT_SECONDS
from qnabot.dialog.gateway import UpstreamUnavailable

logger = logging.getLogger(__name__)


class UpstreamConnectionError(UpstreamUnavailable):
    """Raised when an upstream service cannot be reached or times out."""

    pass


class UpstreamAuthenticationError(UpstreamUnavailable):
    """Raised when an upstream service rejects our credentials."""

    pass


class UpstreamRateLimitError(UpstreamUnavailable):
    """Raised when an upstream service throttles us."""

    pass


class UpstreamResponseError(UpstreamUnavailable):
    """Raised on an error status or a response body we cannot read."""

    pass


def create_http_client(
    timeout: float = HTTP_TIMEOUT_SECONDS,
    retries: int = 0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create an async HTTP client.

    Args:
        timeout: Per-request timeout in seconds.
        retries: Connection retries (ignored when a transport is given).
        transport: Optional transport override, e.g. httpx.MockTransport in tests.

    Returns:
        Configured httpx.AsyncClient.
    """
    if transport is None:
        transport = httpx.AsyncHTTPTransport(retries=retries)
    return httpx.AsyncClient(timeout=timeout, transport=transport)


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    service: str,
    **kwargs: Any,
) -> Any:
    """Send a request and decode its JSON body.

    Args:
        client: HTTP client to send with.
        method: HTTP method.
        url: Request URL.
        service: Service name used in errors and logs.
        **kwargs: Passed through to httpx (headers, params, json, data).

    Returns:
        Decoded JSON body.

    Raises:
        UpstreamConnectionError: On network errors and timeouts.
        UpstreamAuthenticationError: On 401/403.
        UpstreamRateLimitError: On 429.
        UpstreamResponseError: On other error statuses or invalid JSON.
    """
    start_time = time.perf_counter()
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        raise UpstreamConnectionError(f"{service} timed out: {e}") from e
    except httpx.HTTPError as e:
        raise UpstreamConnectionError(f"{service} connection failed: {e}") from e

    duration_ms = int((time.perf_counter() - start_time) * 1000)
    logger.debug(f"{service} {method} {response.status_code} in {duration_ms}ms")

    if response.status_code in (401, 403):
        raise UpstreamAuthenticationError(
            f"{service} authentication failed ({response.status_code})"
        )
    if response.status_code == 429:
        raise UpstreamRateLimitError(f"{service} rate limit exceeded")
    if response.is_error:
        raise UpstreamResponseError(f"{service} returned status {response.status_code}")

    try:
        return response.json()
    except ValueError as e:
        raise UpstreamResponseError(f"{service} returned invalid JSON: {e}") from e
