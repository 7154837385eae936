"""
Shared HTTP handling for the platform clients.

Turns transport failures and error statuses into the two platform error
types the retry executor understands:
    TransientNetworkError   timeouts, connection failures, 429, 5xx
    UpstreamBusinessError   other 4xx, unparseable bodies
"""

from typing import Any

import httpx
import structlog

from exceptions import TransientNetworkError, UpstreamBusinessError
from utils.retry import is_retryable_status

logger = structlog.get_logger(__name__)


def error_messages(response: httpx.Response) -> list[str]:
    """Best-effort extraction of error text from a platform error body."""
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return [text[:500]] if text else []

    if not isinstance(body, dict):
        return []

    if body.get("message"):
        return [str(body["message"])]

    errors = body.get("errors")
    if isinstance(errors, str):
        return [errors]
    if isinstance(errors, list):
        return [
            str(e.get("message", e)) if isinstance(e, dict) else str(e)
            for e in errors
        ]
    if isinstance(errors, dict):
        return [f"{key}: {value}" for key, value in errors.items()]

    return []


def check_status(service: str, response: httpx.Response) -> None:
    """Raise the matching platform error for a non-2xx response."""
    status = response.status_code
    if status < 400:
        return

    messages = error_messages(response)
    logger.warning(
        "platform_http_error",
        service=service,
        status_code=status,
        errors=messages
    )

    if is_retryable_status(status):
        detail = f": {messages[0]}" if messages else ""
        raise TransientNetworkError(
            service,
            f"{service} returned HTTP {status}{detail}",
            status_code=status
        )

    raise UpstreamBusinessError(
        service,
        messages or [f"{service} returned HTTP {status}"],
        status_code=status
    )


async def request_json(
    client: httpx.AsyncClient,
    service: str,
    method: str,
    url: str,
    **kwargs: Any
) -> Any:
    """
    Send one request and return the decoded JSON body.

    Raises:
        TransientNetworkError: Timeout, transport failure, 429 or 5xx
        UpstreamBusinessError: Other 4xx, or a 2xx body that isn't JSON
    """
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        raise TransientNetworkError(service, f"{service} request timed out") from e
    except httpx.TransportError as e:
        raise TransientNetworkError(service, f"{service} connection failed: {e}") from e

    check_status(service, response)

    try:
        return response.json()
    except ValueError as e:
        raise UpstreamBusinessError(
            service,
            [f"{service} returned a non-JSON response"],
            status_code=response.status_code
        ) from e
