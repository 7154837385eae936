"""
Bounded retry with exponential backoff for outbound calls.

Usage:
    result = await with_retry(lambda: client.post(url, json=body), retries=3)

Waits use asyncio.sleep, so an enclosing asyncio.wait_for / task
cancellation interrupts a retry loop mid-backoff.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import httpx
import structlog

from config.settings import Settings
from exceptions import TransientNetworkError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry parameters shared by the platform clients."""

    retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_factor: float = 2.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            retries=settings.sync_retry_attempts,
            initial_delay=settings.sync_retry_initial_delay,
            max_delay=settings.sync_retry_max_delay,
            backoff_factor=settings.sync_retry_backoff_factor,
        )


def is_retryable_status(status: int) -> bool:
    """429 and every 5xx are worth retrying."""
    return status == 429 or status >= 500


def is_transient_error(error: BaseException) -> bool:
    """
    Classify an error as retryable.

    Retryable: TransientNetworkError, httpx timeouts and transport
    failures (connection reset/refused, protocol errors), HTTPStatusError
    with 429/5xx. Everything else, including platform business errors
    and 4xx responses, is fatal.
    """
    if isinstance(error, TransientNetworkError):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return is_retryable_status(error.response.status_code)
    if isinstance(error, (httpx.TimeoutException, httpx.TransportError)):
        return True
    return False


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 10.0,
    backoff_factor: float = 2.0,
    is_retryable: Callable[[BaseException], bool] = is_transient_error,
    on_retry: Optional[Callable[[BaseException, int], None]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run operation, retrying retryable failures.

    Args:
        operation: Zero-argument callable returning an awaitable
        retries: Extra attempts after the first (total = retries + 1)
        initial_delay: First wait in seconds
        max_delay: Cap for the wait
        backoff_factor: Multiplier applied after each wait
        is_retryable: Classifier; False stops immediately
        on_retry: Called with (error, attempt) before each wait
        sleep: Awaitable sleep (injectable for tests)

    Returns:
        Whatever operation returns

    Raises:
        The last error once attempts are exhausted or it is not retryable
    """
    delay = initial_delay
    attempt = 1

    while True:
        try:
            return await operation()
        except Exception as error:
            if attempt > retries or not is_retryable(error):
                raise

            if on_retry is not None:
                on_retry(error, attempt)

            await sleep(delay)
            delay = min(delay * backoff_factor, max_delay)
            attempt += 1


async def retry_with_policy(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    label: str,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """with_retry configured from a RetryPolicy, logging each retry under `label`."""

    def log_retry(error: BaseException, attempt: int) -> None:
        logger.warning(
            "outbound_call_retry",
            call=label,
            attempt=attempt,
            error=str(error),
            error_type=type(error).__name__
        )

    return await with_retry(
        operation,
        retries=policy.retries,
        initial_delay=policy.initial_delay,
        max_delay=policy.max_delay,
        backoff_factor=policy.backoff_factor,
        on_retry=log_retry,
        sleep=sleep,
    )
