"""
nomad_bootstrap/utils/async_retry.py

Bounded, fixed-delay retry helpers:
 - retry_result: run a coroutine factory until it succeeds or attempts run
   out, returning a RetryResult instead of raising.
 - retry: same, but returns the value or raises RetryExhausted.

Only transient network work (artifact downloads) goes through these.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Generic, Optional
from typing_extensions import TypeVar

from pydantic import BaseModel, ConfigDict

from nomad_bootstrap.errors import RetryExhausted

R = TypeVar("R")

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_DELAY_SECONDS = 10.0

logger = logging.getLogger(__name__)


class RetryResult(BaseModel, Generic[R]):
    """Outcome of a retried operation.

    Attributes:
        succeeded: True if some attempt returned normally.
        value: The returned value when succeeded, else None.
        attempts: How many attempts were made in total.
        error: The last exception when not succeeded, else None.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    succeeded: bool
    value: Optional[R] = None
    attempts: int
    error: Optional[BaseException] = None


async def retry_result(
    operation: Callable[[], Awaitable[R]],
    description: str,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    delay: float = DEFAULT_DELAY_SECONDS,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> RetryResult[R]:
    """
    Calls `operation` up to `max_attempts` times, sleeping `delay` seconds
    between failed attempts. A warning is logged for every failure.

    Args:
        operation: Zero-argument callable returning a fresh awaitable per attempt.
        description: Human-readable name used in log lines.
        max_attempts: Total attempts, not retries. Must be >= 1.
        delay: Seconds between attempts.
        sleep: Sleep function, injectable for tests.

    Returns:
        RetryResult: success/failure plus attempt count.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1.")

    last_error: Optional[BaseException] = None
    for attempt_number in range(1, max_attempts + 1):
        try:
            value = await operation()
        except Exception as exc:
            last_error = exc
            logger.warning(
                "%s failed (attempt %d/%d): %s",
                description,
                attempt_number,
                max_attempts,
                exc,
            )
            if attempt_number < max_attempts:
                logger.warning("Sleeping %.1fs before retrying %s", delay, description)
                await sleep(delay)
            continue
        return RetryResult(succeeded=True, value=value, attempts=attempt_number)

    return RetryResult(succeeded=False, attempts=max_attempts, error=last_error)


async def retry(
    operation: Callable[[], Awaitable[R]],
    description: str,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    delay: float = DEFAULT_DELAY_SECONDS,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> R:
    """
    Like retry_result, but returns the operation's value directly.

    Raises:
        RetryExhausted: If every attempt failed; chained to the last error.
    """
    result = await retry_result(
        operation,
        description,
        max_attempts=max_attempts,
        delay=delay,
        sleep=sleep,
    )
    if not result.succeeded:
        logger.error("%s failed after %d attempts", description, result.attempts)
        raise RetryExhausted(
            description, result.attempts, result.error
        ) from result.error
    return result.value  # type: ignore[return-value]
