from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pydantic import BaseModel, Field, field_validator

from stashr.core.cache.errors import RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRY_ATTEMPTS = 2
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({502, 503, 504})


def is_success_status(status_code: int | None) -> bool:
    """Return True for 2xx status codes."""
    if status_code is None:
        return False
    return 200 <= status_code < 300


def is_server_error_status(status_code: int | None) -> bool:
    """Return True for 5xx status codes.

    A missing status code counts as a server error: a response the service
    could not even classify is never a client mistake.
    """
    if status_code is None:
        return True
    return status_code >= 500


def is_retryable_status(status_code: int | None) -> bool:
    """Return True only for gateway/unavailable statuses (502, 503, 504)."""
    if status_code is None:
        return False
    return status_code in RETRYABLE_STATUS_CODES


async def retry(
    name: str,
    attempt: Callable[[], Awaitable[T]],
    status_of: Callable[[T], int | None],
    max_attempts: int = DEFAULT_RETRY_ATTEMPTS,
    delay_s: float = 0.0,
) -> T:
    """Run ``attempt`` until it yields a non-server-error result.

    Classification per attempt:
        - ``attempt`` raised: retryable, the exception message is remembered
        - status is neither missing nor >= 500: returned immediately (4xx included)
        - status is 502/503/504: retryable
        - any other server error: stop retrying

    Args:
        name: Operation name used in the final error message
        attempt: Zero-argument coroutine factory performing one request
        status_of: Extracts the HTTP status from a result
        max_attempts: Total number of attempts (>= 1)
        delay_s: Pause between attempts in seconds

    Returns:
        The first result whose status is not a server error

    Raises:
        RetryExhaustedError: When attempts run out or a non-retryable server error occurs
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    status_code: int | None = None
    error_message = ""

    for attempt_no in range(1, max_attempts + 1):
        try:
            result = await attempt()
        except Exception as e:
            error_message = str(e) or type(e).__name__
            retryable = True
        else:
            status_code = status_of(result)
            if not is_server_error_status(status_code):
                return result
            retryable = is_retryable_status(status_code)
            error_message = f"Cache service responded with {status_code}"

        logger.debug(
            f"{name} - Attempt {attempt_no} of {max_attempts} failed with error: {error_message}"
        )

        if not retryable:
            logger.debug(f"{name} - Error is not retryable")
            break

        if attempt_no < max_attempts and delay_s > 0:
            await asyncio.sleep(delay_s)

    raise RetryExhaustedError(f"{name} failed: {error_message}", status_code=status_code)


class RetryPolicy(BaseModel):
    """Retry policy for RPC calls to the cache service.

    Controls exponential backoff with a randomized window between attempts.

    Args:
        max_attempts: Maximum number of attempts (including initial request)
        base_delay_s: Delay before the first retry
        multiplier: Growth factor applied per attempt
        max_delay_s: Maximum delay in seconds (caps exponential growth)
        retry_on_status: HTTP status codes that trigger retries
    """

    model_config = {"frozen": True}

    max_attempts: int = Field(default=5, ge=1)
    base_delay_s: float = Field(default=3.0, ge=0.0)
    multiplier: float = Field(default=1.5, ge=1.0)
    max_delay_s: float = Field(default=60.0, ge=0.0)
    retry_on_status: tuple[int, ...] = (500, 502, 503, 504, 429, 413)

    @field_validator("max_delay_s")
    @classmethod
    def validate_max_delay(cls, v: float, info) -> float:
        """Ensure max_delay_s >= base_delay_s."""
        base = info.data.get("base_delay_s", 3.0)
        if v < base:
            raise ValueError("max_delay_s must be >= base_delay_s")
        return v

    def allows_status(self, status_code: int) -> bool:
        """Check if the given status code is eligible for retry."""
        return status_code in self.retry_on_status

    def compute_delay(self, attempt: int) -> float:
        """Compute retry delay with exponential backoff.

        The first retry waits exactly ``base_delay_s``. Later retries wait a
        random time between ``base * multiplier**n`` and the next step up.

        Args:
            attempt: Attempt number (1-indexed, 1 = first retry after initial failure)

        Returns:
            Delay in seconds before next retry
        """
        if attempt < 1:
            raise ValueError("attempt must be >= 1")
        if attempt == 1:
            return min(self.max_delay_s, self.base_delay_s)
        low = self.base_delay_s * (self.multiplier ** (attempt - 1))
        high = low * self.multiplier
        return min(self.max_delay_s, random.uniform(low, high))


def parse_retry_after_seconds(value: str | None) -> float | None:
    """Parse Retry-After header value to seconds.

    Handles numeric seconds format only (not HTTP-date format).

    Args:
        value: Retry-After header value

    Returns:
        Seconds to wait, or None if invalid or not provided
    """
    if not value:
        return None
    v = value.strip()
    try:
        seconds = float(v)
        if seconds < 0:
            return None
        return seconds
    except ValueError:
        return None
