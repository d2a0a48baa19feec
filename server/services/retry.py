# services/retry.py

"""
Retry policy - bounded retries with exponential backoff for async calls
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from server.core.config import settings

logger = logging.getLogger(__name__)

# Called before each backoff wait with (attempt_index, delay_seconds, error)
RetryHook = Callable[[int, float, Exception], None]


@dataclass
class RetryOutcome:
    value: Any = None
    error: Optional[Exception] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


def backoff_delay_ms(initial_backoff_ms: int, attempt: int) -> int:
    """Wait before retry number attempt+1: initial, 2x initial, 4x initial..."""
    return initial_backoff_ms * (2 ** attempt)


async def call_with_retry(
        fn: Callable[[], Awaitable[Any]],
        max_attempts: Optional[int] = None,
        initial_backoff_ms: Optional[int] = None,
        on_retry: Optional[RetryHook] = None,
        label: str = "call"
) -> RetryOutcome:
    """Run fn once plus up to max_attempts retries.

    Never raises for failures of fn: the last exception is returned in the
    outcome so the caller decides what a permanent failure means.
    """
    if max_attempts is None:
        max_attempts = settings.max_retries
    if initial_backoff_ms is None:
        initial_backoff_ms = settings.initial_backoff_ms

    total = max_attempts + 1
    last_error = None

    for attempt in range(total):
        try:
            value = await fn()
            if attempt > 0:
                logger.info(f"{label} succeeded on attempt {attempt + 1}/{total}")
            return RetryOutcome(value=value, attempts=attempt + 1)
        except Exception as e:
            last_error = e
            logger.warning(f"{label} attempt {attempt + 1}/{total} failed: {e}")

            if attempt < max_attempts:
                delay = backoff_delay_ms(initial_backoff_ms, attempt) / 1000
                if on_retry is not None:
                    on_retry(attempt, delay, e)
                await asyncio.sleep(delay)

    logger.error(f"{label} gave up after {total} attempts: {last_error}")
    return RetryOutcome(error=last_error, attempts=total)
