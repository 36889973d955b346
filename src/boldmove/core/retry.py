"""
BoldMove - Retry with fixed backoff.

Used for every eventually-consistent read and every flaky generation call.
Returns a RetryResult instead of raising when the retryable error persists,
so callers decide between fallback and failure explicitly.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from boldmove.core.errors import TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryResult(Generic[T]):
    """Outcome of a retried operation."""

    value: T | None = None
    error: BaseException | None = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value or raise the last error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    backoff_seconds: float,
    retry_on: tuple[type[BaseException], ...] = (TransientError,),
    label: str = "operation",
) -> RetryResult[T]:
    """
    Run `operation` up to `attempts` times with a fixed wait between tries.

    Only exceptions in `retry_on` are retried; anything else propagates
    immediately. When the retryable error survives every attempt the
    result carries it instead of raising.

    Example:
        result = await retry_with_backoff(
            lambda: client.generate_text(prompt),
            attempts=3,
            backoff_seconds=0.5,
            retry_on=(GenerationError,),
            label="decompose",
        )
        if result.ok:
            text = result.value
    """
    attempts = max(1, attempts)
    attempt_number = 0

    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_fixed(backoff_seconds),
            retry=retry_if_exception_type(retry_on),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                attempt_number = attempt.retry_state.attempt_number
                value = await operation()
    except retry_on as e:
        logger.warning(f"{label} failed after {attempt_number} attempt(s): {e}")
        return RetryResult(error=e, attempts=attempt_number)

    return RetryResult(value=value, attempts=attempt_number)
