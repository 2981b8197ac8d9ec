"""Retry logic using tenacity."""

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

T = TypeVar("T")


def _log_before_sleep(label: str) -> Callable[[RetryCallState], None]:
    def log(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else "Unknown error"
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"{label} attempt {retry_state.attempt_number} failed: {error}; retrying in {delay:.2f}s"
        )

    return log


def retrying(
    label: str,
    attempts: int = 3,
    base_delay: float = 1.0,
    retry_on: type[BaseException] | tuple[type[BaseException], ...] = Exception,
) -> AsyncRetrying:
    """Build a tenacity controller with exponential backoff.

    After failed attempt ``n`` it sleeps ``base_delay * 2 ** (n - 1)`` seconds.
    When all attempts fail the last exception is re-raised.
    """
    return AsyncRetrying(
        retry=retry_if_exception_type(retry_on),
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=base_delay, exp_base=2, min=0),
        before_sleep=_log_before_sleep(label),
        reraise=True,
    )


async def retry_call(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    label: str,
    attempts: int = 3,
    base_delay: float = 1.0,
    retry_on: type[BaseException] | tuple[type[BaseException], ...] = Exception,
    **kwargs: Any,
) -> T:
    """Await ``func(*args, **kwargs)`` with retries.

    Args:
        func: Coroutine function to call.
        label: Name used in log messages.
        attempts: Maximum number of attempts.
        base_delay: Sleep after the first failure, doubled after each further one.
        retry_on: Exception types that trigger a retry; others propagate at once.

    Returns:
        The first successful result.
    """
    async for attempt in retrying(label, attempts, base_delay, retry_on):
        with attempt:
            return await func(*args, **kwargs)
    raise AssertionError("unreachable")  # pragma: no cover
