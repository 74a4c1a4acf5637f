"""Retry helpers built on tenacity."""
from functools import wraps
from typing import Any, Callable, TypeVar

from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from qctool.core.errors import BaseServiceError, TransientError
from qctool.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _log_before_sleep(retry_state: RetryCallState) -> None:
    """Log the upcoming retry attempt."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.info(
        "retrying_call",
        function=getattr(retry_state.fn, "__name__", "unknown"),
        attempt=retry_state.attempt_number + 1,
        delay_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        error=str(exc) if exc else None,
    )


def with_retry(
    max_attempts: int = 3,
    wait_min: float = 0.5,
    wait_max: float = 10.0,
):
    """
    Retry decorator with exponential backoff.

    Only TransientError is retried. The delay before attempt n+1 is
    wait_min * 2 ** (n - 1), capped at wait_max. After the last attempt the
    final error is re-raised unchanged.

    Args:
        max_attempts: Maximum number of attempts
        wait_min: Delay before the first retry (seconds)
        wait_max: Maximum delay (seconds)
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        retryer = retry(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=wait_min, min=wait_min, max=wait_max),
            retry=retry_if_exception_type(TransientError),
            before_sleep=_log_before_sleep,
            reraise=True,
        )
        retried_func = retryer(func)

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return retried_func(*args, **kwargs)
            except Exception as e:
                context = e.to_dict() if isinstance(e, BaseServiceError) else {"error": str(e)}
                logger.error(
                    "retry_failed",
                    function=func.__name__,
                    attempts=max_attempts,
                    **context,
                )
                raise

        return wrapper

    return decorator
