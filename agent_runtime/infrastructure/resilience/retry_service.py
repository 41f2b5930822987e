"""
Retry service with exponential backoff for model invocations.

A model handler signals a transient failure by raising RetryableModelError;
any other exception propagates on the first attempt.
"""
import inspect
import logging
from typing import Any, Callable

from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
    after_log
)

from ...core.errors import RetryableModelError

logger = logging.getLogger("agent-runtime.retry_service")


def create_retry_decorator(
    max_attempts: int = 3,
    min_wait: float = 0.5,
    max_wait: float = 5.0,
    multiplier: float = 1.0
):
    """
    Create a retry decorator with exponential backoff.
    
    Args:
        max_attempts: Maximum number of attempts (including the first)
        min_wait: Minimum wait time in seconds
        max_wait: Maximum wait time in seconds
        multiplier: Multiplier for exponential backoff
        
    Returns:
        Retry decorator; the last RetryableModelError is re-raised
    """
    return retry(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_exponential(multiplier=multiplier, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(RetryableModelError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        after=after_log(logger, logging.DEBUG),
        reraise=True
    )


async def call_with_retry(
    func: Callable[..., Any],
    *args,
    max_attempts: int = 3,
    min_wait: float = 0.5,
    max_wait: float = 5.0,
    **kwargs
) -> Any:
    """
    Call a function (sync or async) with retry logic.
    
    Raises:
        RetryableModelError: If every attempt failed transiently
        Exception: Any non-retryable error from the first failing attempt
    """
    retry_decorator = create_retry_decorator(
        max_attempts=max_attempts,
        min_wait=min_wait,
        max_wait=max_wait
    )
    
    @retry_decorator
    async def _wrapped():
        result = func(*args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result
    
    return await _wrapped()
