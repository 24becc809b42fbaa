"""Retry utilities with exponential backoff for transient source failures."""

import time
from typing import Callable, Tuple, Type, TypeVar

import structlog

log = structlog.stdlib.get_logger()

T = TypeVar("T")


def call_with_retry(
    func: Callable[[], T],
    operation: str,
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    should_retry: Callable[[Exception], bool] | None = None,
) -> T:
    """
    Call func, retrying transient failures with exponential backoff.

    Once retries are exhausted, or when should_retry rejects an error, the
    original exception propagates unchanged.

    Args:
        func: Zero-argument callable to invoke
        operation: Name used in log events
        max_retries: Maximum number of retry attempts
        base_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        exceptions: Exception types considered for retry
        should_retry: Optional predicate narrowing which caught errors are retried

    Returns:
        Whatever func returns
    """
    attempt = 0

    while True:
        try:
            return func()
        except exceptions as e:
            if should_retry is not None and not should_retry(e):
                raise

            if attempt >= max_retries:
                log.error(
                    "max_retries_reached",
                    operation=operation,
                    max_retries=max_retries,
                    error=str(e),
                )
                raise

            delay = min(base_delay * (2**attempt), max_delay)
            attempt += 1

            log.warning(
                "retrying_after_error",
                operation=operation,
                attempt=attempt,
                max_retries=max_retries,
                delay_seconds=delay,
                error=str(e),
            )

            time.sleep(delay)
