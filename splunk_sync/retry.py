"""
Retry utilities for the sync driver.

The Splunk client and the syncers never retry; a failed request surfaces
immediately. The driver owns retry policy and re-issues a whole page call
when the failure looks transient.
"""

import time
import logging
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = (429, 502, 503, 504)


class MaxRetriesExceeded(Exception):
    """Raised when maximum retry attempts are exceeded."""

    def __init__(self, attempts: int, last_exception: Exception):
        self.attempts = attempts
        self.last_exception = last_exception
        super().__init__(f"Failed after {attempts} attempts: {last_exception}")


def is_retryable_error(exception: Exception) -> bool:
    """
    Determine if an exception should trigger a retry.

    Transport failures (connection errors, timeouts) and throttling or server
    errors are transient. Authentication failures, client errors, malformed
    responses and mutation precondition failures are not.
    """
    if isinstance(exception, (ConnectionError, TimeoutError)):
        return True

    status_code = getattr(exception, 'status_code', None)
    if status_code is not None:
        if status_code == 0:
            # Transport failure wrapped by the client
            return isinstance(exception.__cause__, OSError)
        return status_code in RETRYABLE_STATUS_CODES or 500 <= status_code < 600

    return False


def retry_call(
    func: Callable[[], Any],
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 1.0,
    should_retry: Callable[[Exception], bool] = is_retryable_error,
    on_retry: Optional[Callable[[int, Exception], None]] = None
) -> Any:
    """
    Call a function, retrying transient failures.

    Args:
        func: Zero-argument callable to invoke
        max_attempts: Maximum number of attempts (including the first)
        delay: Initial delay between retries in seconds
        backoff: Multiplier applied to the delay after each retry
        should_retry: Predicate deciding whether an exception is transient
        on_retry: Optional callback invoked with (attempt, exception) before sleeping

    Returns:
        Function result

    Raises:
        The original exception when it is not retryable
        MaxRetriesExceeded: If every attempt failed with a retryable error
    """
    last_exception = None
    current_delay = delay

    for attempt in range(1, max_attempts + 1):
        try:
            result = func()
            if attempt > 1:
                logger.info(f"Operation succeeded on attempt {attempt}")
            return result

        except Exception as e:
            if not should_retry(e):
                raise

            last_exception = e
            if attempt == max_attempts:
                break

            logger.debug(f"Attempt {attempt} failed with {type(e).__name__}: {e}")
            if on_retry:
                on_retry(attempt, e)

            time.sleep(current_delay)
            current_delay *= backoff

    raise MaxRetriesExceeded(max_attempts, last_exception)


def retry_call_with_config(func: Callable[[], Any], config: Dict[str, Any], operation_name: str) -> Any:
    """
    Call ``func`` with the retry policy of the ``error_handling`` config section.

    Args:
        func: Zero-argument callable to invoke
        config: Dictionary with max_retries, retry_wait_seconds and retry_backoff
        operation_name: Name used in retry log messages
    """
    return retry_call(
        func,
        max_attempts=int(config.get('max_retries', 3)) + 1,
        delay=float(config.get('retry_wait_seconds', 1.0)),
        backoff=float(config.get('retry_backoff', 1.0)),
        on_retry=create_retry_callback(operation_name),
    )


def create_retry_callback(operation_name: str) -> Callable[[int, Exception], None]:
    """
    Create a standard retry callback for logging retry attempts.

    Args:
        operation_name: Name of the operation being retried
    """
    def on_retry(attempt: int, exception: Exception):
        logger.warning(f"{operation_name} failed on attempt {attempt}, "
                       f"retrying due to {type(exception).__name__}: {exception}")

    return on_retry
