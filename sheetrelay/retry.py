"""
Retry logic with exponential backoff for handling transient failures.

Wraps a single remote operation so that rate limiting, backoff and
retry exhaustion are handled in one place regardless of what the
operation does.
"""

import time
from typing import Any, Callable, Optional

from .logger import StructuredLogger, get_logger
from .ratelimit import RateLimiter


class RemoteOperationFailure(Exception):
    """Raised when a remote operation fails and will not be retried further."""

    def __init__(self, message: str, cause: BaseException, attempts: int, description: str = ""):
        super().__init__(message)
        self.cause = cause
        self.attempts = attempts
        self.description = description


class RetryExhausted(RemoteOperationFailure):
    """Raised when all retry attempts are exhausted."""
    pass


def backoff_delay(attempt: int, base_delay: float = 1.0, max_delay: float = 10.0) -> float:
    """
    Delay to wait after failed attempt number `attempt` (1-based).

    Example:
        base 1.0, cap 10.0 -> 1.0, 2.0, 4.0, 8.0, 10.0, 10.0, ...
    """
    return min(base_delay * (2 ** (attempt - 1)), max_delay)


def retry_everything(exception: BaseException) -> bool:
    return True


class RetryExecutor:
    """
    Run a fallible operation with bounded retries.

    Every attempt first waits on the shared RateLimiter. Between failed
    attempts the executor sleeps for an exponentially growing, capped delay.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
        retry_on: Callable[[BaseException], bool] = retry_everything,
        on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
        logger: Optional[StructuredLogger] = None,
    ):
        """
        Initialize the executor.

        Args:
            rate_limiter: Limiter consulted before every attempt
            max_attempts: Default total number of attempts (>= 1)
            base_delay: Backoff after the first failure, in seconds
            max_delay: Upper bound for any single backoff
            retry_on: Predicate deciding whether an exception is worth retrying
            on_retry: Optional callback(attempt, exception, delay)
            sleep: Function used for backoff waits
            logger: Logger for retry warnings (default: global logger)
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.rate_limiter = rate_limiter
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.retry_on = retry_on
        self.on_retry = on_retry
        self._sleep = sleep
        self.logger = logger or get_logger()

    def execute(
        self,
        operation: Callable[[], Any],
        max_attempts: Optional[int] = None,
        description: str = "",
    ) -> Any:
        """
        Invoke `operation` until it succeeds or the attempt budget is spent.

        Raises:
            RetryExhausted: Every attempt failed
            RemoteOperationFailure: The retry_on predicate rejected an error
        """
        attempts = max_attempts if max_attempts is not None else self.max_attempts
        if attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        label = description or getattr(operation, "__name__", "operation")

        for attempt in range(1, attempts + 1):
            self.rate_limiter.throttle()
            try:
                return operation()
            except Exception as e:
                if not self.retry_on(e):
                    self.logger.error(
                        f"{label} failed with a non-retryable error",
                        attempt=attempt,
                        error=str(e),
                    )
                    raise RemoteOperationFailure(
                        f"{label} failed (not retryable): {e}", e, attempt, label
                    ) from e

                if attempt == attempts:
                    raise RetryExhausted(
                        f"{label} failed after {attempts} attempts: {e}", e, attempts, label
                    ) from e

                delay = backoff_delay(attempt, self.base_delay, self.max_delay)
                self.logger.warning(
                    f"Attempt {attempt} of {label} failed, retrying in {delay:.1f}s",
                    error=str(e),
                )
                if self.on_retry:
                    self.on_retry(attempt, e, delay)
                self._sleep(delay)


def is_transient_error(exception: BaseException) -> bool:
    """
    Determine if an exception is likely transient and should be retried.

    Args:
        exception: Exception to check

    Returns:
        True if error is likely transient (timeout, connection, 5xx)
    """
    error_str = str(exception).lower()

    transient_keywords = [
        'timeout',
        'timed out',
        'connection',
        'temporary failure',
        'service unavailable',
        'quota exceeded',
        'rate limit',
        'bad gateway',
        'internal server error',
        'too many requests',
    ]

    return any(keyword in error_str for keyword in transient_keywords)


def should_retry_http_status(status_code: int) -> bool:
    """
    Check if HTTP status code indicates a retryable error.

    Args:
        status_code: HTTP status code

    Returns:
        True if should retry
    """
    retryable_codes = {
        408,  # Request Timeout
        429,  # Too Many Requests
        500,  # Internal Server Error
        502,  # Bad Gateway
        503,  # Service Unavailable
        504,  # Gateway Timeout
    }

    return status_code in retryable_codes
