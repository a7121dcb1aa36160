"""Bounded retry for eventually-consistent visibility checks."""

import time
from typing import Callable, TypeVar, Optional
from tgw_converge.utils.errors import ErrorContext, VisibilityTimeoutError
from tgw_converge.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


class RetryableError(Exception):
    """Raised by a predicate whose outcome may change on a later attempt."""


class NotYetVisibleError(RetryableError):
    """The mutation has not shown up in the list/search API yet."""


class NonRetryableError(Exception):
    """Wraps an error that must stop the retry loop immediately."""

    def __init__(self, cause: Exception):
        super().__init__(str(cause))
        self.cause = cause


class RetryStrategy:
    """Re-evaluates a predicate at a fixed interval until it stops raising
    RetryableError or the timeout elapses.

    There is no intermediate "pending" state here: an attempt is either
    "not visible yet" (retry) or any other failure (fatal).
    """

    def __init__(
        self,
        timeout: float = 120.0,
        interval: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep
    ):
        """Initialize retry strategy.

        Args:
            timeout: Seconds to keep retrying
            interval: Seconds to sleep between attempts
            clock: Monotonic clock, injectable for tests
            sleep: Sleep function, injectable for tests
        """
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.timeout = timeout
        self.interval = interval
        self.clock = clock
        self.sleep = sleep

    def execute(
        self,
        predicate: Callable[[], T],
        condition: str,
        context: Optional[ErrorContext] = None
    ) -> T:
        """Run predicate until it succeeds.

        Args:
            predicate: Callable returning normally once visible
            condition: Human-readable description of what is awaited
            context: Error context naming the entity

        Returns:
            Whatever the predicate returned on success

        Raises:
            VisibilityTimeoutError: If still not visible when the timeout elapses
            Exception: Any non-retryable error raised by the predicate
        """
        start = self.clock()
        attempt = 0

        while True:
            attempt += 1
            try:
                result = predicate()
            except NonRetryableError as e:
                logger.debug(f"Non-retryable error while waiting for {condition}: {e.cause}")
                raise e.cause
            except RetryableError as e:
                last_reason = str(e)
            else:
                if attempt > 1:
                    logger.info(f"{condition} after {attempt} attempts")
                return result

            elapsed = self.clock() - start
            remaining = self.timeout - elapsed
            if remaining <= 0:
                logger.warning(f"Gave up waiting for {condition} after {elapsed:.1f}s")
                raise VisibilityTimeoutError(
                    f"timeout while waiting for {condition} (last: {last_reason})",
                    condition=condition,
                    timeout=self.timeout,
                    context=context
                )

            logger.debug(
                f"Attempt {attempt}: {last_reason}. Retrying in {min(self.interval, remaining):.1f}s..."
            )
            self.sleep(min(self.interval, remaining))


def retry_until(
    predicate: Callable[[], T],
    timeout: float,
    condition: str,
    interval: float = 5.0,
    context: Optional[ErrorContext] = None,
    **kwargs
) -> T:
    """Retry predicate until visible; see RetryStrategy.execute.

    Example:
        def registered():
            if group_ip not in search_groups():
                raise NotYetVisibleError(f"{group_ip} not registered yet")

        retry_until(registered, timeout=120, condition="group registration")
    """
    strategy = RetryStrategy(timeout=timeout, interval=interval, **kwargs)
    return strategy.execute(predicate, condition, context=context)

