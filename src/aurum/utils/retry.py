"""
Fixed retry policy for external calls: N retries with a constant delay,
no backoff growth.
"""
import logging
import time
from typing import Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_retry(
    fn: Callable[[], T],
    retries: int = 2,
    delay_seconds: float = 3.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    context: str = "call",
) -> T:
    """
    Run fn(); on an exception in `retry_on`, wait `delay_seconds` and try again,
    at most `retries` extra times. The last exception is re-raised.
    """
    attempts = retries + 1
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except retry_on as e:
            if attempt >= attempts:
                logger.error("%s failed after %d attempts: %s", context, attempts, e)
                raise
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                context, attempt, attempts, e, delay_seconds,
            )
            if delay_seconds > 0:
                time.sleep(delay_seconds)
    raise RuntimeError("unreachable")
