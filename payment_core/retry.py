import time
from typing import Callable, TypeVar

import structlog

from payment_core.exceptions import StorageError

logger = structlog.get_logger(component="retry")

T = TypeVar("T")


def retry_with_backoff(
    operation: Callable[[], T],
    *,
    attempts: int = 4,
    base_delay: float = 0.2,
    retry_on: tuple[type[BaseException], ...] = (StorageError,),
    sleep: Callable[[float], None] = time.sleep,
    action: str = "operation",
) -> T:
    """
    Run ``operation`` up to ``attempts`` times, sleeping base_delay * 2**n between tries.

    Only exceptions in ``retry_on`` are retried; the last one is re-raised once the
    budget is spent. Anything else propagates immediately.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")
    for attempt in range(1, attempts + 1):
        try:
            result = operation()
            if attempt > 1:
                logger.info("retry_succeeded", action=action, attempt=attempt)
            return result
        except retry_on as exc:
            if attempt == attempts:
                logger.error("retry_exhausted", action=action, attempts=attempts, error=str(exc))
                raise
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(
                "retry_scheduled", action=action, attempt=attempt, delay_seconds=delay, error=str(exc)
            )
            sleep(delay)
    raise AssertionError("unreachable")
