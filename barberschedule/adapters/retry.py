"""
Retry helper for idempotent reads against the record store.

Writes (create/move/cancel) are never wrapped: a failed write may already
have been committed server-side, so retrying it could book twice.
"""

import asyncio
import logging
from functools import wraps
from typing import Callable, Tuple, Type

from ..domain.exceptions import PersistenceUnavailableError

logger = logging.getLogger(__name__)


def async_retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: Tuple[Type[BaseException], ...] = (PersistenceUnavailableError,),
):
    """
    Decorator that retries an async callable with exponential backoff.

    Args:
        max_attempts: Total number of attempts, including the first one
        delay: Initial delay between attempts (seconds)
        backoff: Multiplier applied to the delay after each failure
        exceptions: Exception types that trigger another attempt
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            current_delay = delay

            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as exc:
                    if attempt == max_attempts:
                        logger.error(
                            "Failed after %s attempts: %s",
                            max_attempts,
                            getattr(func, "__name__", func),
                        )
                        raise

                    logger.warning(
                        "Attempt %s/%s failed for %s: %s. Retrying in %ss...",
                        attempt,
                        max_attempts,
                        getattr(func, "__name__", func),
                        exc,
                        current_delay,
                    )
                    await asyncio.sleep(current_delay)
                    current_delay *= backoff

        return wrapper

    return decorator
