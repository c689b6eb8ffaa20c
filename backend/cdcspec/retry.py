"""Retry utilities for filesystem operations."""

from __future__ import annotations

import logging
import time
from functools import wraps
from typing import Any, Callable, Tuple, Type

logger = logging.getLogger(__name__)


def retry(
    max_attempts: int = 2,
    delay: float = 0.1,
    backoff: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (OSError,)
):
    """Retry decorator with exponential backoff.

    Args:
        max_attempts: Total number of attempts, including the first one
        delay: Initial delay between attempts in seconds
        backoff: Multiplier for delay after each attempt
        exceptions: Tuple of exceptions to catch and retry

    Example:
        @retry(max_attempts=2, exceptions=(OSError,))
        def replace(src, dst):
            os.replace(src, dst)
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            current_delay = delay

            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt < max_attempts:
                        logger.warning(
                            f"Attempt {attempt}/{max_attempts} failed for {func.__name__}: {e}. "
                            f"Retrying in {current_delay:.2f} seconds..."
                        )
                        time.sleep(current_delay)
                        current_delay *= backoff
                        continue

                    logger.error(f"All {max_attempts} attempts failed for {func.__name__}: {e}")
                    raise

        return wrapper
    return decorator
