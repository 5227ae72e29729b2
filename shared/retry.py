"""
Retry with exponential backoff for calls to downstream services.
"""

import asyncio
import functools
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Tuple, Type

from shared.logging import get_logger


@dataclass(frozen=True)
class RetryPolicy:
    """How often, and how patiently, a downstream call is retried."""
    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 5.0
    multiplier: float = 2.0
    jitter: bool = True

    def delay_for(self, attempt: int) -> float:
        """Pause after the given failed attempt (1-based)."""
        delay = min(self.base_delay * (self.multiplier ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay += random.uniform(-0.1 * delay, 0.1 * delay)
        return max(0.0, delay)


class RetryExhausted(Exception):
    """Every attempt failed; ``last_exception`` is the final cause."""

    def __init__(self, operation: str, last_exception: BaseException, attempts: int):
        super().__init__(f"{operation} failed after {attempts} attempts")
        self.operation = operation
        self.last_exception = last_exception
        self.attempts = attempts


def retry_async(policy: RetryPolicy,
                retry_on: Tuple[Type[BaseException], ...] = (Exception,)) -> Callable:
    """Retry an async callable on the given exception types.

    Exceptions outside ``retry_on`` propagate immediately. After the last
    attempt the failure is raised as ``RetryExhausted``.
    """

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        logger = get_logger(f"retry.{func.__name__}")

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            attempt = 1
            while True:
                try:
                    result = await func(*args, **kwargs)
                except retry_on as e:
                    if attempt >= policy.max_attempts:
                        logger.error("Retries exhausted", attempts=attempt, error=str(e))
                        raise RetryExhausted(func.__name__, e, attempt) from e

                    delay = policy.delay_for(attempt)
                    logger.warning("Attempt failed, backing off", attempt=attempt, delay=round(delay, 3), error=str(e))
                    await asyncio.sleep(delay)
                    attempt += 1
                    continue

                if attempt > 1:
                    logger.info("Succeeded after retry", attempt=attempt)
                return result

        return wrapper

    return decorator
