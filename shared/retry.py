"""
Bounded retries for cache backend probes.
"""

import asyncio
import functools
import random
from enum import Enum
from typing import Any, Optional, Callable, Awaitable

from shared.logging import get_logger

logger = get_logger("cache_sync.retry")


class BackoffStrategy(str, Enum):
    """How the pause grows between attempts."""
    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    FIXED = "fixed"


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(self,
                 max_attempts: int = 3,
                 base_delay: float = 1.0,
                 max_delay: float = 60.0,
                 exponential_base: float = 2.0,
                 jitter: bool = True,
                 backoff_strategy: str = BackoffStrategy.EXPONENTIAL):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.backoff_strategy = BackoffStrategy(backoff_strategy)

    @classmethod
    def fixed(cls, max_attempts: int, delay: float) -> "RetryConfig":
        """Bounded retries with a constant pause between attempts."""
        return cls(
            max_attempts=max_attempts,
            base_delay=delay,
            max_delay=delay,
            jitter=False,
            backoff_strategy=BackoffStrategy.FIXED
        )


class RetryError(Exception):
    """Raised once every attempt has failed."""

    def __init__(self, message: str, last_exception: Exception, attempts: int):
        super().__init__(message)
        self.last_exception = last_exception
        self.attempts = attempts


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Pause in seconds after failed attempt number ``attempt`` (1-based)."""
    if config.backoff_strategy == BackoffStrategy.EXPONENTIAL:
        delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    elif config.backoff_strategy == BackoffStrategy.LINEAR:
        delay = config.base_delay * attempt
    else:
        delay = config.base_delay

    delay = min(delay, config.max_delay)
    if config.jitter:
        spread = delay * 0.1
        delay += random.uniform(-spread, spread)

    return max(0.0, delay)


def retry_on_exception(exceptions: tuple = (Exception,),
                       config: Optional[RetryConfig] = None,
                       sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep) -> Callable:
    """Decorator for retrying async functions on exceptions.

    Exceptions outside ``exceptions`` propagate immediately. After the last
    attempt a ``RetryError`` carrying the final exception is raised.
    """
    config = config or RetryConfig()

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        operation = func.__name__

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            attempt = 1
            while True:
                try:
                    result = await func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= config.max_attempts:
                        logger.error(
                            "Retries exhausted",
                            operation=operation,
                            attempts=attempt,
                            error=str(e)
                        )
                        raise RetryError(
                            f"{operation} failed after {attempt} attempts",
                            last_exception=e,
                            attempts=attempt
                        ) from e

                    delay = calculate_delay(attempt, config)
                    logger.warning(
                        "Attempt failed, retrying",
                        operation=operation,
                        attempt=attempt,
                        max_attempts=config.max_attempts,
                        delay=delay,
                        error=str(e)
                    )
                    await sleep(delay)
                    attempt += 1
                    continue

                if attempt > 1:
                    logger.info("Retry succeeded", operation=operation, attempt=attempt)
                return result

        return wrapper

    return decorator
