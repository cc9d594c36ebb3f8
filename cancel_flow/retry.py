"""Timeout and bounded retry for provider calls."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from .errors import CONNECTION_EXCEPTIONS

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior"""
    timeout: float = 3.0
    max_retries: int = 1
    base_delay: float = 0.25
    exponential_base: float = 2.0
    max_delay: float = 2.0


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig,
    retryable_exceptions: tuple = CONNECTION_EXCEPTIONS,
) -> T:
    """
    Await `func()` with a timeout, retrying connection-class failures.

    Makes at most `1 + config.max_retries` attempts. A timeout surfaces
    as asyncio.TimeoutError. Non-retryable exceptions propagate at once.
    """
    attempts = config.max_retries + 1
    last_exception: BaseException | None = None

    for attempt in range(attempts):
        try:
            return await asyncio.wait_for(func(), timeout=config.timeout)
        except retryable_exceptions as e:
            last_exception = e

            if attempt < attempts - 1:
                delay = min(
                    config.base_delay * (config.exponential_base ** attempt),
                    config.max_delay,
                )
                logger.warning(
                    f"Retry {attempt + 1}/{config.max_retries} after {delay:.2f}s: {e!r}"
                )
                await asyncio.sleep(delay)

    raise last_exception
