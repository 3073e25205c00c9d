"""
Retry with capped exponential backoff for idempotent calls to the booking API.
"""

import asyncio
import logging
import random
from typing import Any, Callable, Optional, Tuple, Type
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """How many times to try a call and how long to wait in between."""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based), capped at ``max_delay``."""
        delay = min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)
        if self.jitter:
            # Spread terminals that lost the API at the same moment
            delay *= 0.5 + random.random() * 0.5
        return delay


async def retry_async(
    func: Callable,
    config: RetryConfig,
    *args,
    retryable_exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    label: Optional[str] = None,
    **kwargs
) -> Any:
    """
    Await ``func(*args, **kwargs)`` until it succeeds or attempts run out.

    Only ``retryable_exceptions`` are retried; anything else propagates at once.
    The last retryable error is re-raised when every attempt has failed.
    """
    name = label or getattr(func, "__name__", repr(func))

    for attempt in range(config.max_attempts):
        try:
            result = await func(*args, **kwargs)
        except retryable_exceptions as e:
            if attempt == config.max_attempts - 1:
                logger.error(f"{name} failed after {config.max_attempts} attempts: {e}")
                raise
            delay = config.delay_for(attempt)
            logger.warning(f"{name} attempt {attempt + 1} failed: {e}. Retrying in {delay:.2f}s")
            await asyncio.sleep(delay)
        else:
            if attempt > 0:
                logger.info(f"{name} succeeded on attempt {attempt + 1}")
            return result
