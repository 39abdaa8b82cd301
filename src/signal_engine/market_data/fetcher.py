"""
Bounded retry with timeout for external market-data calls.

Each attempt is wrapped in asyncio.wait_for; failed attempts back off
exponentially (base, 2x base, 4x base, ...). Once attempts are exhausted the
last error is raised as MarketDataError.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from signal_engine.config.settings import MarketDataConfig
from signal_engine.core.errors import MarketDataError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    timeout_seconds: float = 5.0
    max_retries: int = 3
    backoff_base_seconds: float = 1.0

    @classmethod
    def from_config(cls, config: MarketDataConfig) -> "RetryPolicy":
        return cls(
            timeout_seconds=config.timeout_seconds,
            max_retries=config.max_retries,
            backoff_base_seconds=config.backoff_base_seconds,
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff before retrying after the zero-based ``attempt``."""
        return self.backoff_base_seconds * (2 ** attempt)


async def fetch_with_retry(
    fetch: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    description: str = "market data",
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> T:
    """
    Call ``fetch`` until it succeeds or ``policy.max_retries`` attempts fail.

    Raises:
        MarketDataError: wrapping the last failure
    """
    sleep = sleep or asyncio.sleep
    last_error: Optional[BaseException] = None

    for attempt in range(policy.max_retries):
        try:
            return await asyncio.wait_for(fetch(), timeout=policy.timeout_seconds)
        except asyncio.TimeoutError as e:
            last_error = e
            logger.warning(
                f"Fetch {description} timed out after {policy.timeout_seconds}s "
                f"(attempt {attempt + 1}/{policy.max_retries})"
            )
        except Exception as e:
            last_error = e
            logger.warning(
                f"Fetch {description} failed (attempt {attempt + 1}/{policy.max_retries}): "
                f"{type(e).__name__}: {e}"
            )

        if attempt < policy.max_retries - 1:
            await sleep(policy.delay_for(attempt))

    reason = "timed out" if isinstance(last_error, asyncio.TimeoutError) else str(last_error)
    raise MarketDataError(
        f"Failed to fetch {description} after {policy.max_retries} attempts: {reason}",
        attempts=policy.max_retries,
        cause=last_error,
    ) from last_error
