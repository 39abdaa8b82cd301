"""
TTL cache for market context with request coalescing.

While a refresh is in flight every caller awaits the same task, so N
concurrent misses cause exactly one upstream fetch. If the refresh fails, a
cached value younger than ``cache.context_stale_fallback_seconds`` is served
instead of the error.
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

from signal_engine.config.settings import AppConfig
from signal_engine.core.errors import MarketDataError
from signal_engine.core.models import ContextData
from signal_engine.market_data.fetcher import RetryPolicy, fetch_with_retry
from signal_engine.monitoring.degraded_mode import DegradedModeTracker, ServiceName
from signal_engine.utils.time_utils import Clock, TimeUtils

logger = logging.getLogger(__name__)

ContextFetcher = Callable[[], Awaitable[ContextData]]


class ContextCache:
    def __init__(
        self,
        config: AppConfig,
        fetcher: ContextFetcher,
        degraded_tracker: Optional[DegradedModeTracker] = None,
        clock: Optional[Clock] = None,
        sleep=None,
    ):
        self.fetcher = fetcher
        self.degraded_tracker = degraded_tracker
        self.ttl_seconds = config.cache.context_ttl_seconds
        self.stale_fallback_seconds = config.cache.context_stale_fallback_seconds
        self._policy = RetryPolicy.from_config(config.market_data)
        self._clock = clock or TimeUtils.now_utc
        self._sleep = sleep or asyncio.sleep

        self._cached: Optional[ContextData] = None
        self._fetched_at: Optional[datetime] = None
        self._inflight: Optional[asyncio.Task] = None
        self.fetch_count = 0

    async def get_context(self) -> ContextData:
        """
        Return fresh context, refreshing it at most once for concurrent callers.

        Raises:
            MarketDataError: when the refresh fails and no usable cached value exists
        """
        if self.has_fresh_cache():
            return self._cached

        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._refresh())
            self._inflight.add_done_callback(_consume_exception)

        # A caller timing out must not cancel the shared refresh
        return await asyncio.shield(self._inflight)

    def cache_age(self) -> Optional[float]:
        """Seconds since the last successful fetch, or None when empty."""
        if self._fetched_at is None:
            return None
        return TimeUtils.seconds_between(self._fetched_at, self._clock())

    def has_fresh_cache(self) -> bool:
        age = self.cache_age()
        return age is not None and age < self.ttl_seconds

    def clear(self) -> None:
        self._cached = None
        self._fetched_at = None

    async def _refresh(self) -> ContextData:
        try:
            self.fetch_count += 1
            context = await fetch_with_retry(
                self.fetcher, self._policy, description="market context", sleep=self._sleep
            )
        except MarketDataError as e:
            if self.degraded_tracker:
                self.degraded_tracker.record_failure(ServiceName.CONTEXT, str(e))
            age = self.cache_age()
            if self._cached is not None and age is not None and age < self.stale_fallback_seconds:
                logger.warning(f"Context refresh failed, serving cached value aged {age:.0f}s: {e}")
                return self._cached
            raise
        finally:
            self._inflight = None

        self._cached = context
        self._fetched_at = self._clock()
        if self.degraded_tracker:
            self.degraded_tracker.record_success(ServiceName.CONTEXT)
        logger.debug(f"Context refreshed: vix={context.vix} trend={context.trend.value} regime={context.regime.value}")
        return context


def _consume_exception(task: asyncio.Task) -> None:
    if not task.cancelled():
        task.exception()
