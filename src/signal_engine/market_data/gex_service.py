"""
Dealer gamma-exposure (GEX) signal access.

GEX input is optional: no data means "no GEX adjustment", never an error.
Readings older than ``gex.max_stale_minutes`` still count, at reduced weight.
A flip is a change of direction between the two most recent readings.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

from signal_engine.config.settings import AppConfig
from signal_engine.core.errors import GEXUnavailableError, MarketDataError
from signal_engine.core.models import Direction, GEXSignal
from signal_engine.market_data.fetcher import RetryPolicy, fetch_with_retry
from signal_engine.monitoring.degraded_mode import DegradedModeTracker, ServiceName
from signal_engine.utils.time_utils import Clock, TimeUtils

logger = logging.getLogger(__name__)


class GEXReader(ABC):
    """Read access to stored GEX readings."""

    @abstractmethod
    async def read(self, symbol: str, timeframe: str, limit: int) -> List[GEXSignal]:
        """Return up to ``limit`` readings, most recent first."""


class InMemoryGEXReader(GEXReader):
    def __init__(self, readings: Optional[List[GEXSignal]] = None):
        self._readings: Dict[Tuple[str, str], List[GEXSignal]] = defaultdict(list)
        for reading in readings or []:
            self.add(reading)

    def add(self, reading: GEXSignal) -> None:
        bucket = self._readings[(reading.symbol, reading.timeframe)]
        bucket.append(reading)
        bucket.sort(key=lambda r: r.timestamp, reverse=True)

    async def read(self, symbol: str, timeframe: str, limit: int) -> List[GEXSignal]:
        return list(self._readings.get((symbol, timeframe), [])[:limit])


@dataclass
class FlipResult:
    has_flipped: bool
    current_direction: Optional[Direction] = None
    previous_direction: Optional[Direction] = None


@dataclass
class GEXSignalMetadata:
    signal: Optional[GEXSignal]
    is_stale: bool
    effective_weight: float
    age_hours: float = 0.0


class GEXService:
    def __init__(
        self,
        config: AppConfig,
        reader: GEXReader,
        degraded_tracker: Optional[DegradedModeTracker] = None,
        clock: Optional[Clock] = None,
        sleep=None,
    ):
        self.config = config
        self.reader = reader
        self.degraded_tracker = degraded_tracker
        self._clock = clock or TimeUtils.now_utc
        self._sleep = sleep or asyncio.sleep
        self._policy = RetryPolicy.from_config(config.market_data)
        self.max_stale_seconds = config.gex.max_stale_minutes * 60.0

    async def get_latest_signal(self, symbol: str, timeframe: str) -> Optional[GEXSignal]:
        """Most recent reading with its age filled in, or None when there is none."""
        readings = await self._read(symbol, timeframe, 1)
        return readings[0] if readings else None

    def is_stale(self, signal: GEXSignal) -> bool:
        return signal.age_seconds > self.max_stale_seconds

    def calculate_effective_weight(self, signal: GEXSignal) -> float:
        if self.is_stale(signal):
            return 1.0 - self.config.gex.stale_weight_reduction
        return 1.0

    def get_signal_age_hours(self, signal: GEXSignal) -> float:
        return signal.age_seconds / 3600.0

    async def detect_flip(self, symbol: str, timeframe: str) -> FlipResult:
        readings = await self._read(symbol, timeframe, self.config.gex.history_limit)
        if len(readings) < 2:
            current = readings[0].direction if readings else None
            return FlipResult(has_flipped=False, current_direction=current)

        current, previous = readings[0], readings[1]
        flipped = current.direction != previous.direction
        if flipped:
            logger.info(
                f"GEX flip detected for {symbol} {timeframe}: "
                f"{previous.direction.value} -> {current.direction.value}"
            )
        return FlipResult(
            has_flipped=flipped,
            current_direction=current.direction,
            previous_direction=previous.direction,
        )

    async def get_signal_with_metadata(self, symbol: str, timeframe: str) -> GEXSignalMetadata:
        signal = await self.get_latest_signal(symbol, timeframe)
        if signal is None:
            return GEXSignalMetadata(signal=None, is_stale=False, effective_weight=0.0)
        return GEXSignalMetadata(
            signal=signal,
            is_stale=self.is_stale(signal),
            effective_weight=self.calculate_effective_weight(signal),
            age_hours=self.get_signal_age_hours(signal),
        )

    async def _read(self, symbol: str, timeframe: str, limit: int) -> List[GEXSignal]:
        try:
            readings = await fetch_with_retry(
                lambda: self.reader.read(symbol, timeframe, limit),
                self._policy,
                description=f"GEX {symbol} {timeframe}",
                sleep=self._sleep,
            )
        except MarketDataError as e:
            if self.degraded_tracker:
                self.degraded_tracker.record_failure(ServiceName.GEX, str(e))
            raise GEXUnavailableError(str(e), attempts=e.attempts, cause=e.cause) from e

        if self.degraded_tracker:
            self.degraded_tracker.record_success(ServiceName.GEX)

        now = self._clock()
        ordered = sorted(readings or [], key=lambda r: r.timestamp, reverse=True)
        return [
            replace(r, age_seconds=max(0.0, TimeUtils.seconds_between(r.timestamp, now)))
            for r in ordered[:limit]
        ]
