"""
Shared fixtures for the signal engine test suite.

All time-dependent components take an injectable clock; tests drive them with
FakeClock so windows, cooldowns and ages are deterministic.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from signal_engine.config.settings import AppConfig
from signal_engine.core.models import (
    ContextData,
    Direction,
    GEXSignal,
    Regime,
    Signal,
    SignalMetadata,
    SignalSource,
    Trend,
)


# 10:00 America/New_York
MARKET_OPEN_TIME = datetime(2025, 1, 15, 15, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = MARKET_OPEN_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, minutes: float = 0) -> datetime:
        self.now = self.now + timedelta(seconds=seconds, minutes=minutes)
        return self.now

    def set(self, when: datetime) -> None:
        self.now = when


async def no_sleep(_seconds: float) -> None:
    """Backoff sleep replacement that returns immediately."""
    return None


class RecordingSleep:
    """Backoff sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def make_config(**sections: Dict[str, Any]) -> AppConfig:
    """AppConfig from defaults with per-section overrides, e.g. make_config(risk={...})."""
    return AppConfig.model_validate(sections)


def make_signal(
    symbol: str = "SPY",
    direction: Direction = Direction.CALL,
    timeframe: str = "5m",
    source: SignalSource = SignalSource.TRADINGVIEW,
    timestamp: Optional[datetime] = None,
    signal_id: str = "sig-1",
    confluence: Optional[float] = None,
    mtf_aligned: Optional[bool] = None,
    price: Optional[float] = None,
) -> Signal:
    return Signal(
        id=signal_id,
        source=source,
        symbol=symbol,
        direction=direction,
        timeframe=timeframe,
        timestamp=timestamp or MARKET_OPEN_TIME,
        metadata=SignalMetadata(confluence=confluence, mtf_aligned=mtf_aligned, price=price),
    )


def make_context(
    vix: float = 18.0,
    trend: Trend = Trend.BULLISH,
    bias: float = 0.0,
    regime: Regime = Regime.NORMAL,
    timestamp: Optional[datetime] = None,
) -> ContextData:
    return ContextData(
        vix=vix,
        trend=trend,
        bias=bias,
        regime=regime,
        timestamp=timestamp or MARKET_OPEN_TIME,
    )


def make_gex(
    direction: Direction = Direction.CALL,
    strength: float = 0.8,
    age_minutes: float = 10,
    symbol: str = "SPY",
    timeframe: str = "5m",
    now: datetime = MARKET_OPEN_TIME,
) -> GEXSignal:
    return GEXSignal(
        symbol=symbol,
        timeframe=timeframe,
        strength=strength,
        direction=direction,
        timestamp=now - timedelta(minutes=age_minutes),
    )


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def clock():
    """Clock frozen inside regular market hours."""
    return FakeClock()


@pytest.fixture
def config():
    """Default configuration."""
    return AppConfig()


@pytest.fixture
def signal():
    """A CALL signal on SPY at the fixture clock's time."""
    return make_signal()


@pytest.fixture
def context():
    """Calm, bullish market context."""
    return make_context()
