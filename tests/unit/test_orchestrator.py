"""
Unit tests for DecisionOrchestrator entry and exit decisions.

Default config arithmetic used below (CALL, bullish trend, VIX 18, NORMAL regime):
    confidence = 50 base + 15 trend-aligned = 65
    size       = 1 x (1 + 0.65 x 0.25) x 1.0 x 1.0 = 1.16 -> 1
"""

import asyncio
from datetime import datetime, timezone

import pytest

from signal_engine.cache.context_cache import ContextCache
from signal_engine.core.models import (
    Direction,
    EntryDecisionType,
    ExitDecisionType,
    ExitReason,
    Regime,
    SignalSource,
    Trend,
)
from signal_engine.decision.confluence import ConfluenceCalculator
from signal_engine.decision.orchestrator import DecisionOrchestrator
from signal_engine.decision.risk_manager import RiskManager
from signal_engine.decision.sizing import PositionSizingService
from signal_engine.market_data.gex_service import GEXReader, GEXService, InMemoryGEXReader
from signal_engine.market_data.providers import QuoteProviderChain, StaticQuoteProvider
from signal_engine.monitoring.audit_logger import AuditEntryType, AuditLogger
from signal_engine.position.manager import PositionManager
from signal_engine.position.store import InMemoryPositionStore

from conftest import make_config, make_context, make_gex, make_signal, no_sleep


class MutableContext:
    """Context fetcher whose snapshot can be swapped or broken mid-test."""

    def __init__(self, context):
        self.context = context
        self.error = None
        self.hang = False

    async def __call__(self):
        if self.hang:
            await asyncio.Event().wait()
        if self.error:
            raise self.error
        return self.context


class OfflineGEXReader(GEXReader):
    async def read(self, symbol, timeframe, limit):
        raise ConnectionError("gex offline")


class Harness:
    """Orchestrator wired with in-memory collaborators."""

    def __init__(self, clock, config=None, context=None, gex_reader=None, quotes=None):
        self.config = config or make_config()
        self.clock = clock
        self.fetcher = MutableContext(context or make_context())
        self.gex_reader = gex_reader or InMemoryGEXReader()
        self.audit = AuditLogger(clock=clock)
        self.positions = PositionManager(self.config, InMemoryPositionStore(), clock=clock)
        quote_chain = QuoteProviderChain([StaticQuoteProvider(quotes)]) if quotes else None
        self.orchestrator = DecisionOrchestrator(
            config=self.config,
            context_cache=ContextCache(self.config, self.fetcher, clock=clock, sleep=no_sleep),
            gex_service=GEXService(self.config, self.gex_reader, clock=clock, sleep=no_sleep),
            position_manager=self.positions,
            risk_manager=RiskManager(self.config),
            sizing_service=PositionSizingService(self.config),
            confluence_calculator=ConfluenceCalculator(self.config.confluence),
            audit_logger=self.audit,
            quote_chain=quote_chain,
            clock=clock,
        )


@pytest.fixture
def harness(clock):
    return Harness(clock)


# ============================================================================
# Entry
# ============================================================================

@pytest.mark.asyncio
async def test_enter_with_full_trail(harness):
    decision = await harness.orchestrator.evaluate_entry(make_signal(price=2.5))

    assert decision.decision == EntryDecisionType.ENTER
    assert decision.should_enter
    assert decision.confidence == pytest.approx(65)
    assert decision.position_size == 1
    assert decision.reference_price == 2.5
    calc = decision.calculations
    assert calc.base_confidence == 50
    assert calc.context_adjustment == 15
    assert calc.gex_adjustment == 0
    assert calc.kelly_multiplier == pytest.approx(1.1625)
    assert calc.final_size == 1
    assert any("No GEX signal" in line for line in decision.reasoning)


@pytest.mark.asyncio
async def test_every_decision_audited(harness):
    signal = make_signal(signal_id="audited")

    await harness.orchestrator.evaluate_entry(signal)

    entries = harness.audit.get_entries(AuditEntryType.ENTRY_DECISION, signal_id="audited")
    assert len(entries) == 1
    assert entries[0].data["context"]["vix"] == 18


@pytest.mark.asyncio
async def test_extreme_vix_rejected(clock):
    harness = Harness(clock, context=make_context(vix=60))

    decision = await harness.orchestrator.evaluate_entry(make_signal())

    assert decision.decision == EntryDecisionType.REJECT
    assert "VIX" in decision.rejection_reason
    assert decision.position_size == 0


@pytest.mark.asyncio
async def test_elevated_vix_reduces_size(clock):
    """Test the caution multiplier is applied after sizing."""
    harness = Harness(clock, config=make_config(sizing={"base_size": 4}), context=make_context(vix=35))

    decision = await harness.orchestrator.evaluate_entry(make_signal())

    # confidence 50 + 15 - 5 = 60; 4 x 1.15 = 4.6 -> 4; x 0.5 -> 2
    assert decision.should_enter
    assert decision.calculations.sized_quantity == 4
    assert decision.calculations.risk_size_multiplier == 0.5
    assert decision.position_size == 2


@pytest.mark.asyncio
async def test_counter_trend_insufficient_confidence(harness):
    decision = await harness.orchestrator.evaluate_entry(make_signal(direction=Direction.PUT))

    assert decision.rejection_reason == "Insufficient confidence"
    assert decision.confidence == pytest.approx(30)
    assert decision.position_size == 0


@pytest.mark.asyncio
async def test_context_unavailable_rejects(harness):
    harness.fetcher.error = ConnectionError("vendor down")

    decision = await harness.orchestrator.evaluate_entry(make_signal())

    assert decision.rejection_reason == "Market data unavailable"


@pytest.fixture
def hanging_harness(clock):
    config = make_config(market_data={"timeout_seconds": 0.05, "max_retries": 2})
    return Harness(clock, config=config)


@pytest.mark.asyncio
async def test_hanging_context_refresh_serves_stale_context(hanging_harness, clock):
    """Test a refresh that times out on every attempt still enters on a cached context under 300s old."""
    first = await hanging_harness.orchestrator.evaluate_entry(make_signal(signal_id="a"))
    assert first.should_enter

    hanging_harness.fetcher.hang = True
    clock.advance(seconds=90)

    decision = await hanging_harness.orchestrator.evaluate_entry(make_signal(signal_id="b", timestamp=clock()))

    assert decision.should_enter
    assert any("VIX=18" in line for line in decision.reasoning)


@pytest.mark.asyncio
async def test_hanging_context_refresh_past_stale_limit_rejects(hanging_harness, clock):
    await hanging_harness.orchestrator.evaluate_entry(make_signal(signal_id="a"))

    hanging_harness.fetcher.hang = True
    clock.advance(seconds=301)

    decision = await hanging_harness.orchestrator.evaluate_entry(make_signal(signal_id="b", timestamp=clock()))

    assert decision.rejection_reason == "Market data unavailable"
    assert any("timed out" in line for line in decision.reasoning)


@pytest.mark.asyncio
async def test_gex_agreement_raises_confidence(clock):
    harness = Harness(clock, gex_reader=InMemoryGEXReader([make_gex(Direction.CALL, strength=0.8)]))

    decision = await harness.orchestrator.evaluate_entry(make_signal())

    assert decision.calculations.gex_adjustment == pytest.approx(12)
    assert decision.confidence == pytest.approx(77)


@pytest.mark.asyncio
async def test_gex_disagreement_lowers_confidence(clock):
    harness = Harness(clock, gex_reader=InMemoryGEXReader([make_gex(Direction.PUT, strength=0.8)]))

    decision = await harness.orchestrator.evaluate_entry(make_signal())

    assert decision.calculations.gex_adjustment == pytest.approx(-12)


@pytest.mark.asyncio
async def test_stale_gex_half_weight(clock):
    harness = Harness(clock, gex_reader=InMemoryGEXReader([make_gex(strength=0.8, age_minutes=300)]))

    decision = await harness.orchestrator.evaluate_entry(make_signal())

    assert decision.calculations.gex_adjustment == pytest.approx(6)


@pytest.mark.asyncio
async def test_gex_outage_does_not_block_entry(clock):
    harness = Harness(clock, gex_reader=OfflineGEXReader())

    decision = await harness.orchestrator.evaluate_entry(make_signal())

    assert decision.should_enter
    assert decision.calculations.gex_adjustment == 0
    assert any("GEX unavailable" in line for line in decision.reasoning)


@pytest.mark.asyncio
async def test_high_confluence_boost(harness):
    target = make_signal(signal_id="t")
    recent = [
        make_signal(signal_id="g", source=SignalSource.GEX),
        make_signal(signal_id="m", source=SignalSource.MTF),
    ]

    decision = await harness.orchestrator.evaluate_entry(target, recent)

    assert decision.calculations.confluence_score == 1.0
    assert decision.calculations.confluence_adjustment == 10
    assert decision.confidence == pytest.approx(75)
    assert decision.calculations.confluence_multiplier == 1.2


@pytest.mark.asyncio
async def test_reported_confluence_used_without_recent_signals(harness):
    decision = await harness.orchestrator.evaluate_entry(make_signal(confluence=0.9))

    assert decision.calculations.confluence_score == 0.9
    assert decision.calculations.confluence_adjustment == 10


@pytest.mark.asyncio
async def test_confidence_clamped(clock):
    config = make_config(confidence={"base_confidence": 95})
    harness = Harness(clock, config=config, context=make_context(vix=10, regime=Regime.LOW_VOL))

    decision = await harness.orchestrator.evaluate_entry(make_signal())

    assert decision.calculations.raw_confidence > 100
    assert decision.confidence == 100


@pytest.mark.asyncio
async def test_size_below_minimum(clock):
    harness = Harness(clock, context=make_context(vix=35))

    decision = await harness.orchestrator.evaluate_entry(make_signal())

    assert decision.rejection_reason == "Position size below minimum"


@pytest.mark.asyncio
async def test_max_exposure(clock):
    harness = Harness(clock, config=make_config(risk={"max_total_exposure": 1000}))
    await harness.positions.open_position(make_signal(signal_id="existing"), 8.0, 1)

    decision = await harness.orchestrator.evaluate_entry(make_signal(price=2.5))

    assert decision.rejection_reason == "Maximum exposure exceeded"


@pytest.mark.asyncio
async def test_reference_price_from_quotes(clock):
    harness = Harness(clock, quotes={"SPY": 3.2})

    decision = await harness.orchestrator.evaluate_entry(make_signal())

    assert decision.reference_price == 3.2


@pytest.mark.asyncio
async def test_no_price_defers_exposure_check(harness):
    decision = await harness.orchestrator.evaluate_entry(make_signal())

    assert decision.should_enter
    assert decision.reference_price is None
    assert any("exposure check deferred" in line for line in decision.reasoning)


# ============================================================================
# Exit
# ============================================================================

async def open_position(harness, direction=Direction.CALL, price=2.0):
    result = await harness.positions.open_position(make_signal(direction=direction), price, 1)
    return result.position


@pytest.mark.asyncio
async def test_hold(harness):
    position = await open_position(harness)

    decision = await harness.orchestrator.evaluate_exit(position, 2.2)

    assert decision.decision == ExitDecisionType.HOLD
    assert decision.exit_reason is None
    assert decision.calculations.current_pnl == pytest.approx(20)
    assert decision.calculations.current_pnl_percent == pytest.approx(10)


@pytest.mark.asyncio
async def test_profit_target(harness):
    position = await open_position(harness)

    decision = await harness.orchestrator.evaluate_exit(position, 3.0)

    assert decision.should_exit
    assert decision.exit_reason == ExitReason.PROFIT_TARGET
    assert decision.calculations.profit_target


@pytest.mark.asyncio
async def test_stop_loss(harness):
    position = await open_position(harness)

    decision = await harness.orchestrator.evaluate_exit(position, 1.4)

    assert decision.exit_reason == ExitReason.STOP_LOSS


@pytest.mark.asyncio
async def test_profit_target_wins_over_flip(clock):
    reader = InMemoryGEXReader([
        make_gex(Direction.CALL, age_minutes=30),
        make_gex(Direction.PUT, age_minutes=5),
    ])
    harness = Harness(clock, gex_reader=reader)
    position = await open_position(harness)

    decision = await harness.orchestrator.evaluate_exit(position, 3.5)

    assert decision.exit_reason == ExitReason.PROFIT_TARGET
    assert not decision.calculations.gex_flip


@pytest.mark.asyncio
async def test_gex_flip_against_position(clock):
    reader = InMemoryGEXReader([
        make_gex(Direction.CALL, age_minutes=30),
        make_gex(Direction.PUT, age_minutes=5),
    ])
    harness = Harness(clock, gex_reader=reader)
    position = await open_position(harness)

    decision = await harness.orchestrator.evaluate_exit(position, 2.1)

    assert decision.exit_reason == ExitReason.GEX_FLIP


@pytest.mark.asyncio
async def test_gex_flip_in_favour_holds(clock):
    reader = InMemoryGEXReader([
        make_gex(Direction.PUT, age_minutes=30),
        make_gex(Direction.CALL, age_minutes=5),
    ])
    harness = Harness(clock, gex_reader=reader)
    position = await open_position(harness)

    decision = await harness.orchestrator.evaluate_exit(position, 2.1)

    assert decision.decision == ExitDecisionType.HOLD


@pytest.mark.asyncio
async def test_max_hold_time_exit(clock):
    harness = Harness(clock, config=make_config(exit={"max_hold_minutes": 60}))
    position = await open_position(harness)
    clock.advance(minutes=61)

    decision = await harness.orchestrator.evaluate_exit(position, 2.1)

    assert decision.exit_reason == ExitReason.TIME_EXIT
    assert decision.calculations.hold_minutes == pytest.approx(61)


@pytest.mark.asyncio
async def test_market_close_time_exit(harness, clock):
    position = await open_position(harness)
    clock.set(datetime(2025, 1, 15, 20, 30, tzinfo=timezone.utc))

    decision = await harness.orchestrator.evaluate_exit(position, 2.1)

    assert decision.exit_reason == ExitReason.TIME_EXIT


@pytest.mark.asyncio
async def test_exit_price_falls_back_to_last_known(harness):
    position = await open_position(harness)

    decision = await harness.orchestrator.evaluate_exit(position)

    assert decision.calculations.current_price == 2.0
    assert decision.decision == ExitDecisionType.HOLD


@pytest.mark.asyncio
async def test_exit_price_from_quotes(clock):
    harness = Harness(clock, quotes={"SPY": 3.0})
    position = await open_position(harness)

    decision = await harness.orchestrator.evaluate_exit(position)

    assert decision.calculations.current_price == 3.0
    assert decision.exit_reason == ExitReason.PROFIT_TARGET


@pytest.mark.asyncio
async def test_exit_decision_audited(harness):
    position = await open_position(harness)

    await harness.orchestrator.evaluate_exit(position, 2.1)

    entries = harness.audit.get_entries(AuditEntryType.EXIT_DECISION)
    assert entries[0].position_id == position.id
