"""
End-to-end tests for the signal pipeline, wired through bootstrap.

Tests:
- Happy path from raw payload to open position
- Each stage's failure is reported with that stage
- Batch processing and per-signal isolation
- Exit pass closes or refreshes open positions
- Pipeline status and failure records
"""

import json
from datetime import datetime, timezone

import pytest

from signal_engine.bootstrap import build_engine, build_pipeline
from signal_engine.core.models import PipelineStage
from signal_engine.market_data.gex_service import GEXReader, InMemoryGEXReader
from signal_engine.market_data.providers import StaticContextProvider, StaticQuoteProvider
from signal_engine.monitoring.audit_logger import AuditEntryType
from signal_engine.position.models import PositionStatus

from conftest import make_config, make_context, no_sleep


class OfflineGEXReader(GEXReader):
    async def read(self, symbol, timeframe, limit):
        raise ConnectionError("gex offline")


def payload(**overrides):
    raw = {"source": "tradingview", "symbol": "SPY", "direction": "CALL", "timeframe": "5m", "price": 2.0}
    raw.update(overrides)
    return raw


def build(clock, config=None, context=None, gex_reader=None, quotes=None, **kwargs):
    return build_engine(
        config or make_config(validation={"cooldown_seconds": 0}),
        StaticContextProvider(context or make_context()),
        gex_reader or InMemoryGEXReader(),
        quote_providers=[quotes] if quotes else None,
        clock=clock,
        sleep=no_sleep,
        **kwargs,
    )


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def quotes():
    return StaticQuoteProvider({"SPY": 2.0, "QQQ": 3.0, "IWM": 1.5}, name="static")


@pytest.fixture
def engine(clock, quotes):
    return build(clock, quotes=quotes)


# ============================================================================
# Happy path
# ============================================================================

@pytest.mark.asyncio
async def test_signal_to_open_position(engine):
    result = await engine.pipeline.process_signal(payload())

    assert result.success
    assert result.stage == PipelineStage.EXECUTION
    assert result.signal.id == result.tracking_id
    assert result.validation.valid
    assert result.decision.should_enter
    assert result.position.signal_id == result.tracking_id
    assert result.position.entry_price == 2.0
    assert result.position.quantity == result.decision.position_size

    trail = [e.entry_type for e in engine.audit_logger.get_entries(signal_id=result.tracking_id)]
    assert trail == [
        AuditEntryType.SIGNAL_RECEIVED,
        AuditEntryType.ENTRY_DECISION,
        AuditEntryType.TRADE_OPENED,
    ]


@pytest.mark.asyncio
async def test_json_string_payload(engine):
    result = await engine.pipeline.process_signal(json.dumps(payload()))

    assert result.success
    assert json.loads(json.dumps(result.to_dict()))["stage"] == "EXECUTION"


@pytest.mark.asyncio
async def test_entry_price_from_quotes_when_payload_has_none(engine):
    raw = payload()
    del raw["price"]

    result = await engine.pipeline.process_signal(raw)

    assert result.success
    assert result.position.entry_price == 2.0


def test_build_pipeline_returns_pipeline(clock):
    pipeline = build_pipeline(
        make_config(),
        StaticContextProvider(make_context()),
        InMemoryGEXReader(),
        clock=clock,
    )

    assert pipeline.get_pipeline_status()["processed"] == 0


# ============================================================================
# Stage failures
# ============================================================================

@pytest.mark.asyncio
async def test_invalid_json_fails_at_reception(engine):
    result = await engine.pipeline.process_signal("{not json")

    assert not result.success
    assert result.stage == PipelineStage.RECEPTION
    assert result.failure_reason.startswith("Invalid JSON payload")


@pytest.mark.asyncio
async def test_empty_payload(engine):
    result = await engine.pipeline.process_signal(None)

    assert result.stage == PipelineStage.RECEPTION
    assert result.failure_reason == "Empty payload"


@pytest.mark.asyncio
async def test_normalization_failure(engine):
    result = await engine.pipeline.process_signal({"symbol": "SPY", "direction": "CALL"})

    assert result.stage == PipelineStage.NORMALIZATION
    assert result.failure_reason == "Missing required fields: timeframe"
    assert result.signal is None


@pytest.mark.asyncio
async def test_validation_failure(engine, clock):
    clock.set(datetime(2025, 1, 15, 8, 0, tzinfo=timezone.utc))

    result = await engine.pipeline.process_signal(payload())

    assert result.stage == PipelineStage.VALIDATION
    assert result.failure_reason == "Outside market hours"
    assert result.validation.checks.market_hours is False


@pytest.mark.asyncio
async def test_duplicate_suppressed(engine):
    raw = payload(timestamp="2025-01-15T15:00:00Z")

    first = await engine.pipeline.process_signal(raw)
    second = await engine.pipeline.process_signal(raw)

    assert first.success
    assert second.stage == PipelineStage.DEDUPLICATION
    assert second.failure_reason == "Duplicate signal"


@pytest.mark.asyncio
async def test_cooldown_blocks_before_dedup(clock, quotes):
    engine = build(clock, config=make_config(), quotes=quotes)

    await engine.pipeline.process_signal(payload())
    clock.advance(seconds=30)
    result = await engine.pipeline.process_signal(payload())

    assert result.stage == PipelineStage.VALIDATION
    assert result.failure_reason == "Cooldown active"


@pytest.mark.asyncio
async def test_decision_rejection(clock, quotes):
    engine = build(clock, context=make_context(vix=60), quotes=quotes)

    result = await engine.pipeline.process_signal(payload())

    assert result.stage == PipelineStage.DECISION
    assert "VIX" in result.failure_reason
    assert result.decision.position_size == 0


@pytest.mark.asyncio
async def test_execution_without_price(clock):
    engine = build(clock)
    raw = payload()
    del raw["price"]

    result = await engine.pipeline.process_signal(raw)

    assert result.stage == PipelineStage.EXECUTION
    assert result.failure_reason == "No entry price available"
    assert result.decision.should_enter


@pytest.mark.asyncio
async def test_handler_exception_tagged_with_stage(engine, monkeypatch):
    async def boom(signal, recent=None):
        raise RuntimeError("boom")

    monkeypatch.setattr(engine.orchestrator, "evaluate_entry", boom)

    result = await engine.pipeline.process_signal(payload())

    assert not result.success
    assert result.stage == PipelineStage.DECISION
    assert "boom" in result.failure_reason
    assert engine.pipeline.get_failure(result.tracking_id).error_type == "RuntimeError"


@pytest.mark.asyncio
async def test_gex_outage_degrades_but_enters(clock, quotes):
    engine = build(clock, gex_reader=OfflineGEXReader(), quotes=quotes)

    result = await engine.pipeline.process_signal(payload())

    assert result.success
    status = engine.pipeline.get_pipeline_status()
    assert status["degraded"] is True
    assert "GEX" in status["degraded_message"]


# ============================================================================
# Batches
# ============================================================================

@pytest.mark.asyncio
async def test_batch_isolates_failures(engine):
    results = await engine.pipeline.process_batch([
        payload(symbol="SPY"),
        {"symbol": "QQQ", "direction": "SIDEWAYS", "timeframe": "5m"},
        payload(symbol="IWM", price=1.5),
    ])

    assert [r.success for r in results] == [True, False, True]
    assert results[1].stage == PipelineStage.NORMALIZATION
    assert len(await engine.position_manager.get_open_positions()) == 2


@pytest.mark.asyncio
async def test_recent_signals_feed_confluence(engine):
    await engine.pipeline.process_signal(payload(source="gex"))
    result = await engine.pipeline.process_signal(payload(source="mtf", timestamp="2025-01-15T15:00:01Z"))

    assert result.decision.calculations.confluence_score == 1.0
    assert result.decision.calculations.confluence_adjustment == 10


# ============================================================================
# Exits
# ============================================================================

@pytest.mark.asyncio
async def test_exit_pass_closes_on_profit(engine, quotes):
    entry = await engine.pipeline.process_signal(payload())
    quotes.set_quote("SPY", 3.0)

    exits = await engine.pipeline.process_exits()

    assert len(exits) == 1
    assert exits[0].closed
    assert exits[0].realized_pnl == pytest.approx(100.0 * entry.position.quantity)
    closed = await engine.position_manager.get_position(entry.position.id)
    assert closed.status == PositionStatus.CLOSED
    assert engine.audit_logger.get_entries(AuditEntryType.TRADE_CLOSED)


@pytest.mark.asyncio
async def test_exit_pass_holds_and_refreshes_price(engine, quotes):
    entry = await engine.pipeline.process_signal(payload())
    quotes.set_quote("SPY", 2.3)

    exits = await engine.pipeline.process_exits()

    assert not exits[0].closed
    refreshed = await engine.position_manager.get_position(entry.position.id)
    assert refreshed.current_price == 2.3
    assert refreshed.unrealized_pnl == pytest.approx(30.0 * entry.position.quantity)


@pytest.mark.asyncio
async def test_exit_pass_time_exit_at_close(engine, clock):
    await engine.pipeline.process_signal(payload())
    clock.set(datetime(2025, 1, 15, 20, 45, tzinfo=timezone.utc))

    exits = await engine.pipeline.process_exits()

    assert exits[0].closed
    assert exits[0].decision.exit_reason.value == "TIME_EXIT"
    assert await engine.position_manager.get_open_positions() == []


# ============================================================================
# Status & failure records
# ============================================================================

@pytest.mark.asyncio
async def test_pipeline_status_counts(engine):
    await engine.pipeline.process_signal(payload())
    await engine.pipeline.process_signal({"symbol": "SPY"})
    await engine.pipeline.process_signal("garbage")

    status = engine.pipeline.get_pipeline_status()

    assert status["processed"] == 3
    assert status["succeeded"] == 1
    assert status["failed"] == 2
    assert status["failures_by_stage"]["NORMALIZATION"] == 1
    assert status["failures_by_stage"]["RECEPTION"] == 1
    assert status["degraded"] is False


@pytest.mark.asyncio
async def test_clear_old_failures(engine, clock):
    failed = await engine.pipeline.process_signal({"symbol": "SPY"})
    assert engine.pipeline.get_failure(failed.tracking_id) is not None

    clock.advance(seconds=3601)

    assert engine.pipeline.clear_old_failures() == 1
    assert engine.pipeline.get_all_failures() == []
    assert engine.pipeline.get_pipeline_status()["failures_by_stage_total"]["NORMALIZATION"] == 1


@pytest.mark.asyncio
async def test_failure_records_expire_as_new_ones_arrive(engine, clock):
    """Test 500 rejections over ~8h keep only the last hour of records."""
    for _ in range(500):
        await engine.pipeline.process_signal({"symbol": "SPY"})
        clock.advance(seconds=60)

    # newest at t=29940s; records within 3600s of it: 61
    assert len(engine.pipeline.get_all_failures()) == 61
    status = engine.pipeline.get_pipeline_status()
    assert status["recorded_failures"] == 61
    assert status["failures_by_stage_total"]["NORMALIZATION"] == 500


@pytest.mark.asyncio
async def test_failure_records_capped(engine):
    engine.pipeline.max_failures = 5

    results = [await engine.pipeline.process_signal({"symbol": "SPY"}) for _ in range(8)]

    kept = [f.tracking_id for f in engine.pipeline.get_all_failures()]
    assert kept == [r.tracking_id for r in results[3:]]
    assert engine.pipeline.get_failure(results[0].tracking_id) is None
