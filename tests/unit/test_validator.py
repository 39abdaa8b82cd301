"""
Unit tests for SignalValidator and the individual validation checks.

Check order: cooldown -> market hours -> MTF -> confluence -> signal age.
The first failure short-circuits and names its reason.
"""

from datetime import datetime, timezone

import pytest

from signal_engine.core.models import Direction
from signal_engine.decision.filters import (
    ConfluenceCheck,
    CooldownCheck,
    MarketHoursCheck,
    MTFAlignmentCheck,
    SignalAgeCheck,
)
from signal_engine.decision.validator import SignalValidator

from conftest import MARKET_OPEN_TIME, make_config, make_signal


@pytest.fixture
def validator(config, clock):
    return SignalValidator(config, clock=clock)


# ============================================================================
# Full sequence
# ============================================================================

@pytest.mark.asyncio
async def test_valid_signal_passes_every_check(validator, signal):
    result = await validator.validate(signal)

    assert result.valid
    assert result.rejection_reason is None
    checks = result.checks
    assert (checks.cooldown, checks.market_hours, checks.mtf, checks.confluence, checks.time_filters) == (
        True, True, True, True, True
    )


@pytest.mark.asyncio
async def test_outside_market_hours(validator, clock):
    """Test a 03:00 exchange-time signal is rejected at the market-hours check."""
    early = datetime(2025, 1, 15, 8, 0, tzinfo=timezone.utc)
    clock.set(early)

    result = await validator.validate(make_signal(timestamp=early))

    assert not result.valid
    assert result.rejection_reason == "Outside market hours"
    assert result.checks.cooldown is True
    assert result.checks.market_hours is False
    assert result.checks.mtf is False
    assert result.checks.time_filters is False


PRE_MARKET = datetime(2025, 1, 15, 8, 0, tzinfo=timezone.utc)   # 03:00 ET


@pytest.mark.asyncio
@pytest.mark.parametrize("timestamp, mtf_aligned, confluence, reason, flags", [
    (PRE_MARKET, False, 0.1, "Outside market hours", (True, False, False, False, False)),
    (MARKET_OPEN_TIME, False, 0.1, "MTF alignment failed", (True, True, False, False, False)),
    (MARKET_OPEN_TIME, True, 0.1, "Insufficient confluence", (True, True, True, False, False)),
    (MARKET_OPEN_TIME, True, 0.9, "Signal too old", (True, True, True, True, False)),
])
async def test_first_of_several_failures_is_reported(
    validator, clock, timestamp, mtf_aligned, confluence, reason, flags
):
    """Test a signal failing several checks reports the earliest one; its timestamp is also an hour old."""
    clock.set(datetime(2025, 1, 15, 16, 0, tzinfo=timezone.utc))

    result = await validator.validate(
        make_signal(timestamp=timestamp, mtf_aligned=mtf_aligned, confluence=confluence)
    )

    assert not result.valid
    assert result.rejection_reason == reason
    checks = result.checks
    assert (checks.cooldown, checks.market_hours, checks.mtf, checks.confluence, checks.time_filters) == flags


@pytest.mark.asyncio
async def test_cooldown_reported_before_every_other_failure(validator, clock):
    await validator.validate(make_signal(signal_id="a"))
    clock.advance(seconds=30)

    result = await validator.validate(
        make_signal(signal_id="b", timestamp=PRE_MARKET, mtf_aligned=False, confluence=0.1)
    )

    assert result.rejection_reason == "Cooldown active"
    checks = result.checks
    assert (checks.cooldown, checks.market_hours, checks.mtf, checks.confluence, checks.time_filters) == (
        False, False, False, False, False
    )
    assert list(result.details) == ["cooldown"]


@pytest.mark.asyncio
async def test_cooldown_rejects_repeat(validator, clock):
    await validator.validate(make_signal(signal_id="a"))
    clock.advance(seconds=120)

    result = await validator.validate(make_signal(signal_id="b", timestamp=clock()))

    assert not result.valid
    assert result.rejection_reason == "Cooldown active"
    assert result.checks.cooldown is False
    assert result.details["cooldown"]["remaining_seconds"] == pytest.approx(180)


@pytest.mark.asyncio
async def test_cooldown_is_per_symbol_and_direction(validator):
    await validator.validate(make_signal())

    put = await validator.validate(make_signal(direction=Direction.PUT))
    other = await validator.validate(make_signal(symbol="QQQ"))

    assert put.valid
    assert other.valid


@pytest.mark.asyncio
async def test_cooldown_expires(validator, clock):
    await validator.validate(make_signal())
    clock.advance(seconds=300)

    result = await validator.validate(make_signal(timestamp=clock()))

    assert result.valid


@pytest.mark.asyncio
async def test_mtf_misalignment(validator):
    result = await validator.validate(make_signal(mtf_aligned=False))

    assert result.rejection_reason == "MTF alignment failed"
    assert result.checks.market_hours is True
    assert result.checks.confluence is False


@pytest.mark.asyncio
async def test_low_reported_confluence(validator):
    result = await validator.validate(make_signal(confluence=0.3))

    assert result.rejection_reason == "Insufficient confluence"
    assert result.checks.mtf is True


@pytest.mark.asyncio
async def test_stale_signal(validator, clock):
    clock.advance(minutes=6)

    result = await validator.validate(make_signal())

    assert result.rejection_reason == "Signal too old"
    assert result.checks.confluence is True
    assert result.checks.time_filters is False


@pytest.mark.asyncio
async def test_clear_cooldowns(validator):
    await validator.validate(make_signal())
    validator.clear_cooldowns()

    assert (await validator.validate(make_signal())).valid


# ============================================================================
# Individual checks
# ============================================================================

def test_cooldown_first_sighting_passes(clock):
    check = CooldownCheck(60, clock=clock)

    assert check.evaluate(make_signal()).passed


def test_cooldown_not_refreshed_by_rejected_signal(clock):
    """Test rejections do not push the cooldown further out."""
    check = CooldownCheck(60, clock=clock)
    check.evaluate(make_signal())

    clock.advance(seconds=50)
    assert not check.evaluate(make_signal()).passed

    clock.advance(seconds=10)
    assert check.evaluate(make_signal()).passed


@pytest.mark.parametrize("hour, minute, expected", [
    (14, 30, True),
    (20, 30, True),
    (20, 31, False),
    (14, 29, False),
])
def test_market_hours_bounds_inclusive(hour, minute, expected):
    check = MarketHoursCheck("09:30", "15:30", "America/New_York")
    when = datetime(2025, 1, 15, hour, minute, tzinfo=timezone.utc)

    assert check.evaluate(make_signal(timestamp=when)).passed is expected


def test_metadata_checks_pass_when_absent():
    signal = make_signal()

    assert MTFAlignmentCheck().evaluate(signal).passed
    assert ConfluenceCheck(0.5).evaluate(signal).passed


def test_confluence_boundary():
    assert ConfluenceCheck(0.5).evaluate(make_signal(confluence=0.5)).passed
    assert not ConfluenceCheck(0.5).evaluate(make_signal(confluence=0.49)).passed


def test_signal_age_boundary(clock):
    check = SignalAgeCheck(5, clock=clock)
    clock.advance(minutes=5)

    assert check.evaluate(make_signal(timestamp=MARKET_OPEN_TIME)).passed

    clock.advance(seconds=1)
    assert not check.evaluate(make_signal(timestamp=MARKET_OPEN_TIME)).passed


@pytest.mark.asyncio
async def test_custom_market_hours(clock):
    config = make_config(validation={"market_hours_start": "10:30", "market_hours_end": "15:00"})
    validator = SignalValidator(config, clock=clock)

    result = await validator.validate(make_signal())

    assert result.rejection_reason == "Outside market hours"
