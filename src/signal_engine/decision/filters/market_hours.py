"""Exchange trading-window gate."""

from signal_engine.core.models import Signal
from signal_engine.decision.filters.base import CheckOutcome, ValidationCheck
from signal_engine.utils.time_utils import TimeUtils


class MarketHoursCheck(ValidationCheck):
    name = "market_hours"
    rejection_reason = "Outside market hours"

    def __init__(self, start: str, end: str, timezone: str):
        super().__init__()
        self.start = start
        self.end = end
        self.timezone = timezone

    def evaluate(self, signal: Signal) -> CheckOutcome:
        local = TimeUtils.to_timezone(signal.timestamp, self.timezone)
        passed = TimeUtils.is_within_window(signal.timestamp, self.start, self.end, self.timezone)
        return CheckOutcome(passed, {
            "signal_time": local.isoformat(),
            "market_start": f"{self.start} {self.timezone}",
            "market_end": f"{self.end} {self.timezone}",
        })
