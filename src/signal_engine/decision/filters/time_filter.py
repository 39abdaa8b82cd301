"""Signal freshness gate."""

from typing import Optional

from signal_engine.core.models import Signal
from signal_engine.decision.filters.base import CheckOutcome, ValidationCheck
from signal_engine.utils.time_utils import Clock, TimeUtils


class SignalAgeCheck(ValidationCheck):
    name = "time_filters"
    rejection_reason = "Signal too old"

    def __init__(self, max_age_minutes: float, clock: Optional[Clock] = None):
        super().__init__()
        self.max_age_minutes = max_age_minutes
        self._clock = clock or TimeUtils.now_utc

    def evaluate(self, signal: Signal) -> CheckOutcome:
        age_minutes = TimeUtils.seconds_between(signal.timestamp, self._clock()) / 60.0
        return CheckOutcome(age_minutes <= self.max_age_minutes, {
            "signal_age_minutes": round(age_minutes, 3),
            "max_age_minutes": self.max_age_minutes,
        })
