"""Per symbol/direction cooldown gate."""

import threading
from datetime import datetime
from typing import Dict, Optional, Tuple

from signal_engine.core.models import Direction, Signal
from signal_engine.decision.filters.base import CheckOutcome, ValidationCheck
from signal_engine.utils.time_utils import Clock, TimeUtils


class CooldownCheck(ValidationCheck):
    """
    Rejects a signal when one for the same symbol and direction passed less
    than ``cooldown_seconds`` ago. Passing records the current time.
    """

    name = "cooldown"
    rejection_reason = "Cooldown active"

    def __init__(self, cooldown_seconds: float, clock: Optional[Clock] = None):
        super().__init__()
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock or TimeUtils.now_utc
        self._last_seen: Dict[Tuple[str, Direction], datetime] = {}
        self._lock = threading.Lock()

    def evaluate(self, signal: Signal) -> CheckOutcome:
        key = (signal.symbol, signal.direction)
        with self._lock:
            now = self._clock()
            last = self._last_seen.get(key)

            if last is None:
                self._last_seen[key] = now
                return CheckOutcome(True, {"message": "No previous signal"})

            elapsed = TimeUtils.seconds_between(last, now)
            if elapsed < self.cooldown_seconds:
                return CheckOutcome(False, {
                    "time_since_last_signal": elapsed,
                    "cooldown_seconds": self.cooldown_seconds,
                    "remaining_seconds": self.cooldown_seconds - elapsed,
                })

            self._last_seen[key] = now
            return CheckOutcome(True, {
                "time_since_last_signal": elapsed,
                "cooldown_seconds": self.cooldown_seconds,
            })

    def clear(self) -> None:
        with self._lock:
            self._last_seen.clear()
