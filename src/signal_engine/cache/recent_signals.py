"""Sliding window of recently accepted signals, used for confluence scoring."""

import threading
from collections import deque
from typing import Deque, List, Optional

from signal_engine.core.models import Signal
from signal_engine.utils.time_utils import Clock, TimeUtils


class RecentSignalWindow:
    def __init__(self, window_minutes: float, clock: Optional[Clock] = None, max_signals: int = 5000):
        self.window_seconds = window_minutes * 60.0
        self._clock = clock or TimeUtils.now_utc
        self._signals: Deque[Signal] = deque(maxlen=max_signals)
        self._lock = threading.Lock()

    def add(self, signal: Signal) -> None:
        with self._lock:
            self._signals.append(signal)

    def snapshot(self, symbol: Optional[str] = None) -> List[Signal]:
        """Signals whose timestamp is still inside the window, oldest first."""
        now = self._clock()
        with self._lock:
            while self._signals and TimeUtils.seconds_between(self._signals[0].timestamp, now) > self.window_seconds:
                self._signals.popleft()
            return [
                s for s in self._signals
                if (symbol is None or s.symbol == symbol)
                and TimeUtils.seconds_between(s.timestamp, now) <= self.window_seconds
            ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._signals)
