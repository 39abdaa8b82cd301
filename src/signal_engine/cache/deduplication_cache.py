"""
Duplicate-signal suppression by fingerprint.

The fingerprint covers exactly (source, symbol, timestamp, direction). A
repeat inside the duplicate window is suppressed; entries are purged once
they pass the expiry window, after which the same fingerprint counts as new.
"""

import hashlib
import logging
import threading
from datetime import datetime
from typing import Dict, Optional

from signal_engine.config.settings import AppConfig
from signal_engine.core.models import Signal
from signal_engine.utils.time_utils import Clock, TimeUtils

logger = logging.getLogger(__name__)


class DeduplicationCache:
    def __init__(self, config: AppConfig, clock: Optional[Clock] = None):
        self.window_seconds = config.cache.deduplication_window_seconds
        self.expiry_seconds = config.cache.deduplication_expiry_seconds
        self._clock = clock or TimeUtils.now_utc
        self._seen: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    @staticmethod
    def generate_fingerprint(signal: Signal) -> str:
        key = "|".join((
            signal.source.value,
            signal.symbol,
            TimeUtils.ensure_utc(signal.timestamp).isoformat(),
            signal.direction.value,
        ))
        return hashlib.sha256(key.encode("utf-8")).hexdigest()

    def is_duplicate(self, signal: Signal) -> bool:
        """Check and record ``signal`` atomically. The first sighting returns False."""
        fingerprint = self.generate_fingerprint(signal)

        with self._lock:
            now = self._clock()
            self._purge_expired(now)

            seen_at = self._seen.get(fingerprint)
            if seen_at is not None and TimeUtils.seconds_between(seen_at, now) < self.window_seconds:
                logger.debug(f"Duplicate signal {signal.id} (fingerprint {fingerprint[:12]})")
                return True

            self._seen[fingerprint] = now
            return False

    def entry_age(self, signal: Signal) -> Optional[float]:
        with self._lock:
            seen_at = self._seen.get(self.generate_fingerprint(signal))
            if seen_at is None:
                return None
            return TimeUtils.seconds_between(seen_at, self._clock())

    def size(self) -> int:
        with self._lock:
            return len(self._seen)

    def clear(self) -> None:
        with self._lock:
            self._seen.clear()

    def _purge_expired(self, now: datetime) -> None:
        expired = [
            fp for fp, seen_at in self._seen.items()
            if TimeUtils.seconds_between(seen_at, now) >= self.expiry_seconds
        ]
        for fp in expired:
            del self._seen[fp]
