"""
Raw payload -> Signal normalization.

Upstream sources disagree on field names and spellings. The normalizer maps
aliases onto canonical fields, canonicalizes symbol, direction and timeframe,
and lifts the metadata the engine understands into SignalMetadata. Payloads
missing symbol, direction or timeframe are rejected.
"""

import logging
from typing import Any, Dict, Mapping, Optional, Tuple

from signal_engine.core.errors import SignalNormalizationError
from signal_engine.core.models import Direction, Signal, SignalMetadata, SignalSource
from signal_engine.utils.time_utils import Clock, TimeUtils

logger = logging.getLogger(__name__)


SYMBOL_FIELDS = ("symbol", "ticker", "underlying")
DIRECTION_FIELDS = ("direction", "action", "side", "signal", "type", "option_type", "optionType")
TIMEFRAME_FIELDS = ("timeframe", "tf", "interval")
TIMESTAMP_FIELDS = ("timestamp", "time", "signal_time")
STANDARD_FIELDS = frozenset(("source", "metadata") + SYMBOL_FIELDS + DIRECTION_FIELDS + TIMEFRAME_FIELDS + TIMESTAMP_FIELDS)

CONFLUENCE_FIELDS = ("confluence", "confluence_score")
MTF_FIELDS = ("mtf_aligned", "mtfAligned")
PRICE_FIELDS = (
    "price", "entryPrice", "entry_price", "limit_price", "limitPrice",
    "last", "close", "current_price", "underlying_price",
)

DIRECTION_ALIASES = {
    "CALL": Direction.CALL,
    "BUY": Direction.CALL,
    "LONG": Direction.CALL,
    "C": Direction.CALL,
    "PUT": Direction.PUT,
    "SELL": Direction.PUT,
    "SHORT": Direction.PUT,
    "P": Direction.PUT,
}

TIMEFRAME_ALIASES = {
    "1m": "1m", "1min": "1m",
    "5m": "5m", "5min": "5m",
    "15m": "15m", "15min": "15m",
    "30m": "30m", "30min": "30m",
    "1h": "1h", "1hr": "1h", "1hour": "1h", "60": "1h", "60m": "1h",
    "4h": "4h", "4hr": "4h", "240": "4h",
    "1d": "1d", "1day": "1d", "d": "1d", "daily": "1d",
}

_TRUE = {"true", "1", "yes", "y"}
_FALSE = {"false", "0", "no", "n"}


def _first(raw: Mapping[str, Any], names: Tuple[str, ...]) -> Any:
    for name in names:
        value = raw.get(name)
        if value is not None and value != "":
            return value
    return None


class SignalNormalizer:
    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or TimeUtils.now_utc

    def normalize(self, raw: Any, tracking_id: str) -> Signal:
        """
        Build a Signal from a raw payload.

        Raises:
            SignalNormalizationError: on missing required fields or
                uninterpretable direction/timestamp
        """
        if not isinstance(raw, Mapping):
            raise SignalNormalizationError(f"Payload must be a mapping, got {type(raw).__name__}")

        raw_symbol = _first(raw, SYMBOL_FIELDS)
        raw_direction = _first(raw, DIRECTION_FIELDS)
        raw_timeframe = _first(raw, TIMEFRAME_FIELDS)

        missing = [
            name for name, value in (
                ("symbol", raw_symbol),
                ("direction", raw_direction),
                ("timeframe", raw_timeframe),
            )
            if value is None
        ]
        if missing:
            raise SignalNormalizationError(f"Missing required fields: {', '.join(missing)}")

        raw_timestamp = _first(raw, TIMESTAMP_FIELDS)
        if raw_timestamp is None:
            timestamp = self._clock()
        else:
            timestamp = TimeUtils.parse_timestamp(raw_timestamp)
            if timestamp is None:
                raise SignalNormalizationError(f"Invalid timestamp: {raw_timestamp!r}")

        return Signal(
            id=tracking_id,
            source=self.normalize_source(raw.get("source")),
            symbol=self.normalize_symbol(str(raw_symbol)),
            direction=self.normalize_direction(str(raw_direction)),
            timeframe=self.normalize_timeframe(str(raw_timeframe)),
            timestamp=timestamp,
            metadata=self.extract_metadata(raw),
        )

    @staticmethod
    def normalize_source(source: Any) -> SignalSource:
        if source is None or source == "":
            return SignalSource.TRADINGVIEW
        try:
            return SignalSource(str(source).strip().upper())
        except ValueError:
            logger.warning(f"Unknown signal source: {source}, defaulting to TRADINGVIEW")
            return SignalSource.TRADINGVIEW

    @staticmethod
    def normalize_symbol(symbol: str) -> str:
        value = symbol.strip().upper()
        if ":" in value:
            value = value.split(":")[-1]
        if "." in value:
            value = value.split(".")[0]
        value = value.strip()
        if not value:
            raise SignalNormalizationError(f"Invalid symbol: {symbol!r}")
        return value

    @staticmethod
    def normalize_direction(direction: str) -> Direction:
        value = direction.strip().upper()
        if value in DIRECTION_ALIASES:
            return DIRECTION_ALIASES[value]
        if "CALL" in value:
            return Direction.CALL
        if "PUT" in value:
            return Direction.PUT
        raise SignalNormalizationError(f"Invalid direction: {direction}. Must be CALL or PUT")

    @staticmethod
    def normalize_timeframe(timeframe: str) -> str:
        value = timeframe.strip().lower()
        return TIMEFRAME_ALIASES.get(value, value)

    def extract_metadata(self, raw: Mapping[str, Any]) -> SignalMetadata:
        fields: Dict[str, Any] = {}
        nested = raw.get("metadata")
        if isinstance(nested, Mapping):
            fields.update(nested)
        fields.update({k: v for k, v in raw.items() if k not in STANDARD_FIELDS})

        extra = dict(fields)
        confluence = self._pop_float(extra, CONFLUENCE_FIELDS)
        if confluence is not None and not 0.0 <= confluence <= 1.0:
            logger.warning(f"Ignoring confluence outside [0, 1]: {confluence}")
            confluence = None
        price = self._pop_float(extra, PRICE_FIELDS, first_only=True)
        if price is not None and price <= 0:
            price = None
        mtf_aligned = self._pop_bool(extra, MTF_FIELDS)

        return SignalMetadata(confluence=confluence, mtf_aligned=mtf_aligned, price=price, extra=extra)

    @staticmethod
    def _pop_float(extra: Dict[str, Any], names: Tuple[str, ...], first_only: bool = False) -> Optional[float]:
        """Pop the recognised keys; the first one that parses as a number wins."""
        found = None
        for name in names:
            if name not in extra:
                continue
            value = extra[name]
            if isinstance(value, bool):
                continue
            try:
                number = float(value)
            except (TypeError, ValueError):
                logger.warning(f"Ignoring non-numeric {name}={value!r}")
                continue
            del extra[name]
            if found is None:
                found = number
                if first_only:
                    break
        return found

    @staticmethod
    def _pop_bool(extra: Dict[str, Any], names: Tuple[str, ...]) -> Optional[bool]:
        for name in names:
            if name not in extra:
                continue
            value = extra.pop(name)
            if isinstance(value, bool):
                return value
            if isinstance(value, (int, float)):
                return bool(value)
            text = str(value).strip().lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            logger.warning(f"Ignoring unrecognised {name}={value!r}")
        return None
