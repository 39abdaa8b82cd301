"""
Audit trail for signals, decisions and trades.

Every entry is kept in a bounded in-memory buffer, written to the
``signal_engine.audit`` logger, and optionally handed to an async persistence
hook. A failing hook is logged and never fails the signal being processed.
"""

import logging
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional

from signal_engine.core.models import (
    ContextData,
    EntryDecision,
    ExitDecision,
    GEXSignal,
    Signal,
)
from signal_engine.position.models import Position
from signal_engine.utils.time_utils import Clock, TimeUtils

logger = logging.getLogger("signal_engine.audit")


class AuditEntryType(str, Enum):
    SIGNAL_RECEIVED = "signal_received"
    ENTRY_DECISION = "entry_decision"
    EXIT_DECISION = "exit_decision"
    TRADE_OPENED = "trade_opened"
    TRADE_CLOSED = "trade_closed"


@dataclass
class AuditEntry:
    entry_type: AuditEntryType
    timestamp: datetime
    signal_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    position_id: Optional[str] = None


PersistHook = Callable[[AuditEntry], Awaitable[None]]


class AuditLogger:
    """Records the full decision trail for later inspection."""

    def __init__(
        self,
        persist: Optional[PersistHook] = None,
        max_entries: int = 10000,
        clock: Optional[Clock] = None,
    ):
        self._persist = persist
        self._clock = clock or TimeUtils.now_utc
        self._entries: Deque[AuditEntry] = deque(maxlen=max_entries)

    async def log_signal_received(self, signal: Signal) -> None:
        await self._record(AuditEntry(
            entry_type=AuditEntryType.SIGNAL_RECEIVED,
            timestamp=self._clock(),
            signal_id=signal.id,
            data=signal.to_dict(),
        ))
        logger.info(
            f"Signal received: {signal.source.value} {signal.symbol} {signal.direction.value} {signal.timeframe}",
            extra={"tracking_id": signal.id, "symbol": signal.symbol},
        )

    async def log_entry_decision(
        self,
        decision: EntryDecision,
        context: Optional[ContextData] = None,
        gex: Optional[GEXSignal] = None,
    ) -> None:
        data = decision.to_dict()
        data["context"] = _serialize(context)
        data["gex"] = _serialize(gex)
        await self._record(AuditEntry(
            entry_type=AuditEntryType.ENTRY_DECISION,
            timestamp=self._clock(),
            signal_id=decision.signal.id,
            data=data,
        ))
        logger.info(
            f"Entry decision {decision.decision.value}: {decision.signal.symbol} "
            f"confidence={decision.confidence:.1f} size={decision.position_size}"
            + (f" reason={decision.rejection_reason}" if decision.rejection_reason else ""),
            extra={"tracking_id": decision.signal.id, "symbol": decision.signal.symbol},
        )

    async def log_exit_decision(self, decision: ExitDecision) -> None:
        await self._record(AuditEntry(
            entry_type=AuditEntryType.EXIT_DECISION,
            timestamp=self._clock(),
            signal_id=decision.position.signal_id,
            position_id=decision.position.id,
            data=decision.to_dict(),
        ))
        logger.info(
            f"Exit decision {decision.decision.value}: position {decision.position.id}"
            + (f" reason={decision.exit_reason.value}" if decision.exit_reason else ""),
            extra={"tracking_id": decision.position.signal_id, "symbol": decision.position.symbol},
        )

    async def log_trade_opened(self, position: Position) -> None:
        await self._record(AuditEntry(
            entry_type=AuditEntryType.TRADE_OPENED,
            timestamp=self._clock(),
            signal_id=position.signal_id,
            position_id=position.id,
            data=position.to_dict(),
        ))
        logger.info(
            f"Trade opened: {position.id} {position.symbol} {position.direction.value} "
            f"x{position.quantity} @ {position.entry_price}",
            extra={"tracking_id": position.signal_id, "symbol": position.symbol},
        )

    async def log_trade_closed(self, position: Position) -> None:
        await self._record(AuditEntry(
            entry_type=AuditEntryType.TRADE_CLOSED,
            timestamp=self._clock(),
            signal_id=position.signal_id,
            position_id=position.id,
            data=position.to_dict(),
        ))
        logger.info(
            f"Trade closed: {position.id} {position.symbol} @ {position.exit_price} "
            f"pnl={position.realized_pnl}",
            extra={"tracking_id": position.signal_id, "symbol": position.symbol},
        )

    def get_entries(
        self,
        entry_type: Optional[AuditEntryType] = None,
        signal_id: Optional[str] = None,
    ) -> List[AuditEntry]:
        return [
            e for e in self._entries
            if (entry_type is None or e.entry_type == entry_type)
            and (signal_id is None or e.signal_id == signal_id)
        ]

    def clear(self) -> None:
        self._entries.clear()

    async def _record(self, entry: AuditEntry) -> None:
        self._entries.append(entry)
        if self._persist is None:
            return
        try:
            await self._persist(entry)
        except Exception as e:
            logger.error(
                f"Failed to persist audit entry {entry.entry_type.value}: {e}",
                extra={"tracking_id": entry.signal_id},
                exc_info=True,
            )


def _serialize(value: Any) -> Optional[Dict[str, Any]]:
    if value is None:
        return None
    data = asdict(value)
    for key, item in data.items():
        if isinstance(item, datetime):
            data[key] = item.isoformat()
        elif isinstance(item, Enum):
            data[key] = item.value
    return data
