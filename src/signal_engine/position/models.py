"""
Position data models and state management.

Defines the Position dataclass tracked by PositionManager. A position is
mutated only by the manager while OPEN; once closed it is sealed and any
further assignment raises PositionStateError.
"""

from dataclasses import dataclass, fields
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from signal_engine.core.errors import PositionStateError
from signal_engine.core.models import Direction


class PositionStatus(str, Enum):
    """Position lifecycle states."""
    OPEN = "OPEN"
    CLOSED = "CLOSED"


@dataclass
class Position:
    """
    Represents an options position opened from a signal.

    Quantity is in contracts; P&L figures include the contract multiplier.
    """

    # ========================================================================
    # Identity
    # ========================================================================
    id: str
    signal_id: str
    symbol: str
    direction: Direction
    timeframe: str

    # ========================================================================
    # Position Details
    # ========================================================================
    quantity: int
    entry_price: float
    entry_time: datetime

    # ========================================================================
    # State Management
    # ========================================================================
    status: PositionStatus = PositionStatus.OPEN

    # ========================================================================
    # Tracking & P&L
    # ========================================================================
    current_price: Optional[float] = None
    unrealized_pnl: float = 0.0
    realized_pnl: Optional[float] = None

    # ========================================================================
    # Exit Information
    # ========================================================================
    exit_price: Optional[float] = None
    exit_time: Optional[datetime] = None

    def __post_init__(self):
        object.__setattr__(self, "_sealed", self.status == PositionStatus.CLOSED)

    def __setattr__(self, name: str, value: Any) -> None:
        if self.__dict__.get("_sealed", False):
            raise PositionStateError(f"Position {self.id} is closed and cannot be modified")
        super().__setattr__(name, value)

    @property
    def is_open(self) -> bool:
        return self.status == PositionStatus.OPEN

    def mark_closed(self, exit_price: float, exit_time: datetime, realized_pnl: float) -> None:
        """Transition to CLOSED and seal the position."""
        if not self.is_open:
            raise PositionStateError(f"Position {self.id} is already closed")
        self.exit_price = exit_price
        self.exit_time = exit_time
        self.realized_pnl = realized_pnl
        self.current_price = exit_price
        self.unrealized_pnl = 0.0
        self.status = PositionStatus.CLOSED
        object.__setattr__(self, "_sealed", True)

    def hold_minutes(self, now: datetime) -> float:
        return (now - self.entry_time).total_seconds() / 60.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert position to dictionary for serialization."""
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, datetime):
                value = value.isoformat()
            data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Position":
        """Create position from dictionary."""
        data = dict(data)
        data["direction"] = Direction(data["direction"])
        data["status"] = PositionStatus(data.get("status", PositionStatus.OPEN.value))
        for key in ("entry_time", "exit_time"):
            if isinstance(data.get(key), str):
                data[key] = datetime.fromisoformat(data[key])
        return cls(**data)
