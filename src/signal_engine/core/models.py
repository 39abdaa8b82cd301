"""
Core data models shared across the signal decision pipeline.

Signals, market context and GEX readings are immutable once built. Decision
objects carry the full calculation trail so every ENTER/REJECT/EXIT/HOLD can be
audited after the fact.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from signal_engine.position.models import Position


# ============================================================================
# Enums
# ============================================================================

class SignalSource(str, Enum):
    """Upstream origin of a signal."""
    TRADINGVIEW = "TRADINGVIEW"
    GEX = "GEX"
    MTF = "MTF"
    MANUAL = "MANUAL"


class Direction(str, Enum):
    """Trade direction (long-call or long-put equivalent)."""
    CALL = "CALL"
    PUT = "PUT"

    @property
    def opposite(self) -> "Direction":
        return Direction.PUT if self is Direction.CALL else Direction.CALL


class Trend(str, Enum):
    """Prevailing market trend."""
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


class Regime(str, Enum):
    """Volatility regime."""
    LOW_VOL = "LOW_VOL"
    NORMAL = "NORMAL"
    HIGH_VOL = "HIGH_VOL"


class EntryDecisionType(str, Enum):
    ENTER = "ENTER"
    REJECT = "REJECT"


class ExitDecisionType(str, Enum):
    EXIT = "EXIT"
    HOLD = "HOLD"


class ExitReason(str, Enum):
    """Why a position was closed."""
    PROFIT_TARGET = "PROFIT_TARGET"
    STOP_LOSS = "STOP_LOSS"
    GEX_FLIP = "GEX_FLIP"
    TIME_EXIT = "TIME_EXIT"


class PipelineStage(str, Enum):
    """Stages a signal passes through, in order."""
    RECEPTION = "RECEPTION"
    NORMALIZATION = "NORMALIZATION"
    VALIDATION = "VALIDATION"
    DEDUPLICATION = "DEDUPLICATION"
    DECISION = "DECISION"
    EXECUTION = "EXECUTION"


# ============================================================================
# Signal
# ============================================================================

@dataclass(frozen=True)
class SignalMetadata:
    """
    Typed side-channel attached to a signal by its source.

    confluence and mtf_aligned are consulted by validation, price is used as the
    entry price. Anything else the source sent lands in ``extra`` and is only
    kept for the audit trail.
    """
    confluence: Optional[float] = None
    mtf_aligned: Optional[bool] = None
    price: Optional[float] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Signal:
    """A normalized trading signal. ``id`` is the pipeline tracking identifier."""
    id: str
    source: SignalSource
    symbol: str
    direction: Direction
    timeframe: str
    timestamp: datetime
    metadata: SignalMetadata = field(default_factory=SignalMetadata)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source.value,
            "symbol": self.symbol,
            "direction": self.direction.value,
            "timeframe": self.timeframe,
            "timestamp": self.timestamp.isoformat(),
            "metadata": asdict(self.metadata),
        }


# ============================================================================
# Market inputs
# ============================================================================

@dataclass(frozen=True)
class ContextData:
    """Snapshot of market context used to adjust confidence and size."""
    vix: float
    trend: Trend
    bias: float
    regime: Regime
    timestamp: datetime


@dataclass(frozen=True)
class GEXSignal:
    """Dealer gamma-exposure reading. ``age_seconds`` is derived when fetched."""
    symbol: str
    timeframe: str
    strength: float
    direction: Direction
    timestamp: datetime
    age_seconds: float = 0.0


# ============================================================================
# Validation
# ============================================================================

@dataclass
class ValidationChecks:
    """Outcome of each validation check, in evaluation order."""
    cooldown: bool = False
    market_hours: bool = False
    mtf: bool = False
    confluence: bool = False
    time_filters: bool = False


@dataclass
class ValidationResult:
    valid: bool
    checks: ValidationChecks = field(default_factory=ValidationChecks)
    rejection_reason: Optional[str] = None
    details: Dict[str, Dict[str, Any]] = field(default_factory=dict)


# ============================================================================
# Decisions
# ============================================================================

@dataclass
class EntryCalculations:
    """Every intermediate value behind an entry decision."""
    base_confidence: float = 0.0
    context_adjustment: float = 0.0
    positioning_adjustment: float = 0.0
    gex_adjustment: float = 0.0
    confluence_adjustment: float = 0.0
    raw_confidence: float = 0.0
    final_confidence: float = 0.0
    confluence_score: float = 0.0
    base_size: float = 0.0
    kelly_multiplier: float = 0.0
    regime_multiplier: float = 0.0
    confluence_multiplier: float = 0.0
    after_kelly: float = 0.0
    after_regime: float = 0.0
    after_confluence: float = 0.0
    sized_quantity: int = 0
    risk_size_multiplier: float = 0.0
    final_size: int = 0


@dataclass
class EntryDecision:
    decision: EntryDecisionType
    signal: Signal
    confidence: float
    position_size: int
    reasoning: List[str] = field(default_factory=list)
    calculations: EntryCalculations = field(default_factory=EntryCalculations)
    rejection_reason: Optional[str] = None
    reference_price: Optional[float] = None
    timestamp: Optional[datetime] = None

    @property
    def should_enter(self) -> bool:
        return self.decision == EntryDecisionType.ENTER

    def to_dict(self) -> Dict[str, Any]:
        return {
            "decision": self.decision.value,
            "signal_id": self.signal.id,
            "symbol": self.signal.symbol,
            "direction": self.signal.direction.value,
            "confidence": self.confidence,
            "position_size": self.position_size,
            "reasoning": list(self.reasoning),
            "calculations": asdict(self.calculations),
            "rejection_reason": self.rejection_reason,
            "reference_price": self.reference_price,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


@dataclass
class ExitCalculations:
    profit_target: bool = False
    stop_loss: bool = False
    gex_flip: bool = False
    time_exit: bool = False
    current_price: float = 0.0
    current_pnl: float = 0.0
    current_pnl_percent: float = 0.0
    hold_minutes: float = 0.0


@dataclass
class ExitDecision:
    decision: ExitDecisionType
    position: "Position"
    exit_reason: Optional[ExitReason] = None
    reasoning: List[str] = field(default_factory=list)
    calculations: ExitCalculations = field(default_factory=ExitCalculations)
    timestamp: Optional[datetime] = None

    @property
    def should_exit(self) -> bool:
        return self.decision == ExitDecisionType.EXIT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "decision": self.decision.value,
            "position_id": self.position.id,
            "exit_reason": self.exit_reason.value if self.exit_reason else None,
            "reasoning": list(self.reasoning),
            "calculations": asdict(self.calculations),
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }
