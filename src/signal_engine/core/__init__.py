"""Domain types and the engine's exception hierarchy."""

from signal_engine.core.errors import (
    ConfigValidationError,
    GEXUnavailableError,
    MarketDataError,
    PositionStateError,
    QuoteUnavailableError,
    SignalEngineError,
    SignalNormalizationError,
)
from signal_engine.core.models import (
    ContextData,
    Direction,
    EntryDecision,
    EntryDecisionType,
    ExitDecision,
    ExitDecisionType,
    ExitReason,
    GEXSignal,
    PipelineStage,
    Regime,
    Signal,
    SignalMetadata,
    SignalSource,
    Trend,
    ValidationChecks,
    ValidationResult,
)

__all__ = [
    # Errors
    'SignalEngineError',
    'ConfigValidationError',
    'MarketDataError',
    'QuoteUnavailableError',
    'GEXUnavailableError',
    'SignalNormalizationError',
    'PositionStateError',
    # Models
    'SignalSource',
    'Direction',
    'Trend',
    'Regime',
    'PipelineStage',
    'SignalMetadata',
    'Signal',
    'ContextData',
    'GEXSignal',
    'ValidationChecks',
    'ValidationResult',
    'EntryDecisionType',
    'EntryDecision',
    'ExitDecisionType',
    'ExitReason',
    'ExitDecision',
]
