"""
Decision layer - validation, confidence, sizing and exits.

Components:
- SignalValidator: ordered pre-decision checks (cooldown, hours, MTF, confluence, age)
- RiskManager: VIX filter and confidence adjustments from context and positioning
- ConfluenceCalculator: reliability-weighted agreement across sources
- PositionSizingService: base -> Kelly -> regime -> confluence sizing chain
- DecisionOrchestrator: ENTER / REJECT and EXIT / HOLD decisions
"""

from signal_engine.decision.confluence import (
    ConfluenceCalculator,
    ConfluenceCategory,
    ConfluenceResult,
    ContributingSources,
)
from signal_engine.decision.orchestrator import DecisionOrchestrator
from signal_engine.decision.risk_manager import MarketFilterResult, RiskManager
from signal_engine.decision.sizing import PositionSizingService, SizingResult
from signal_engine.decision.validator import SignalValidator

__all__ = [
    'ConfluenceCalculator',
    'ConfluenceCategory',
    'ConfluenceResult',
    'ContributingSources',
    'DecisionOrchestrator',
    'MarketFilterResult',
    'RiskManager',
    'PositionSizingService',
    'SizingResult',
    'SignalValidator',
]
