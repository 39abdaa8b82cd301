"""
Validation checks, evaluated in a fixed order:
cooldown -> market hours -> MTF alignment -> confluence -> signal age.
"""

from signal_engine.decision.filters.base import CheckOutcome, ValidationCheck
from signal_engine.decision.filters.cooldown import CooldownCheck
from signal_engine.decision.filters.market_hours import MarketHoursCheck
from signal_engine.decision.filters.metadata_checks import ConfluenceCheck, MTFAlignmentCheck
from signal_engine.decision.filters.time_filter import SignalAgeCheck

__all__ = [
    'CheckOutcome',
    'ValidationCheck',
    'CooldownCheck',
    'MarketHoursCheck',
    'MTFAlignmentCheck',
    'ConfluenceCheck',
    'SignalAgeCheck',
]
