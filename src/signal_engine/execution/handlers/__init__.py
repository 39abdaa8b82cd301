"""
Pipeline stage handlers (chain of responsibility).

Chain: Normalization -> Validation -> Deduplication -> Decision -> Execution
"""

from signal_engine.execution.handlers.base import (
    PipelineContext,
    StageHandler,
    StageResult,
    StageResultStatus,
)
from signal_engine.execution.handlers.normalization import NormalizationHandler
from signal_engine.execution.handlers.validation import ValidationHandler
from signal_engine.execution.handlers.deduplication import DeduplicationHandler
from signal_engine.execution.handlers.decision import DecisionHandler
from signal_engine.execution.handlers.execution import PositionOpenHandler

__all__ = [
    'PipelineContext',
    'StageHandler',
    'StageResult',
    'StageResultStatus',
    'NormalizationHandler',
    'ValidationHandler',
    'DeduplicationHandler',
    'DecisionHandler',
    'PositionOpenHandler',
]
