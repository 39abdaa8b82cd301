"""
Position lifecycle: models, storage and the manager that opens and closes them.
"""

from signal_engine.position.manager import ClosePositionResult, OpenPositionResult, PositionManager
from signal_engine.position.models import Position, PositionStatus
from signal_engine.position.store import InMemoryPositionStore, PositionStore

__all__ = [
    'Position',
    'PositionStatus',
    'PositionStore',
    'InMemoryPositionStore',
    'PositionManager',
    'OpenPositionResult',
    'ClosePositionResult',
]
