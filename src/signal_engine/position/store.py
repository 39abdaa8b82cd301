"""
Position persistence interface.

PositionManager talks to storage only through PositionStore. The in-memory
implementation backs tests and the replay CLI; a database-backed store only
has to implement the same five coroutines.
"""

import asyncio
import copy
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from signal_engine.position.models import Position, PositionStatus


class PositionStore(ABC):
    """Async CRUD over positions."""

    @abstractmethod
    async def insert(self, position: Position) -> None:
        """Persist a new position. Raises on conflict or storage failure."""

    @abstractmethod
    async def update(self, position: Position) -> None:
        """Persist changes to an existing position."""

    @abstractmethod
    async def get(self, position_id: str) -> Optional[Position]:
        pass

    @abstractmethod
    async def get_by_signal_id(self, signal_id: str) -> Optional[Position]:
        """Most recent position opened from the given signal, if any."""

    @abstractmethod
    async def list_open(self) -> List[Position]:
        pass


class InMemoryPositionStore(PositionStore):
    """Dictionary-backed store. Returns copies so callers cannot bypass update()."""

    def __init__(self):
        self._positions: Dict[str, Position] = {}
        self._lock = asyncio.Lock()

    async def insert(self, position: Position) -> None:
        async with self._lock:
            if position.id in self._positions:
                raise KeyError(f"Position {position.id} already exists")
            self._positions[position.id] = copy.deepcopy(position)

    async def update(self, position: Position) -> None:
        async with self._lock:
            if position.id not in self._positions:
                raise KeyError(f"Position {position.id} not found")
            self._positions[position.id] = copy.deepcopy(position)

    async def get(self, position_id: str) -> Optional[Position]:
        position = self._positions.get(position_id)
        return copy.deepcopy(position) if position else None

    async def get_by_signal_id(self, signal_id: str) -> Optional[Position]:
        matches = [p for p in self._positions.values() if p.signal_id == signal_id]
        if not matches:
            return None
        return copy.deepcopy(max(matches, key=lambda p: p.entry_time))

    async def list_open(self) -> List[Position]:
        return [
            copy.deepcopy(p) for p in self._positions.values()
            if p.status == PositionStatus.OPEN
        ]

    def __len__(self) -> int:
        return len(self._positions)
