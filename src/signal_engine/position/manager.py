"""
Position lifecycle and P&L bookkeeping.

PositionManager is the only component that creates or mutates positions. It
guarantees at most one non-closed position per originating signal and keeps
the store as the single source of truth.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Iterable, List, Optional

from signal_engine.config.settings import AppConfig
from signal_engine.core.errors import PositionStateError
from signal_engine.core.models import Signal
from signal_engine.monitoring.degraded_mode import DegradedModeTracker, ServiceName
from signal_engine.position.models import Position, PositionStatus
from signal_engine.position.store import PositionStore
from signal_engine.utils.time_utils import Clock, TimeUtils

logger = logging.getLogger(__name__)


@dataclass
class OpenPositionResult:
    success: bool
    position: Optional[Position] = None
    error: Optional[str] = None


@dataclass
class ClosePositionResult:
    success: bool
    position: Optional[Position] = None
    realized_pnl: Optional[float] = None
    error: Optional[str] = None


class PositionManager:
    """
    Opens, refreshes and closes positions over a PositionStore.

    P&L = (price - entry) x quantity x contract multiplier, for both the
    unrealized and the realized figure.
    """

    def __init__(
        self,
        config: AppConfig,
        store: PositionStore,
        degraded_tracker: Optional[DegradedModeTracker] = None,
        clock: Optional[Clock] = None,
    ):
        self.config = config
        self.store = store
        self.degraded_tracker = degraded_tracker
        self._clock = clock or TimeUtils.now_utc
        self._open_lock = asyncio.Lock()
        self.multiplier = config.position.contract_multiplier

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def open_position(self, signal: Signal, entry_price: float, quantity: int) -> OpenPositionResult:
        """Open a position for ``signal``; refuses a second non-closed one for the same signal."""
        if quantity < 1:
            return OpenPositionResult(success=False, error=f"Invalid quantity: {quantity}")
        if entry_price <= 0:
            return OpenPositionResult(success=False, error=f"Invalid entry price: {entry_price}")

        async with self._open_lock:
            try:
                existing = await self.store.get_by_signal_id(signal.id)
            except Exception as e:
                self._record_store_failure(e)
                return OpenPositionResult(success=False, error=f"Position store unavailable: {e}")

            if existing is not None and existing.status != PositionStatus.CLOSED:
                return OpenPositionResult(
                    success=False,
                    position=existing,
                    error="Position already exists for this signal",
                )

            now = self._clock()
            position = Position(
                id=self._generate_position_id(now),
                signal_id=signal.id,
                symbol=signal.symbol,
                direction=signal.direction,
                timeframe=signal.timeframe,
                quantity=int(quantity),
                entry_price=float(entry_price),
                entry_time=now,
                current_price=float(entry_price),
            )

            try:
                await self.store.insert(position)
            except Exception as e:
                self._record_store_failure(e)
                logger.error(
                    f"Failed to persist position for signal {signal.id}: {e}",
                    extra={"tracking_id": signal.id, "symbol": signal.symbol},
                )
                return OpenPositionResult(success=False, error=f"Failed to persist position: {e}")

        self._record_store_success()
        logger.info(
            f"Opened position {position.id}: {position.symbol} {position.direction.value} "
            f"x{position.quantity} @ {position.entry_price}",
            extra={"tracking_id": signal.id, "symbol": signal.symbol},
        )
        return OpenPositionResult(success=True, position=position)

    async def update_position_price(self, position_id: str, current_price: float) -> Position:
        """Refresh current price and unrealized P&L of an open position."""
        position = await self._require(position_id)
        if not position.is_open:
            raise PositionStateError(f"Position {position_id} is closed")
        position.current_price = current_price
        position.unrealized_pnl = self.calculate_unrealized_pnl(position, current_price)
        await self.store.update(position)
        return position

    async def close_position(self, position_id: str, exit_price: float) -> ClosePositionResult:
        position = await self.store.get(position_id)
        if position is None:
            return ClosePositionResult(success=False, error=f"Position {position_id} not found")
        if not position.is_open:
            return ClosePositionResult(
                success=False,
                position=position,
                realized_pnl=position.realized_pnl,
                error="Position already closed",
            )

        realized = self.calculate_realized_pnl(position, exit_price)
        position.mark_closed(exit_price=exit_price, exit_time=self._clock(), realized_pnl=realized)

        try:
            await self.store.update(position)
        except Exception as e:
            self._record_store_failure(e)
            logger.error(f"Failed to persist close of {position_id}: {e}")
            return ClosePositionResult(success=False, error=f"Failed to persist close: {e}")

        self._record_store_success()
        logger.info(
            f"Closed position {position_id} @ {exit_price} realized_pnl={realized:.2f}",
            extra={"tracking_id": position.signal_id, "symbol": position.symbol},
        )
        return ClosePositionResult(success=True, position=position, realized_pnl=realized)

    # ========================================================================
    # P&L
    # ========================================================================

    def calculate_unrealized_pnl(self, position: Position, current_price: float) -> float:
        if not position.is_open:
            return 0.0
        return (current_price - position.entry_price) * position.quantity * self.multiplier

    def calculate_realized_pnl(self, position: Position, exit_price: float) -> float:
        return (exit_price - position.entry_price) * position.quantity * self.multiplier

    def calculate_pnl_percent(self, position: Position, current_price: float) -> float:
        if position.entry_price == 0:
            return 0.0
        return (current_price - position.entry_price) / position.entry_price * 100.0

    # ========================================================================
    # Queries
    # ========================================================================

    async def get_open_positions(self) -> List[Position]:
        return await self.store.list_open()

    async def get_position(self, position_id: str) -> Optional[Position]:
        return await self.store.get(position_id)

    async def get_position_by_signal_id(self, signal_id: str) -> Optional[Position]:
        return await self.store.get_by_signal_id(signal_id)

    async def get_positions_by_symbol(self, symbol: str) -> List[Position]:
        return [p for p in await self.store.list_open() if p.symbol == symbol]

    async def get_total_exposure(self) -> float:
        """Notional of all open positions: entry x quantity x multiplier."""
        return sum(
            p.entry_price * p.quantity * self.multiplier
            for p in await self.store.list_open()
        )

    async def get_total_unrealized_pnl(self) -> float:
        total = 0.0
        for p in await self.store.list_open():
            price = p.current_price if p.current_price is not None else p.entry_price
            total += self.calculate_unrealized_pnl(p, price)
        return total

    async def would_exceed_max_exposure(self, additional_exposure: float) -> bool:
        current = await self.get_total_exposure()
        return current + additional_exposure > self.config.risk.max_total_exposure

    async def load_positions(self, positions: Iterable[Position]) -> int:
        """Seed the store, e.g. after a restart. Returns how many were loaded."""
        count = 0
        for position in positions:
            await self.store.insert(position)
            count += 1
        logger.info(f"Loaded {count} positions")
        return count

    # ========================================================================
    # Internals
    # ========================================================================

    async def _require(self, position_id: str) -> Position:
        position = await self.store.get(position_id)
        if position is None:
            raise KeyError(f"Position {position_id} not found")
        return position

    @staticmethod
    def _generate_position_id(now) -> str:
        return f"pos_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:8]}"

    def _record_store_failure(self, error: Exception) -> None:
        if self.degraded_tracker:
            self.degraded_tracker.record_failure(ServiceName.POSITION_STORE, str(error))

    def _record_store_success(self) -> None:
        if self.degraded_tracker:
            self.degraded_tracker.record_success(ServiceName.POSITION_STORE)
