"""Execution stage: resolve the entry price and open the position."""

from typing import Optional

from signal_engine.core.models import PipelineStage
from signal_engine.execution.handlers.base import PipelineContext, StageHandler, StageResult
from signal_engine.market_data.providers import QuoteProviderChain
from signal_engine.monitoring.audit_logger import AuditLogger
from signal_engine.position.manager import PositionManager


class PositionOpenHandler(StageHandler):
    stage = PipelineStage.EXECUTION

    def __init__(
        self,
        position_manager: PositionManager,
        quote_chain: Optional[QuoteProviderChain] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__()
        self.position_manager = position_manager
        self.quote_chain = quote_chain
        self.audit_logger = audit_logger

    async def _process(self, context: PipelineContext) -> StageResult:
        price = await self._resolve_entry_price(context)
        if price is None:
            return self.failure(context, "No entry price available")
        context.entry_price = price

        result = await self.position_manager.open_position(
            context.signal, price, context.decision.position_size
        )
        if not result.success:
            return self.failure(context, result.error or "Failed to open position")

        context.position = result.position
        if self.audit_logger:
            await self.audit_logger.log_trade_opened(result.position)
        return self.success(context, f"Opened position {result.position.id}")

    async def _resolve_entry_price(self, context: PipelineContext) -> Optional[float]:
        if context.decision.reference_price:
            return context.decision.reference_price
        if context.signal.metadata.price:
            return context.signal.metadata.price
        if self.quote_chain is not None:
            return await self.quote_chain.try_get_quote(context.signal.symbol)
        return None
