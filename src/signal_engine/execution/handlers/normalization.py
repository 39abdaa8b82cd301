"""Normalization stage: raw payload -> Signal."""

from typing import Optional

from signal_engine.core.errors import SignalNormalizationError
from signal_engine.core.models import PipelineStage
from signal_engine.execution.handlers.base import PipelineContext, StageHandler, StageResult
from signal_engine.execution.normalizer import SignalNormalizer
from signal_engine.monitoring.audit_logger import AuditLogger


class NormalizationHandler(StageHandler):
    stage = PipelineStage.NORMALIZATION

    def __init__(self, normalizer: SignalNormalizer, audit_logger: Optional[AuditLogger] = None):
        super().__init__()
        self.normalizer = normalizer
        self.audit_logger = audit_logger

    async def _process(self, context: PipelineContext) -> StageResult:
        try:
            context.signal = self.normalizer.normalize(context.raw, context.tracking_id)
        except SignalNormalizationError as e:
            self.logger.warning(f"Normalization failed: {e}", extra=context.log_extra)
            return self.failure(context, str(e), e)

        if self.audit_logger:
            await self.audit_logger.log_signal_received(context.signal)
        return self.success(context, "Signal normalized")
