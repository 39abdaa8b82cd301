"""Deduplication stage: suppress repeats of an already-seen signal."""

from signal_engine.cache.deduplication_cache import DeduplicationCache
from signal_engine.core.models import PipelineStage
from signal_engine.execution.handlers.base import PipelineContext, StageHandler, StageResult


class DeduplicationHandler(StageHandler):
    stage = PipelineStage.DEDUPLICATION

    def __init__(self, cache: DeduplicationCache):
        super().__init__()
        self.cache = cache

    async def _process(self, context: PipelineContext) -> StageResult:
        if self.cache.is_duplicate(context.signal):
            self.logger.info("Duplicate signal suppressed", extra=context.log_extra)
            return self.failure(context, "Duplicate signal")
        return self.success(context, "Signal is unique")
