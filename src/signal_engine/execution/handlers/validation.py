"""Validation stage: ordered hard gates."""

from signal_engine.core.models import PipelineStage
from signal_engine.decision.validator import SignalValidator
from signal_engine.execution.handlers.base import PipelineContext, StageHandler, StageResult


class ValidationHandler(StageHandler):
    stage = PipelineStage.VALIDATION

    def __init__(self, validator: SignalValidator):
        super().__init__()
        self.validator = validator

    async def _process(self, context: PipelineContext) -> StageResult:
        context.validation = await self.validator.validate(context.signal)
        if not context.validation.valid:
            return self.failure(context, context.validation.rejection_reason)
        return self.success(context, "All validation checks passed")
