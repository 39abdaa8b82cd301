"""Decision stage: ENTER or REJECT."""

from typing import Optional

from signal_engine.cache.recent_signals import RecentSignalWindow
from signal_engine.core.models import PipelineStage
from signal_engine.decision.orchestrator import DecisionOrchestrator
from signal_engine.execution.handlers.base import PipelineContext, StageHandler, StageResult


class DecisionHandler(StageHandler):
    stage = PipelineStage.DECISION

    def __init__(self, orchestrator: DecisionOrchestrator, recent_signals: Optional[RecentSignalWindow] = None):
        super().__init__()
        self.orchestrator = orchestrator
        self.recent_signals = recent_signals

    async def _process(self, context: PipelineContext) -> StageResult:
        signal = context.signal
        recent = None
        if self.recent_signals is not None:
            recent = self.recent_signals.snapshot(signal.symbol)
            self.recent_signals.add(signal)

        context.decision = await self.orchestrator.evaluate_entry(signal, recent)
        if not context.decision.should_enter:
            return self.failure(context, context.decision.rejection_reason)
        return self.success(
            context,
            f"ENTER {context.decision.position_size} @ confidence {context.decision.confidence:.1f}",
        )
