"""
Signal pipeline orchestrating the stage chain.

Coordinates the stage handlers in sequence:
Normalization -> Validation -> Deduplication -> Decision -> Execution

Every payload gets a tracking id at reception; it becomes the Signal id and
is attached to every log record for that signal. A failure at any stage
stops the chain and is recorded with the stage it happened in. One signal's
failure never affects another signal.
"""

import asyncio
import json
import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from signal_engine.core.models import (
    EntryDecision,
    ExitDecision,
    PipelineStage,
    Signal,
    ValidationResult,
)
from signal_engine.decision.orchestrator import DecisionOrchestrator
from signal_engine.execution.handlers import (
    DecisionHandler,
    DeduplicationHandler,
    NormalizationHandler,
    PipelineContext,
    PositionOpenHandler,
    StageResult,
    StageResultStatus,
    ValidationHandler,
)
from signal_engine.monitoring.audit_logger import AuditLogger
from signal_engine.monitoring.degraded_mode import DegradedModeTracker
from signal_engine.position.manager import PositionManager
from signal_engine.position.models import Position
from signal_engine.utils.logger import get_performance_logger
from signal_engine.utils.time_utils import Clock, TimeUtils

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    success: bool
    tracking_id: str
    stage: PipelineStage
    failure_reason: Optional[str] = None
    signal: Optional[Signal] = None
    validation: Optional[ValidationResult] = None
    decision: Optional[EntryDecision] = None
    position: Optional[Position] = None
    timestamp: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "tracking_id": self.tracking_id,
            "stage": self.stage.value,
            "failure_reason": self.failure_reason,
            "signal": self.signal.to_dict() if self.signal else None,
            "decision": self.decision.to_dict() if self.decision else None,
            "position": self.position.to_dict() if self.position else None,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


@dataclass
class PipelineFailure:
    tracking_id: str
    stage: PipelineStage
    reason: str
    timestamp: datetime
    signal: Optional[Signal] = None
    error_type: Optional[str] = None


@dataclass
class ExitResult:
    decision: ExitDecision
    closed: bool = False
    realized_pnl: Optional[float] = None
    error: Optional[str] = None


@dataclass
class PipelineStats:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    by_stage: Dict[str, int] = field(default_factory=dict)


class SignalPipeline:
    """
    Signal pipeline implementing chain of responsibility.

    The handlers are built by the caller (see bootstrap.build_pipeline) and
    linked here in stage order.
    """

    def __init__(
        self,
        normalization: NormalizationHandler,
        validation: ValidationHandler,
        deduplication: DeduplicationHandler,
        decision: DecisionHandler,
        execution: PositionOpenHandler,
        orchestrator: DecisionOrchestrator,
        position_manager: PositionManager,
        audit_logger: Optional[AuditLogger] = None,
        degraded_tracker: Optional[DegradedModeTracker] = None,
        clock: Optional[Clock] = None,
        max_failures: int = 1000,
        failure_retention_seconds: float = 3600,
    ):
        self.normalization = normalization
        self.validation = validation
        self.deduplication = deduplication
        self.decision = decision
        self.execution = execution
        self.orchestrator = orchestrator
        self.position_manager = position_manager
        self.audit_logger = audit_logger
        self.degraded_tracker = degraded_tracker
        self._clock = clock or TimeUtils.now_utc
        self.max_failures = max_failures
        self.failure_retention_seconds = failure_retention_seconds
        self._failures: "OrderedDict[str, PipelineFailure]" = OrderedDict()
        self._stats = PipelineStats()
        self._perf = get_performance_logger(__name__)

        self._build_chain()

    def _build_chain(self):
        self.normalization.set_next(self.validation)
        self.validation.set_next(self.deduplication)
        self.deduplication.set_next(self.decision)
        self.decision.set_next(self.execution)

        logger.info(
            "Signal pipeline built: "
            + " -> ".join(
                h.__class__.__name__
                for h in (self.normalization, self.validation, self.deduplication, self.decision, self.execution)
            )
        )

    # ========================================================================
    # Entry path
    # ========================================================================

    async def process_signal(self, raw: Any) -> PipelineResult:
        """Run one raw payload through every stage. Never raises for a bad signal."""
        tracking_id = str(uuid.uuid4())
        context = PipelineContext(raw=raw, tracking_id=tracking_id, received_at=self._clock())
        logger.debug("Signal received", extra={"tracking_id": tracking_id, "stage": PipelineStage.RECEPTION.value})

        if isinstance(raw, (str, bytes, bytearray)):
            try:
                context.raw = json.loads(raw)
            except ValueError as e:
                return self._finish(StageResult(
                    StageResultStatus.FAILURE, PipelineStage.RECEPTION, f"Invalid JSON payload: {e}", context, e
                ))
        if context.raw is None:
            return self._finish(StageResult(
                StageResultStatus.FAILURE, PipelineStage.RECEPTION, "Empty payload", context
            ))

        with self._perf.timer("process_signal", tracking_id=tracking_id):
            result = await self.normalization.handle(context)

        return self._finish(result)

    async def process_batch(self, raws: Iterable[Any]) -> List[PipelineResult]:
        """Process payloads concurrently; results are in input order."""
        return list(await asyncio.gather(*(self.process_signal(raw) for raw in raws)))

    def _finish(self, result: StageResult) -> PipelineResult:
        context = result.context
        now = self._clock()
        self._stats.processed += 1

        if result.is_success:
            self._stats.succeeded += 1
            logger.info(
                f"Pipeline SUCCESS: {context.signal.symbol} {context.signal.direction.value} "
                f"position={context.position.id}",
                extra={**context.log_extra, "stage": result.stage.value},
            )
            return PipelineResult(
                success=True,
                tracking_id=context.tracking_id,
                stage=result.stage,
                signal=context.signal,
                validation=context.validation,
                decision=context.decision,
                position=context.position,
                timestamp=now,
            )

        self._stats.failed += 1
        self._stats.by_stage[result.stage.value] = self._stats.by_stage.get(result.stage.value, 0) + 1
        self._record_failure(PipelineFailure(
            tracking_id=context.tracking_id,
            stage=result.stage,
            reason=result.message,
            timestamp=now,
            signal=context.signal,
            error_type=type(result.error).__name__ if result.error else None,
        ))
        logger.info(
            f"Pipeline stopped at {result.stage.value}: {result.message}",
            extra={**context.log_extra, "stage": result.stage.value},
        )
        logger.debug(f"Handler log: {context.handler_log}", extra=context.log_extra)
        return PipelineResult(
            success=False,
            tracking_id=context.tracking_id,
            stage=result.stage,
            failure_reason=result.message,
            signal=context.signal,
            validation=context.validation,
            decision=context.decision,
            position=context.position,
            timestamp=now,
        )

    # ========================================================================
    # Exit path
    # ========================================================================

    async def process_exits(self) -> List[ExitResult]:
        """Evaluate every open position and close the ones that should exit."""
        results = []
        for position in await self.position_manager.get_open_positions():
            try:
                results.append(await self._process_exit(position))
            except Exception as e:
                logger.error(
                    f"Exit evaluation failed for {position.id}: {e}",
                    extra={"tracking_id": position.signal_id, "symbol": position.symbol},
                    exc_info=True,
                )
        return results

    async def _process_exit(self, position: Position) -> ExitResult:
        decision = await self.orchestrator.evaluate_exit(position)
        price = decision.calculations.current_price

        if not decision.should_exit:
            await self.position_manager.update_position_price(position.id, price)
            return ExitResult(decision=decision)

        closed = await self.position_manager.close_position(position.id, price)
        if not closed.success:
            return ExitResult(decision=decision, error=closed.error)
        if self.audit_logger:
            await self.audit_logger.log_trade_closed(closed.position)
        return ExitResult(decision=decision, closed=True, realized_pnl=closed.realized_pnl)

    # ========================================================================
    # Failure records & status
    # ========================================================================

    def _record_failure(self, failure: PipelineFailure) -> None:
        """Keep failures newer than the retention period, at most max_failures of them."""
        self._failures[failure.tracking_id] = failure
        while self._failures:
            oldest = next(iter(self._failures.values()))
            expired = TimeUtils.seconds_between(oldest.timestamp, failure.timestamp) > self.failure_retention_seconds
            if not expired and len(self._failures) <= self.max_failures:
                break
            self._failures.popitem(last=False)

    def get_failure(self, tracking_id: str) -> Optional[PipelineFailure]:
        return self._failures.get(tracking_id)

    def get_all_failures(self) -> List[PipelineFailure]:
        return list(self._failures.values())

    def clear_old_failures(self, max_age_seconds: float = 3600) -> int:
        now = self._clock()
        stale = [
            tid for tid, f in self._failures.items()
            if TimeUtils.seconds_between(f.timestamp, now) > max_age_seconds
        ]
        for tid in stale:
            del self._failures[tid]
        return len(stale)

    def get_pipeline_status(self) -> Dict[str, Any]:
        failures_by_stage = {stage.value: 0 for stage in PipelineStage}
        for failure in self._failures.values():
            failures_by_stage[failure.stage.value] += 1

        status = {
            "processed": self._stats.processed,
            "succeeded": self._stats.succeeded,
            "failed": self._stats.failed,
            "recorded_failures": len(self._failures),
            "failures_by_stage": failures_by_stage,
            "failures_by_stage_total": dict(self._stats.by_stage),
        }
        if self.degraded_tracker:
            degraded = self.degraded_tracker.get_status()
            status["degraded"] = degraded.degraded
            status["degraded_message"] = degraded.message
        return status
