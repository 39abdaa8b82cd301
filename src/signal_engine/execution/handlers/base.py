"""
Base stage handler for the chain of responsibility pattern.

Each pipeline stage is a handler. A handler either succeeds and passes the
context to the next handler, or stops the chain with a failure. Expected
rejections are returned as FAILURE results with a reason; an unexpected
exception is caught here and reported as a FAILURE tagged with the stage
that raised it.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from signal_engine.core.models import (
    EntryDecision,
    PipelineStage,
    Signal,
    ValidationResult,
)
from signal_engine.position.models import Position
from signal_engine.utils.time_utils import TimeUtils

logger = logging.getLogger(__name__)


class StageResultStatus(str, Enum):
    """Stage result status."""
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass
class PipelineContext:
    """
    Context object passed through the stage chain.

    Starts with the raw payload and tracking id; each handler fills in its
    part.
    """
    raw: Any
    tracking_id: str
    received_at: datetime = field(default_factory=TimeUtils.now_utc)

    # Set by handlers
    signal: Optional[Signal] = None
    validation: Optional[ValidationResult] = None
    decision: Optional[EntryDecision] = None
    position: Optional[Position] = None
    entry_price: Optional[float] = None

    # Handler execution log
    handler_log: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def log_extra(self) -> Dict[str, Any]:
        extra = {"tracking_id": self.tracking_id}
        if self.signal is not None:
            extra["symbol"] = self.signal.symbol
        return extra

    def log_handler(self, handler_name: str, stage: PipelineStage, status: str, message: str, **kwargs):
        """Log handler execution."""
        self.handler_log.append({
            "handler": handler_name,
            "stage": stage.value,
            "status": status,
            "message": message,
            "timestamp": TimeUtils.now_utc().isoformat(),
            **kwargs
        })


@dataclass
class StageResult:
    """Result from a stage handler."""
    status: StageResultStatus
    stage: PipelineStage
    message: str
    context: PipelineContext
    error: Optional[Exception] = None

    @property
    def is_success(self) -> bool:
        return self.status == StageResultStatus.SUCCESS

    @property
    def is_failure(self) -> bool:
        return self.status == StageResultStatus.FAILURE


class StageHandler(ABC):
    """Abstract base class for pipeline stage handlers."""

    stage: PipelineStage

    def __init__(self, next_handler: Optional['StageHandler'] = None):
        self._next_handler = next_handler
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def set_next(self, handler: 'StageHandler') -> 'StageHandler':
        """
        Set the next handler in the chain.

        Returns:
            The handler that was set (for chaining)
        """
        self._next_handler = handler
        return handler

    async def handle(self, context: PipelineContext) -> StageResult:
        """
        Run this stage, then the rest of the chain on success.

        Subclasses override _process() instead.
        """
        try:
            result = await self._process(context)

            context.log_handler(
                handler_name=self.__class__.__name__,
                stage=self.stage,
                status=result.status.value,
                message=result.message,
            )

            if result.is_success and self._next_handler:
                return await self._next_handler.handle(context)

            return result

        except Exception as e:
            self.logger.error(
                f"{self.stage.value} stage raised {type(e).__name__}: {e}",
                extra={**context.log_extra, "stage": self.stage.value},
                exc_info=True,
            )
            context.log_handler(
                handler_name=self.__class__.__name__,
                stage=self.stage,
                status="error",
                message=f"Handler raised exception: {e}",
                error_type=type(e).__name__,
            )
            return StageResult(
                status=StageResultStatus.FAILURE,
                stage=self.stage,
                message=f"{self.stage.value} error: {e}",
                context=context,
                error=e,
            )

    @abstractmethod
    async def _process(self, context: PipelineContext) -> StageResult:
        pass

    def success(self, context: PipelineContext, message: str) -> StageResult:
        return StageResult(StageResultStatus.SUCCESS, self.stage, message, context)

    def failure(self, context: PipelineContext, message: str, error: Optional[Exception] = None) -> StageResult:
        return StageResult(StageResultStatus.FAILURE, self.stage, message, context, error)

    def __repr__(self) -> str:
        next_name = self._next_handler.__class__.__name__ if self._next_handler else "None"
        return f"{self.__class__.__name__}(next={next_name})"
