"""
Base class for hard validation checks.

Unlike confidence adjustments, a validation check is a gate: the first check
that fails rejects the signal with the check's fixed rejection reason, and no
later check runs.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict

from signal_engine.core.models import Signal

logger = logging.getLogger(__name__)


@dataclass
class CheckOutcome:
    passed: bool
    details: Dict[str, Any] = field(default_factory=dict)


class ValidationCheck(ABC):
    """
    One gate in the validation sequence.

    Subclasses set:
    - name: key in ValidationChecks / ValidationResult.details
    - rejection_reason: message reported when the check fails
    """

    name: str = ""
    rejection_reason: str = ""

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    def evaluate(self, signal: Signal) -> CheckOutcome:
        pass

    def log_outcome(self, signal: Signal, outcome: CheckOutcome) -> None:
        if not outcome.passed:
            self.logger.debug(
                f"{self.name} failed for {signal.symbol} {signal.direction.value}: {outcome.details}",
                extra={"tracking_id": signal.id},
            )
