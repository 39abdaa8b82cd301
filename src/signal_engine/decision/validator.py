"""
Ordered, short-circuiting signal validation.

Runs the checks in sequence and stops at the first failure. The failing
check's flag is False, every later flag keeps its default False, and the
result carries that check's rejection reason.
"""

import logging
from typing import List, Optional

from signal_engine.config.settings import AppConfig
from signal_engine.core.models import Signal, ValidationChecks, ValidationResult
from signal_engine.decision.filters import (
    ConfluenceCheck,
    CooldownCheck,
    MarketHoursCheck,
    MTFAlignmentCheck,
    SignalAgeCheck,
    ValidationCheck,
)
from signal_engine.utils.time_utils import Clock

logger = logging.getLogger(__name__)


class SignalValidator:
    def __init__(self, config: AppConfig, clock: Optional[Clock] = None):
        cfg = config.validation
        self.cooldown = CooldownCheck(cfg.cooldown_seconds, clock=clock)
        self.checks: List[ValidationCheck] = [
            self.cooldown,
            MarketHoursCheck(cfg.market_hours_start, cfg.market_hours_end, cfg.exchange_timezone),
            MTFAlignmentCheck(),
            ConfluenceCheck(cfg.min_confluence_score),
            SignalAgeCheck(cfg.max_signal_age_minutes, clock=clock),
        ]

    async def validate(self, signal: Signal) -> ValidationResult:
        result = ValidationResult(valid=False, checks=ValidationChecks())

        for check in self.checks:
            outcome = check.evaluate(signal)
            setattr(result.checks, check.name, outcome.passed)
            result.details[check.name] = outcome.details
            check.log_outcome(signal, outcome)

            if not outcome.passed:
                result.rejection_reason = check.rejection_reason
                logger.info(
                    f"Signal {signal.symbol} {signal.direction.value} rejected: {check.rejection_reason}",
                    extra={"tracking_id": signal.id, "stage": "VALIDATION"},
                )
                return result

        result.valid = True
        return result

    def clear_cooldowns(self) -> None:
        self.cooldown.clear()
