"""
Market-condition filters and confidence adjustments.

apply_market_filters always evaluates all three filters (volatility, market
hours, trend) so the caller sees the full picture; only the volatility
ceiling can fail the signal. The returned size multiplier is applied by the
orchestrator after position sizing, not folded into the sizing chain.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from signal_engine.config.settings import AppConfig
from signal_engine.core.models import ContextData, Direction, Regime, Signal, Trend
from signal_engine.utils.time_utils import TimeUtils

logger = logging.getLogger(__name__)


@dataclass
class MarketFilterResult:
    passed: bool
    filters: Dict[str, bool] = field(default_factory=dict)
    position_size_multiplier: float = 1.0
    rejection_reason: Optional[str] = None


@dataclass
class ConfidenceAdjustments:
    context_adjustment: float
    positioning_adjustment: float

    @property
    def total(self) -> float:
        return self.context_adjustment + self.positioning_adjustment


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass
class RiskAssessment:
    risk_level: RiskLevel
    factors: List[str]
    position_size_multiplier: float


def _clamp(value: float, bound: float) -> float:
    return max(-bound, min(bound, value))


class RiskManager:
    def __init__(self, config: AppConfig):
        self.risk = config.risk
        self.confidence = config.confidence
        self.validation = config.validation

    # ========================================================================
    # Filters
    # ========================================================================

    def apply_market_filters(self, signal: Signal, context: ContextData) -> MarketFilterResult:
        multiplier = 1.0
        if context.vix > self.risk.vix_caution_threshold:
            multiplier *= self.risk.vix_position_size_reduction

        vix_ok = context.vix <= self.risk.max_vix_for_entry
        filters = {
            "vix_check": vix_ok,
            "market_hours_check": TimeUtils.is_within_window(
                signal.timestamp,
                self.validation.market_hours_start,
                self.validation.market_hours_end,
                self.validation.exchange_timezone,
            ),
            "trend_check": not self._is_counter_trend(signal.direction, context.trend),
        }

        if not vix_ok:
            reason = f"VIX too high: {context.vix} > {self.risk.max_vix_for_entry}"
            logger.info(reason, extra={"tracking_id": signal.id, "symbol": signal.symbol})
            return MarketFilterResult(False, filters, multiplier, reason)

        return MarketFilterResult(True, filters, multiplier)

    def should_reject_signal(self, signal: Signal, context: ContextData) -> Optional[str]:
        """Rejection reason from the market filters, or None."""
        return self.apply_market_filters(signal, context).rejection_reason

    # ========================================================================
    # Confidence adjustments
    # ========================================================================

    def calculate_context_adjustment(self, signal: Signal, context: ContextData) -> float:
        """
        Signed adjustment from volatility, trend and bias, clamped to
        +/- context_adjustment_range. With the default weights a trend-aligned
        signal always nets a positive value and a counter-trend one a negative value.
        """
        cfg = self.confidence
        adjustment = 0.0

        if context.vix < cfg.low_vix_threshold:
            adjustment += cfg.vix_adjustment
        elif context.vix > self.risk.vix_caution_threshold:
            adjustment -= cfg.vix_adjustment

        if self._is_aligned(signal.direction, context.trend):
            adjustment += cfg.trend_aligned_bonus
        elif self._is_counter_trend(signal.direction, context.trend):
            adjustment -= cfg.counter_trend_penalty

        if abs(context.bias) > cfg.bias_threshold:
            bias_bullish = context.bias > 0
            agrees = bias_bullish == (signal.direction == Direction.CALL)
            adjustment += cfg.bias_adjustment if agrees else -cfg.bias_adjustment

        return _clamp(adjustment, cfg.context_adjustment_range)

    def calculate_positioning_adjustment(self, context: ContextData) -> float:
        cfg = self.confidence
        adjustment = 0.0
        if context.regime == Regime.LOW_VOL:
            adjustment = cfg.regime_adjustment
        elif context.regime == Regime.HIGH_VOL:
            adjustment = -cfg.regime_adjustment
        return _clamp(adjustment, cfg.positioning_adjustment_range)

    def calculate_all_adjustments(self, signal: Signal, context: ContextData) -> ConfidenceAdjustments:
        return ConfidenceAdjustments(
            context_adjustment=self.calculate_context_adjustment(signal, context),
            positioning_adjustment=self.calculate_positioning_adjustment(context),
        )

    # ========================================================================
    # Assessment
    # ========================================================================

    def assess_risk(self, signal: Signal, context: ContextData) -> RiskAssessment:
        factors = []
        score = 0

        if context.vix > self.risk.vix_caution_threshold:
            score += 2
            factors.append(f"High VIX: {context.vix}")
        elif context.vix < self.confidence.low_vix_threshold:
            score -= 1
            factors.append(f"Low VIX: {context.vix}")

        if self._is_counter_trend(signal.direction, context.trend):
            score += 2
            factors.append("Counter-trend signal")

        if context.regime == Regime.HIGH_VOL:
            score += 1
            factors.append("High volatility regime")

        if score >= 3:
            level = RiskLevel.HIGH
        elif score >= 1:
            level = RiskLevel.MEDIUM
        else:
            level = RiskLevel.LOW

        multiplier = self.apply_market_filters(signal, context).position_size_multiplier
        return RiskAssessment(level, factors, multiplier)

    @staticmethod
    def _is_aligned(direction: Direction, trend: Trend) -> bool:
        return (direction == Direction.CALL and trend == Trend.BULLISH) or (
            direction == Direction.PUT and trend == Trend.BEARISH
        )

    @staticmethod
    def _is_counter_trend(direction: Direction, trend: Trend) -> bool:
        return (direction == Direction.CALL and trend == Trend.BEARISH) or (
            direction == Direction.PUT and trend == Trend.BULLISH
        )
