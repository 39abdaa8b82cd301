"""
Position sizing chain.

size = base x Kelly x regime x confluence, in that order, with every
intermediate kept fractional. The product is capped at the configured
maximum and floored to whole contracts; anything below the minimum becomes 0
so the caller rejects the entry instead of bumping it up.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from signal_engine.config.settings import AppConfig
from signal_engine.core.models import ContextData, Regime, Signal
from signal_engine.decision.confluence import ConfluenceCategory

logger = logging.getLogger(__name__)

DEFAULT_CONFLUENCE_SCORE = 0.5


class SizingCategory(str, Enum):
    NONE = "NONE"
    SMALL = "SMALL"
    MEDIUM = "MEDIUM"
    LARGE = "LARGE"


@dataclass
class SizingCalculations:
    base_size: float
    kelly_multiplier: float
    regime_multiplier: float
    confluence_multiplier: float
    confluence_score: float
    after_kelly: float
    after_regime: float
    after_confluence: float
    capped: float
    final_size: int


@dataclass
class SizingResult:
    size: int
    calculations: SizingCalculations


class PositionSizingService:
    def __init__(self, config: AppConfig):
        self.sizing = config.sizing
        self.confluence = config.confluence
        self.max_size = min(config.sizing.max_size, config.risk.max_position_size)

    def calculate_size(
        self,
        signal: Signal,
        confidence: float,
        context: ContextData,
        confluence_score: Optional[float] = None,
    ) -> SizingResult:
        score = DEFAULT_CONFLUENCE_SCORE if confluence_score is None else confluence_score

        base = self.sizing.base_size
        kelly = self.kelly_multiplier(confidence)
        regime = self.regime_multiplier(context.regime)
        confluence = self.confluence_multiplier(score)

        after_kelly = base * kelly
        after_regime = after_kelly * regime
        after_confluence = after_regime * confluence

        capped = min(after_confluence, float(self.max_size))
        size = int(math.floor(capped))
        if size < self.sizing.min_size:
            size = 0

        calculations = SizingCalculations(
            base_size=base,
            kelly_multiplier=kelly,
            regime_multiplier=regime,
            confluence_multiplier=confluence,
            confluence_score=score,
            after_kelly=after_kelly,
            after_regime=after_regime,
            after_confluence=after_confluence,
            capped=capped,
            final_size=size,
        )
        logger.debug(
            f"Sizing {signal.symbol}: {base} x {kelly:.3f} x {regime:.2f} x {confluence:.2f} "
            f"= {after_confluence:.3f} -> {size}",
            extra={"tracking_id": signal.id},
        )
        return SizingResult(size=size, calculations=calculations)

    def kelly_multiplier(self, confidence: float) -> float:
        return 1.0 + (confidence / 100.0) * self.sizing.kelly_fraction

    def regime_multiplier(self, regime: Regime) -> float:
        if regime == Regime.LOW_VOL:
            return self.sizing.low_vol_multiplier
        if regime == Regime.HIGH_VOL:
            return self.sizing.high_vol_multiplier
        return self.sizing.normal_multiplier

    def confluence_category(self, score: float) -> ConfluenceCategory:
        if score >= self.confluence.high_threshold:
            return ConfluenceCategory.HIGH
        if score >= self.confluence.medium_threshold:
            return ConfluenceCategory.MEDIUM
        return ConfluenceCategory.LOW

    def confluence_multiplier(self, score: float) -> float:
        category = self.confluence_category(score)
        if category == ConfluenceCategory.HIGH:
            return self.sizing.high_confluence_multiplier
        if category == ConfluenceCategory.MEDIUM:
            return self.sizing.medium_confluence_multiplier
        return self.sizing.low_confluence_multiplier

    @staticmethod
    def get_sizing_category(size: int) -> SizingCategory:
        if size <= 0:
            return SizingCategory.NONE
        if size <= 2:
            return SizingCategory.SMALL
        if size <= 5:
            return SizingCategory.MEDIUM
        return SizingCategory.LARGE

    @staticmethod
    def validate_sizing_params(confidence: float, confluence_score: float) -> Tuple[bool, List[str]]:
        errors = []
        if not 0 <= confidence <= 100:
            errors.append("Confidence must be between 0 and 100")
        if not 0 <= confluence_score <= 1:
            errors.append("Confluence score must be between 0 and 1")
        return not errors, errors
