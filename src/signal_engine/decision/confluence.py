"""
Confluence Score Calculator

Measures how strongly recent signals from different sources agree with a
target signal. Only signals for the same symbol and the same timeframe are
comparable; each source contributes with its reliability weight:

- TRADINGVIEW: 1.0
- GEX: 0.9
- MTF: 0.85
- MANUAL: 0.7
- anything else: 0.5

score = sum(weight of agreeing signals) / sum(weight of all comparable signals)
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List

from signal_engine.config.settings import ConfluenceConfig
from signal_engine.core.models import Signal, SignalSource

logger = logging.getLogger(__name__)


class ConfluenceCategory(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


@dataclass
class ConfluenceResult:
    """
    Result from confluence calculation.

    Attributes:
        score: Weighted agreement in [0, 1]
        agreeing: Source of each comparable signal pointing the same way as the target
        disagreeing: Source of each comparable signal pointing the other way
        total: Number of comparable signals
        category: HIGH / MEDIUM / LOW bucket of the score
    """
    score: float
    agreeing: List[SignalSource] = field(default_factory=list)
    disagreeing: List[SignalSource] = field(default_factory=list)
    total: int = 0
    category: ConfluenceCategory = ConfluenceCategory.LOW

    @property
    def percentage(self) -> float:
        return self.score * 100

    def __repr__(self) -> str:
        return (
            f"ConfluenceResult(score={self.score:.2f}, {len(self.agreeing)}/{self.total} agree, "
            f"category={self.category.value})"
        )


@dataclass
class ContributingSources:
    agreeing: List[SignalSource]
    disagreeing: List[SignalSource]
    total: int


class ConfluenceCalculator:
    """
    Weighted cross-source agreement. Pure calculation apart from the
    reliability table, which can be tuned at runtime.
    """

    def __init__(self, config: ConfluenceConfig, name: str = "ConfluenceCalculator"):
        self.name = name
        self.logger = logging.getLogger(f"{__name__}.{self.name}")
        self.default_reliability = config.default_reliability
        self.high_threshold = config.high_threshold
        self.medium_threshold = config.medium_threshold
        self._reliability: Dict[str, float] = dict(config.source_reliability)

    def calculate(self, target: Signal, signals: Iterable[Signal]) -> ConfluenceResult:
        relevant = self._comparable(target, signals)
        if not relevant:
            return ConfluenceResult(score=0.0)

        total_weight = 0.0
        agreeing_weight = 0.0
        for signal in relevant:
            weight = self.get_source_weight(signal.source)
            total_weight += weight
            if signal.direction == target.direction:
                agreeing_weight += weight

        sources = self.get_contributing_sources(target, relevant)
        score = agreeing_weight / total_weight if total_weight > 0 else 0.0
        result = ConfluenceResult(
            score=score,
            agreeing=sources.agreeing,
            disagreeing=sources.disagreeing,
            total=sources.total,
            category=self.get_category(score),
        )
        self.logger.debug(f"{target.symbol} {target.timeframe}: {result}")
        return result

    def calculate_simple(self, target: Signal, signals: Iterable[Signal]) -> float:
        """Unweighted share of comparable signals agreeing with the target."""
        relevant = self._comparable(target, signals)
        if not relevant:
            return 0.0
        agreeing = sum(1 for s in relevant if s.direction == target.direction)
        return agreeing / len(relevant)

    def get_contributing_sources(self, target: Signal, signals: Iterable[Signal]) -> ContributingSources:
        """Source of every comparable signal, split by agreement; one entry per signal."""
        relevant = self._comparable(target, signals)
        agreeing = [s.source for s in relevant if s.direction == target.direction]
        disagreeing = [s.source for s in relevant if s.direction != target.direction]
        return ContributingSources(agreeing=agreeing, disagreeing=disagreeing, total=len(relevant))

    def meets_threshold(self, score: float, threshold: float = None) -> bool:
        return score >= (self.medium_threshold if threshold is None else threshold)

    def get_category(self, score: float) -> ConfluenceCategory:
        if score >= self.high_threshold:
            return ConfluenceCategory.HIGH
        if score >= self.medium_threshold:
            return ConfluenceCategory.MEDIUM
        return ConfluenceCategory.LOW

    def get_source_weight(self, source: SignalSource) -> float:
        key = source.value if isinstance(source, SignalSource) else str(source).upper()
        return self._reliability.get(key, self.default_reliability)

    def update_source_reliability(self, source: SignalSource, weight: float) -> None:
        if not 0.0 <= weight <= 1.0:
            raise ValueError(f"Reliability weight must be within [0, 1], got {weight}")
        key = source.value if isinstance(source, SignalSource) else str(source).upper()
        self._reliability[key] = weight
        self.logger.info(f"Source reliability for {key} set to {weight}")

    @staticmethod
    def _comparable(target: Signal, signals: Iterable[Signal]) -> List[Signal]:
        return [
            s for s in signals
            if s.symbol == target.symbol and s.timeframe == target.timeframe
        ]
