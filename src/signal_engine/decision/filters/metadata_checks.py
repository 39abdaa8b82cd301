"""
Gates driven by source-reported metadata.

Both checks pass when the source did not report the value: absence of an
MTF or confluence figure is not evidence against the signal.
"""

from signal_engine.core.models import Signal
from signal_engine.decision.filters.base import CheckOutcome, ValidationCheck


class MTFAlignmentCheck(ValidationCheck):
    name = "mtf"
    rejection_reason = "MTF alignment failed"

    def evaluate(self, signal: Signal) -> CheckOutcome:
        reported = signal.metadata.mtf_aligned
        aligned = True if reported is None else reported
        return CheckOutcome(aligned, {"mtf_aligned": aligned, "reported": reported is not None})


class ConfluenceCheck(ValidationCheck):
    name = "confluence"
    rejection_reason = "Insufficient confluence"

    def __init__(self, min_score: float):
        super().__init__()
        self.min_score = min_score

    def evaluate(self, signal: Signal) -> CheckOutcome:
        reported = signal.metadata.confluence
        score = 1.0 if reported is None else reported
        return CheckOutcome(score >= self.min_score, {
            "confluence": score,
            "min_confluence": self.min_score,
            "reported": reported is not None,
        })
