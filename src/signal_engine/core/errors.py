"""
Exception hierarchy for the signal engine.

Expected rejections (validation failures, duplicates, REJECT decisions) are
returned as values and never raised. Exceptions are reserved for invalid
configuration, malformed payloads, unavailable external data and illegal
position state transitions.
"""

from typing import List, Optional


class SignalEngineError(Exception):
    """Base class for all signal engine errors."""


class ConfigValidationError(SignalEngineError):
    """Raised when configuration fails validation; carries every problem found."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Configuration validation failed: " + "; ".join(self.errors))


class MarketDataError(SignalEngineError):
    """Raised when an external market-data fetch fails after all retries."""

    def __init__(self, message: str, attempts: int = 0, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.attempts = attempts
        self.cause = cause


class QuoteUnavailableError(MarketDataError):
    """Raised when every quote provider in a chain failed."""

    def __init__(self, symbol: str, failures: List[str]):
        self.symbol = symbol
        self.failures = list(failures)
        super().__init__(
            f"No quote available for {symbol}: " + ("; ".join(self.failures) or "no providers configured")
        )


class GEXUnavailableError(MarketDataError):
    """Raised when the GEX reader cannot be reached."""


class SignalNormalizationError(SignalEngineError):
    """Raised when a raw payload cannot be turned into a Signal."""


class PositionStateError(SignalEngineError):
    """Raised on an illegal position mutation, such as changing a closed position."""
