"""
Market-data provider interfaces.

Concrete vendor clients live outside the engine; they plug in by implementing
ContextProvider or QuoteProvider. QuoteProviderChain tries quote providers in
priority order and returns the first success.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from signal_engine.core.errors import QuoteUnavailableError
from signal_engine.core.models import ContextData

logger = logging.getLogger(__name__)


class ContextProvider(ABC):
    """Source of the market context snapshot (volatility, trend, bias, regime)."""

    @abstractmethod
    async def fetch_context(self) -> ContextData:
        pass

    async def __call__(self) -> ContextData:
        return await self.fetch_context()


class StaticContextProvider(ContextProvider):
    """Always returns the same snapshot; used for replays and tests."""

    def __init__(self, context: ContextData):
        self.context = context

    async def fetch_context(self) -> ContextData:
        return self.context


class QuoteProvider(ABC):
    """Returns the latest price for a symbol."""

    def __init__(self, name: str = None):
        self.name = name or self.__class__.__name__
        self.logger = logging.getLogger(f"{__name__}.{self.name}")

    @abstractmethod
    async def get_quote(self, symbol: str) -> float:
        """Raise any exception when no quote is available."""


class StaticQuoteProvider(QuoteProvider):
    """Quotes from a fixed symbol -> price mapping."""

    def __init__(self, quotes: Dict[str, float], name: str = None):
        super().__init__(name)
        self.quotes = {symbol.upper(): price for symbol, price in quotes.items()}

    def set_quote(self, symbol: str, price: float) -> None:
        self.quotes[symbol.upper()] = price

    async def get_quote(self, symbol: str) -> float:
        try:
            return self.quotes[symbol.upper()]
        except KeyError:
            raise LookupError(f"no quote for {symbol}") from None


class QuoteProviderChain:
    """
    Ordered fallback over quote providers.

    Each provider gets ``timeout_seconds``; the first positive price wins.
    When all fail, QuoteUnavailableError lists every provider's failure.
    """

    def __init__(self, providers: Sequence[QuoteProvider], timeout_seconds: float = 5.0):
        self.providers: List[QuoteProvider] = list(providers)
        self.timeout_seconds = timeout_seconds

    async def get_quote(self, symbol: str) -> float:
        failures = []
        for provider in self.providers:
            try:
                price = await asyncio.wait_for(provider.get_quote(symbol), timeout=self.timeout_seconds)
            except asyncio.TimeoutError:
                failures.append(f"{provider.name}: timed out")
                continue
            except Exception as e:
                failures.append(f"{provider.name}: {e}")
                continue

            if price is None or price <= 0:
                failures.append(f"{provider.name}: invalid price {price!r}")
                continue

            if failures:
                logger.info(f"Quote for {symbol} served by fallback provider {provider.name}")
            return float(price)

        raise QuoteUnavailableError(symbol, failures)

    async def try_get_quote(self, symbol: str) -> Optional[float]:
        """Like get_quote, but logs and returns None when no provider answers."""
        try:
            return await self.get_quote(symbol)
        except QuoteUnavailableError as e:
            logger.warning(str(e))
            return None
