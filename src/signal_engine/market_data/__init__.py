"""
Market data access for the decision layer.

- providers: market context and option quote sources
- gex_service: GEX readings with staleness weighting and flip detection
- fetcher: timeout + exponential backoff retry around any async fetch
"""

from signal_engine.market_data.fetcher import RetryPolicy, fetch_with_retry
from signal_engine.market_data.gex_service import GEXReader, GEXService, InMemoryGEXReader
from signal_engine.market_data.providers import (
    ContextProvider,
    QuoteProvider,
    QuoteProviderChain,
    StaticContextProvider,
    StaticQuoteProvider,
)

__all__ = [
    'RetryPolicy',
    'fetch_with_retry',
    'GEXReader',
    'GEXService',
    'InMemoryGEXReader',
    'ContextProvider',
    'StaticContextProvider',
    'QuoteProvider',
    'StaticQuoteProvider',
    'QuoteProviderChain',
]
