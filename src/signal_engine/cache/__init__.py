"""In-process caches: market context, signal fingerprints and the recent-signal window."""

from signal_engine.cache.context_cache import ContextCache
from signal_engine.cache.deduplication_cache import DeduplicationCache
from signal_engine.cache.recent_signals import RecentSignalWindow

__all__ = ['ContextCache', 'DeduplicationCache', 'RecentSignalWindow']
