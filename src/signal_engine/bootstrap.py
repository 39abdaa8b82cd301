"""
Explicit construction of the engine's object graph.

Every service is created exactly once here and passed by reference to the
components that need it; nothing in the engine reaches for module-level
singletons.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from signal_engine.cache.context_cache import ContextCache, ContextFetcher
from signal_engine.cache.deduplication_cache import DeduplicationCache
from signal_engine.cache.recent_signals import RecentSignalWindow
from signal_engine.config.loader import get_config_summary
from signal_engine.config.settings import AppConfig
from signal_engine.decision.confluence import ConfluenceCalculator
from signal_engine.decision.orchestrator import DecisionOrchestrator
from signal_engine.decision.risk_manager import RiskManager
from signal_engine.decision.sizing import PositionSizingService
from signal_engine.decision.validator import SignalValidator
from signal_engine.execution.handlers import (
    DecisionHandler,
    DeduplicationHandler,
    NormalizationHandler,
    PositionOpenHandler,
    ValidationHandler,
)
from signal_engine.execution.normalizer import SignalNormalizer
from signal_engine.execution.pipeline import SignalPipeline
from signal_engine.market_data.gex_service import GEXReader, GEXService
from signal_engine.market_data.providers import QuoteProvider, QuoteProviderChain
from signal_engine.monitoring.audit_logger import AuditLogger, PersistHook
from signal_engine.monitoring.degraded_mode import DegradedModeTracker
from signal_engine.position.manager import PositionManager
from signal_engine.position.store import InMemoryPositionStore, PositionStore
from signal_engine.utils.time_utils import Clock, TimeUtils

logger = logging.getLogger(__name__)


@dataclass
class EngineComponents:
    """Handles on the services behind a pipeline, for inspection and tests."""
    config: AppConfig
    pipeline: SignalPipeline
    orchestrator: DecisionOrchestrator
    context_cache: ContextCache
    dedup_cache: DeduplicationCache
    validator: SignalValidator
    gex_service: GEXService
    position_manager: PositionManager
    audit_logger: AuditLogger
    degraded_tracker: DegradedModeTracker


def build_engine(
    config: AppConfig,
    context_fetcher: ContextFetcher,
    gex_reader: GEXReader,
    position_store: Optional[PositionStore] = None,
    quote_providers: Optional[Sequence[QuoteProvider]] = None,
    audit_persist: Optional[PersistHook] = None,
    clock: Optional[Clock] = None,
    sleep=None,
) -> EngineComponents:
    """
    Wire every component from one validated config.

    Args:
        config: Validated AppConfig
        context_fetcher: async callable returning ContextData
        gex_reader: GEX storage access
        position_store: Defaults to an in-memory store
        quote_providers: Price sources in priority order
        audit_persist: Optional async hook receiving each audit entry
        clock: UTC clock, injectable for tests
        sleep: Backoff sleep, injectable for tests
    """
    clock = clock or TimeUtils.now_utc

    degraded = DegradedModeTracker(clock=clock)
    audit = AuditLogger(persist=audit_persist, clock=clock)
    quote_chain = (
        QuoteProviderChain(quote_providers, timeout_seconds=config.market_data.timeout_seconds)
        if quote_providers else None
    )

    context_cache = ContextCache(config, context_fetcher, degraded_tracker=degraded, clock=clock, sleep=sleep)
    dedup_cache = DeduplicationCache(config, clock=clock)
    validator = SignalValidator(config, clock=clock)
    gex_service = GEXService(config, gex_reader, degraded_tracker=degraded, clock=clock, sleep=sleep)
    position_manager = PositionManager(
        config, position_store or InMemoryPositionStore(), degraded_tracker=degraded, clock=clock
    )

    orchestrator = DecisionOrchestrator(
        config=config,
        context_cache=context_cache,
        gex_service=gex_service,
        position_manager=position_manager,
        risk_manager=RiskManager(config),
        sizing_service=PositionSizingService(config),
        confluence_calculator=ConfluenceCalculator(config.confluence),
        audit_logger=audit,
        quote_chain=quote_chain,
        clock=clock,
    )

    pipeline = SignalPipeline(
        normalization=NormalizationHandler(SignalNormalizer(clock=clock), audit_logger=audit),
        validation=ValidationHandler(validator),
        deduplication=DeduplicationHandler(dedup_cache),
        decision=DecisionHandler(
            orchestrator, RecentSignalWindow(config.cache.confluence_window_minutes, clock=clock)
        ),
        execution=PositionOpenHandler(position_manager, quote_chain=quote_chain, audit_logger=audit),
        orchestrator=orchestrator,
        position_manager=position_manager,
        audit_logger=audit,
        degraded_tracker=degraded,
        clock=clock,
    )

    logger.info(f"Engine built: {get_config_summary(config)}")

    return EngineComponents(
        config=config,
        pipeline=pipeline,
        orchestrator=orchestrator,
        context_cache=context_cache,
        dedup_cache=dedup_cache,
        validator=validator,
        gex_service=gex_service,
        position_manager=position_manager,
        audit_logger=audit,
        degraded_tracker=degraded,
    )


def build_pipeline(config: AppConfig, context_fetcher: ContextFetcher, gex_reader: GEXReader, **kwargs) -> SignalPipeline:
    """Factory returning just the pipeline."""
    return build_engine(config, context_fetcher, gex_reader, **kwargs).pipeline
