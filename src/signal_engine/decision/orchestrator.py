"""
Decision Orchestrator - entry and exit decisions.

Entry flow:
1. Market context (cached, stale value served while a refresh fails)
2. Market filters (volatility ceiling)
3. GEX adjustment (optional, degrades gracefully)
4. Confidence = base + context + positioning + GEX + confluence boost, clamped to [0, 100]
5. Minimum confidence
6. Position size, then the risk multiplier from the market filters
7. Exposure cap
8. ENTER

Exit flow, first match wins:
profit target -> stop loss -> GEX flip -> time exit -> HOLD

Every decision carries its reasoning and full calculation trail and is
written to the audit log.
"""

import logging
import math
from typing import List, Optional, Sequence

from signal_engine.cache.context_cache import ContextCache
from signal_engine.config.settings import AppConfig
from signal_engine.core.errors import GEXUnavailableError, MarketDataError
from signal_engine.core.models import (
    ContextData,
    EntryCalculations,
    EntryDecision,
    EntryDecisionType,
    ExitCalculations,
    ExitDecision,
    ExitDecisionType,
    ExitReason,
    GEXSignal,
    Signal,
)
from signal_engine.decision.confluence import ConfluenceCalculator, ConfluenceCategory
from signal_engine.decision.risk_manager import RiskManager
from signal_engine.decision.sizing import DEFAULT_CONFLUENCE_SCORE, PositionSizingService
from signal_engine.market_data.gex_service import GEXService
from signal_engine.market_data.providers import QuoteProviderChain
from signal_engine.monitoring.audit_logger import AuditLogger
from signal_engine.position.manager import PositionManager
from signal_engine.position.models import Position
from signal_engine.utils.time_utils import Clock, TimeUtils

logger = logging.getLogger(__name__)


class DecisionOrchestrator:
    """Combines context, GEX, risk, confluence and sizing into entry/exit decisions."""

    def __init__(
        self,
        config: AppConfig,
        context_cache: ContextCache,
        gex_service: GEXService,
        position_manager: PositionManager,
        risk_manager: RiskManager,
        sizing_service: PositionSizingService,
        confluence_calculator: ConfluenceCalculator,
        audit_logger: Optional[AuditLogger] = None,
        quote_chain: Optional[QuoteProviderChain] = None,
        clock: Optional[Clock] = None,
    ):
        self.config = config
        self.context_cache = context_cache
        self.gex_service = gex_service
        self.position_manager = position_manager
        self.risk_manager = risk_manager
        self.sizing_service = sizing_service
        self.confluence_calculator = confluence_calculator
        self.audit_logger = audit_logger
        self.quote_chain = quote_chain
        self._clock = clock or TimeUtils.now_utc

    # ========================================================================
    # Entry
    # ========================================================================

    async def evaluate_entry(
        self,
        signal: Signal,
        recent_signals: Optional[Sequence[Signal]] = None,
    ) -> EntryDecision:
        reasoning: List[str] = []
        log_extra = {"tracking_id": signal.id, "symbol": signal.symbol, "stage": "DECISION"}

        # 1. Context
        try:
            context = await self.context_cache.get_context()
        except MarketDataError as e:
            reasoning.append(f"Market data fetch failed: {e}")
            logger.warning(f"Context unavailable: {e}", extra=log_extra)
            return await self._reject(signal, "Market data unavailable", reasoning)
        reasoning.append(
            f"Context: VIX={context.vix}, trend={context.trend.value}, "
            f"bias={context.bias}, regime={context.regime.value}"
        )

        # 2. Market filters
        filters = self.risk_manager.apply_market_filters(signal, context)
        reasoning.append(f"Market filters: {filters.filters}")
        if not filters.passed:
            return await self._reject(signal, filters.rejection_reason, reasoning, context)

        # 3. GEX
        gex_signal, gex_adjustment = await self._gex_adjustment(signal, reasoning)

        # 4. Confidence
        base = self.config.confidence.base_confidence
        context_adj = self.risk_manager.calculate_context_adjustment(signal, context)
        positioning_adj = self.risk_manager.calculate_positioning_adjustment(context)
        confluence_score = self._confluence_score(signal, recent_signals, reasoning)
        confluence_adj = (
            self.config.confidence.confluence_boost
            if self.confluence_calculator.get_category(confluence_score) == ConfluenceCategory.HIGH
            else 0.0
        )

        raw_confidence = base + context_adj + positioning_adj + gex_adjustment + confluence_adj
        confidence = max(0.0, min(100.0, raw_confidence))
        reasoning.append(
            f"Confidence: {base} {context_adj:+.1f} (context) {positioning_adj:+.1f} (positioning) "
            f"{gex_adjustment:+.1f} (GEX) {confluence_adj:+.1f} (confluence) = {raw_confidence:.1f} "
            f"-> {confidence:.1f}"
        )

        calculations = EntryCalculations(
            base_confidence=base,
            context_adjustment=context_adj,
            positioning_adjustment=positioning_adj,
            gex_adjustment=gex_adjustment,
            confluence_adjustment=confluence_adj,
            raw_confidence=raw_confidence,
            final_confidence=confidence,
            confluence_score=confluence_score,
        )

        # 5. Minimum confidence
        if confidence < self.config.confidence.min_confidence:
            reasoning.append(f"Confidence {confidence:.1f} below minimum {self.config.confidence.min_confidence}")
            return await self._reject(
                signal, "Insufficient confidence", reasoning, context, gex_signal, calculations, confidence
            )

        # 6. Size
        sizing = self.sizing_service.calculate_size(signal, confidence, context, confluence_score)
        sc = sizing.calculations
        final_size = int(math.floor(sizing.size * filters.position_size_multiplier))
        calculations.base_size = sc.base_size
        calculations.kelly_multiplier = sc.kelly_multiplier
        calculations.regime_multiplier = sc.regime_multiplier
        calculations.confluence_multiplier = sc.confluence_multiplier
        calculations.after_kelly = sc.after_kelly
        calculations.after_regime = sc.after_regime
        calculations.after_confluence = sc.after_confluence
        calculations.sized_quantity = sizing.size
        calculations.risk_size_multiplier = filters.position_size_multiplier
        calculations.final_size = final_size
        reasoning.append(
            f"Size: {sc.base_size} x {sc.kelly_multiplier:.3f} (Kelly) x {sc.regime_multiplier:.2f} (regime) "
            f"x {sc.confluence_multiplier:.2f} (confluence) -> {sizing.size}"
        )
        if filters.position_size_multiplier != 1.0:
            reasoning.append(
                f"Risk multiplier {filters.position_size_multiplier}: {sizing.size} -> {final_size}"
            )

        if final_size < max(1, self.config.sizing.min_size):
            return await self._reject(
                signal, "Position size below minimum", reasoning, context, gex_signal, calculations, confidence
            )

        # 7. Exposure
        price = await self._reference_price(signal)
        if price is None:
            reasoning.append("No reference price available; exposure check deferred to execution")
        else:
            additional = price * final_size * self.config.position.contract_multiplier
            if await self.position_manager.would_exceed_max_exposure(additional):
                reasoning.append(
                    f"Additional exposure {additional:.2f} would exceed {self.config.risk.max_total_exposure}"
                )
                return await self._reject(
                    signal, "Maximum exposure exceeded", reasoning, context, gex_signal, calculations, confidence
                )

        # 8. Enter
        reasoning.append(f"ENTER {final_size} contracts at confidence {confidence:.1f}")
        decision = EntryDecision(
            decision=EntryDecisionType.ENTER,
            signal=signal,
            confidence=confidence,
            position_size=final_size,
            reasoning=reasoning,
            calculations=calculations,
            reference_price=price,
            timestamp=self._clock(),
        )
        if self.audit_logger:
            await self.audit_logger.log_entry_decision(decision, context, gex_signal)
        return decision

    async def _gex_adjustment(self, signal: Signal, reasoning: List[str]):
        try:
            gex = await self.gex_service.get_signal_with_metadata(signal.symbol, signal.timeframe)
        except GEXUnavailableError as e:
            reasoning.append(f"GEX unavailable ({e}); continuing without GEX")
            return None, 0.0

        if gex.signal is None:
            reasoning.append("No GEX signal; continuing without GEX")
            return None, 0.0

        strength = max(0.0, min(1.0, abs(gex.signal.strength)))
        sign = 1.0 if gex.signal.direction == signal.direction else -1.0
        adjustment = sign * strength * gex.effective_weight * self.config.confidence.gex_adjustment_range
        reasoning.append(
            f"GEX {gex.signal.direction.value} strength={gex.signal.strength} "
            f"age={gex.age_hours:.1f}h stale={gex.is_stale} weight={gex.effective_weight} "
            f"-> {adjustment:+.1f}"
        )
        return gex.signal, adjustment

    def _confluence_score(
        self,
        signal: Signal,
        recent_signals: Optional[Sequence[Signal]],
        reasoning: List[str],
    ) -> float:
        if recent_signals:
            pool = list(recent_signals)
            if all(s.id != signal.id for s in pool):
                pool.append(signal)
            result = self.confluence_calculator.calculate(signal, pool)
            reasoning.append(f"Confluence from recent signals: {result}")
            return result.score
        if signal.metadata.confluence is not None:
            reasoning.append(f"Confluence reported by source: {signal.metadata.confluence}")
            return signal.metadata.confluence
        reasoning.append(f"No confluence data; using default {DEFAULT_CONFLUENCE_SCORE}")
        return DEFAULT_CONFLUENCE_SCORE

    async def _reference_price(self, signal: Signal) -> Optional[float]:
        if signal.metadata.price is not None and signal.metadata.price > 0:
            return signal.metadata.price
        if self.quote_chain is not None:
            return await self.quote_chain.try_get_quote(signal.symbol)
        return None

    async def _reject(
        self,
        signal: Signal,
        reason: str,
        reasoning: List[str],
        context: Optional[ContextData] = None,
        gex: Optional[GEXSignal] = None,
        calculations: Optional[EntryCalculations] = None,
        confidence: float = 0.0,
    ) -> EntryDecision:
        decision = EntryDecision(
            decision=EntryDecisionType.REJECT,
            signal=signal,
            confidence=confidence,
            position_size=0,
            reasoning=reasoning + [f"REJECTED: {reason}"],
            calculations=calculations or EntryCalculations(),
            rejection_reason=reason,
            timestamp=self._clock(),
        )
        decision.calculations.final_size = 0
        if self.audit_logger:
            await self.audit_logger.log_entry_decision(decision, context, gex)
        return decision

    # ========================================================================
    # Exit
    # ========================================================================

    async def evaluate_exit(self, position: Position, current_price: Optional[float] = None) -> ExitDecision:
        reasoning: List[str] = []
        now = self._clock()

        price = await self._exit_price(position, current_price, reasoning)
        pnl = self.position_manager.calculate_unrealized_pnl(position, price)
        pnl_percent = self.position_manager.calculate_pnl_percent(position, price)
        hold_minutes = position.hold_minutes(now)
        calculations = ExitCalculations(
            current_price=price,
            current_pnl=pnl,
            current_pnl_percent=pnl_percent,
            hold_minutes=hold_minutes,
        )
        reasoning.append(f"P&L {pnl:.2f} ({pnl_percent:.2f}%) at {price}, held {hold_minutes:.1f}m")

        exit_cfg = self.config.exit
        reason: Optional[ExitReason] = None

        if pnl_percent >= exit_cfg.profit_target_percent:
            calculations.profit_target = True
            reason = ExitReason.PROFIT_TARGET
            reasoning.append(f"Profit target reached: {pnl_percent:.2f}% >= {exit_cfg.profit_target_percent}%")
        elif pnl_percent <= exit_cfg.stop_loss_percent:
            calculations.stop_loss = True
            reason = ExitReason.STOP_LOSS
            reasoning.append(f"Stop loss triggered: {pnl_percent:.2f}% <= {exit_cfg.stop_loss_percent}%")
        elif await self._gex_flipped_against(position, reasoning):
            calculations.gex_flip = True
            reason = ExitReason.GEX_FLIP
        elif self._time_exit_due(position, now, reasoning):
            calculations.time_exit = True
            reason = ExitReason.TIME_EXIT

        if reason is None:
            reasoning.append("No exit conditions met - HOLD")
            decision = ExitDecision(
                decision=ExitDecisionType.HOLD,
                position=position,
                reasoning=reasoning,
                calculations=calculations,
                timestamp=now,
            )
        else:
            reasoning.append(f"EXIT: {reason.value}")
            decision = ExitDecision(
                decision=ExitDecisionType.EXIT,
                position=position,
                exit_reason=reason,
                reasoning=reasoning,
                calculations=calculations,
                timestamp=now,
            )

        if self.audit_logger:
            await self.audit_logger.log_exit_decision(decision)
        return decision

    async def _exit_price(self, position: Position, current_price: Optional[float], reasoning: List[str]) -> float:
        if current_price is not None:
            return current_price
        if self.quote_chain is not None:
            quote = await self.quote_chain.try_get_quote(position.symbol)
            if quote is not None:
                return quote
            reasoning.append("Quote unavailable; using last known price")
        if position.current_price is not None:
            return position.current_price
        return position.entry_price

    async def _gex_flipped_against(self, position: Position, reasoning: List[str]) -> bool:
        try:
            flip = await self.gex_service.detect_flip(position.symbol, position.timeframe)
        except GEXUnavailableError as e:
            reasoning.append(f"GEX flip check skipped: {e}")
            return False

        if flip.has_flipped and flip.current_direction != position.direction:
            reasoning.append(
                f"GEX flipped against position: {flip.previous_direction.value} -> "
                f"{flip.current_direction.value}"
            )
            return True
        return False

    def _time_exit_due(self, position: Position, now, reasoning: List[str]) -> bool:
        exit_cfg = self.config.exit
        if position.hold_minutes(now) >= exit_cfg.max_hold_minutes:
            reasoning.append(f"Max hold time {exit_cfg.max_hold_minutes}m exceeded")
            return True
        if exit_cfg.exit_at_market_close and TimeUtils.is_at_or_after(
            now, self.config.validation.market_hours_end, self.config.validation.exchange_timezone
        ):
            reasoning.append("Market close reached")
            return True
        return False
