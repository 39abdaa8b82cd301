"""
Configuration models using Pydantic for type-safe validation.

This module defines every tunable of the signal engine:
- SystemConfig: environment, log level, log format
- ValidationConfig: cooldown, market hours, signal age, confluence floor
- RiskConfig: volatility ceiling, size caps, exposure cap
- SizingConfig: base size, Kelly fraction, regime and confluence multipliers
- ConfidenceConfig: base confidence and adjustment ranges
- CacheConfig: context TTL, stale fallback, deduplication windows
- GEXConfig: staleness and stale-weight reduction
- ExitConfig: profit target, stop loss, hold time
- MarketDataConfig: timeout and retry policy for external fetches
- PositionConfig: contract multiplier
- ConfluenceConfig: per-source reliability weights and category thresholds

Models are frozen: the validated config is built once at startup and passed
by reference to every service.
"""

import re
from enum import Enum
from typing import Dict

import pytz
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


# ============================================================================
# Enums for Configuration
# ============================================================================

class Environment(str, Enum):
    """Deployment environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging level."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


# ============================================================================
# System Configuration
# ============================================================================

class SystemConfig(_FrozenModel):
    """System-wide settings."""

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment"
    )

    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level"
    )

    json_logs: bool = Field(
        default=False,
        description="Emit structured JSON log lines"
    )


# ============================================================================
# Validation Configuration
# ============================================================================

class ValidationConfig(_FrozenModel):
    """Hard gates applied to every signal before any decision is made."""

    cooldown_seconds: int = Field(
        default=300,
        ge=0,
        description="Minimum seconds between accepted signals for one symbol/direction"
    )

    market_hours_start: str = Field(
        default="09:30",
        description="Start of the accepted window, exchange-local HH:MM"
    )

    market_hours_end: str = Field(
        default="15:30",
        description="End of the accepted window, exchange-local HH:MM (inclusive)"
    )

    exchange_timezone: str = Field(
        default="America/New_York",
        description="Time zone the market-hours window is expressed in"
    )

    max_signal_age_minutes: float = Field(
        default=5,
        ge=0,
        description="Signals older than this are rejected"
    )

    min_confluence_score: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Minimum source-reported confluence score"
    )

    @field_validator("market_hours_start", "market_hours_end")
    @classmethod
    def validate_hhmm(cls, v: str) -> str:
        if not _HHMM.match(v):
            raise ValueError(f"must be HH:MM, got {v!r}")
        return v

    @field_validator("exchange_timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        if v not in pytz.all_timezones_set:
            raise ValueError(f"unknown time zone {v!r}")
        return v

    @model_validator(mode="after")
    def validate_window(self) -> "ValidationConfig":
        if self.market_hours_start >= self.market_hours_end:
            raise ValueError(
                f"market_hours_start ({self.market_hours_start}) must be before "
                f"market_hours_end ({self.market_hours_end})"
            )
        return self


# ============================================================================
# Risk Configuration
# ============================================================================

class RiskConfig(_FrozenModel):
    """Risk management parameters."""

    max_vix_for_entry: float = Field(
        default=40.0,
        gt=0,
        description="Volatility ceiling; entries are rejected above it"
    )

    vix_caution_threshold: float = Field(
        default=30.0,
        gt=0,
        description="Above this volatility the position size is reduced"
    )

    vix_position_size_reduction: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Size multiplier applied above the caution threshold"
    )

    max_position_size: int = Field(
        default=10,
        ge=1,
        description="Hard cap on contracts per position"
    )

    max_total_exposure: float = Field(
        default=50000.0,
        ge=0,
        description="Maximum notional across open positions"
    )

    @model_validator(mode="after")
    def validate_thresholds(self) -> "RiskConfig":
        if self.vix_caution_threshold > self.max_vix_for_entry:
            raise ValueError(
                f"vix_caution_threshold ({self.vix_caution_threshold}) must not exceed "
                f"max_vix_for_entry ({self.max_vix_for_entry})"
            )
        return self


# ============================================================================
# Sizing Configuration
# ============================================================================

class SizingConfig(_FrozenModel):
    """Position sizing chain: base, Kelly, regime, confluence."""

    base_size: float = Field(default=1.0, ge=0, description="Starting size in contracts")

    kelly_fraction: float = Field(
        default=0.25,
        ge=0.0,
        le=1.0,
        description="Fractional Kelly scaling applied to confidence"
    )

    min_size: int = Field(default=1, ge=0, description="Smallest tradable size")
    max_size: int = Field(default=10, ge=1, description="Largest size the chain may produce")

    low_vol_multiplier: float = Field(default=1.2, gt=0)
    normal_multiplier: float = Field(default=1.0, gt=0)
    high_vol_multiplier: float = Field(default=0.7, gt=0)

    high_confluence_multiplier: float = Field(default=1.2, gt=0)
    medium_confluence_multiplier: float = Field(default=1.0, gt=0)
    low_confluence_multiplier: float = Field(default=0.8, gt=0)

    @model_validator(mode="after")
    def validate_bounds(self) -> "SizingConfig":
        if self.max_size < self.min_size:
            raise ValueError(f"max_size ({self.max_size}) must be >= min_size ({self.min_size})")
        return self


# ============================================================================
# Confidence Configuration
# ============================================================================

class ConfidenceConfig(_FrozenModel):
    """Confidence score composition."""

    base_confidence: float = Field(default=50.0, ge=0, le=100)
    min_confidence: float = Field(
        default=50.0,
        ge=0,
        le=100,
        description="Entries below this confidence are rejected"
    )

    context_adjustment_range: float = Field(default=20.0, ge=0)
    positioning_adjustment_range: float = Field(default=15.0, ge=0)
    gex_adjustment_range: float = Field(default=15.0, ge=0)

    low_vix_threshold: float = Field(default=15.0, ge=0)
    vix_adjustment: float = Field(default=5.0, ge=0)
    trend_aligned_bonus: float = Field(default=15.0, ge=0)
    counter_trend_penalty: float = Field(default=20.0, ge=0)
    bias_threshold: float = Field(default=0.5, ge=0)
    bias_adjustment: float = Field(default=3.0, ge=0)
    regime_adjustment: float = Field(default=10.0, ge=0)

    confluence_boost: float = Field(
        default=10.0,
        ge=0,
        description="Added when confluence reaches the HIGH category"
    )

    @model_validator(mode="after")
    def validate_context_weights(self) -> "ConfidenceConfig":
        minor = self.vix_adjustment + self.bias_adjustment
        if self.trend_aligned_bonus <= minor:
            raise ValueError(
                f"trend_aligned_bonus ({self.trend_aligned_bonus}) must exceed "
                f"vix_adjustment + bias_adjustment ({minor})"
            )
        if self.counter_trend_penalty <= minor:
            raise ValueError(
                f"counter_trend_penalty ({self.counter_trend_penalty}) must exceed "
                f"vix_adjustment + bias_adjustment ({minor})"
            )
        return self


# ============================================================================
# Cache Configuration
# ============================================================================

class CacheConfig(_FrozenModel):
    context_ttl_seconds: float = Field(default=60, gt=0)
    context_stale_fallback_seconds: float = Field(
        default=300,
        ge=0,
        description="Max age of a cached context served when a refresh fails"
    )
    deduplication_window_seconds: float = Field(default=60, gt=0)
    deduplication_expiry_seconds: float = Field(default=300, gt=0)
    confluence_window_minutes: float = Field(
        default=15,
        gt=0,
        description="How long accepted signals count toward confluence"
    )

    @model_validator(mode="after")
    def validate_windows(self) -> "CacheConfig":
        if self.deduplication_expiry_seconds < self.deduplication_window_seconds:
            raise ValueError(
                "deduplication_expiry_seconds must be >= deduplication_window_seconds"
            )
        return self


# ============================================================================
# GEX Configuration
# ============================================================================

class GEXConfig(_FrozenModel):
    max_stale_minutes: float = Field(default=240, gt=0)
    stale_weight_reduction: float = Field(default=0.5, ge=0.0, le=1.0)
    history_limit: int = Field(default=2, ge=2, description="Readings fetched for flip detection")


# ============================================================================
# Exit Configuration
# ============================================================================

class ExitConfig(_FrozenModel):
    profit_target_percent: float = Field(default=50.0, gt=0)
    stop_loss_percent: float = Field(default=-30.0, le=0)
    max_hold_minutes: float = Field(default=390, gt=0)
    exit_at_market_close: bool = Field(default=True)


# ============================================================================
# Market Data Configuration
# ============================================================================

class MarketDataConfig(_FrozenModel):
    timeout_seconds: float = Field(default=5.0, gt=0)
    max_retries: int = Field(default=3, ge=1)
    backoff_base_seconds: float = Field(default=1.0, ge=0)


class PositionConfig(_FrozenModel):
    contract_multiplier: int = Field(default=100, ge=1)


# ============================================================================
# Confluence Configuration
# ============================================================================

class ConfluenceConfig(_FrozenModel):
    source_reliability: Dict[str, float] = Field(
        default_factory=lambda: {
            "TRADINGVIEW": 1.0,
            "GEX": 0.9,
            "MTF": 0.85,
            "MANUAL": 0.7,
        }
    )
    default_reliability: float = Field(default=0.5, ge=0.0, le=1.0)
    high_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    medium_threshold: float = Field(default=0.5, ge=0.0, le=1.0)

    @field_validator("source_reliability")
    @classmethod
    def validate_weights(cls, v: Dict[str, float]) -> Dict[str, float]:
        for source, weight in v.items():
            if not 0.0 <= weight <= 1.0:
                raise ValueError(f"reliability for {source} must be within [0, 1], got {weight}")
        return {source.upper(): weight for source, weight in v.items()}

    @model_validator(mode="after")
    def validate_thresholds(self) -> "ConfluenceConfig":
        if self.medium_threshold > self.high_threshold:
            raise ValueError("medium_threshold must not exceed high_threshold")
        return self


# ============================================================================
# Application Configuration
# ============================================================================

class AppConfig(_FrozenModel):
    """Complete, validated engine configuration."""

    system: SystemConfig = Field(default_factory=SystemConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    risk: RiskConfig = Field(default_factory=RiskConfig)
    sizing: SizingConfig = Field(default_factory=SizingConfig)
    confidence: ConfidenceConfig = Field(default_factory=ConfidenceConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    gex: GEXConfig = Field(default_factory=GEXConfig)
    exit: ExitConfig = Field(default_factory=ExitConfig)
    market_data: MarketDataConfig = Field(default_factory=MarketDataConfig)
    position: PositionConfig = Field(default_factory=PositionConfig)
    confluence: ConfluenceConfig = Field(default_factory=ConfluenceConfig)
