"""
Configuration loader with YAML + environment variable support.

Resolution order (later wins):
1. Model defaults (settings.py)
2. Environment profile (development / staging / production)
3. config/engine.yaml, with ${VAR} / ${VAR:default} placeholders expanded
4. Individual environment variable overrides (COOLDOWN_SECONDS, ...)

The merged result is validated with Pydantic. Any validation problem is
reported as a ConfigValidationError naming each offending field and value, and
the engine refuses to start.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from signal_engine.config.settings import AppConfig, Environment
from signal_engine.core.errors import ConfigValidationError


logger = logging.getLogger(__name__)

# Get the project root directory
PROJECT_ROOT = Path(__file__).parent.parent.parent.parent

# Load environment variables from .env file
load_dotenv(PROJECT_ROOT / ".env")


# ============================================================================
# Environment profiles
# ============================================================================

ENVIRONMENT_PROFILES: Dict[str, Dict[str, Dict[str, Any]]] = {
    Environment.DEVELOPMENT.value: {
        "validation": {"cooldown_seconds": 60},
        "risk": {"max_position_size": 10},
    },
    Environment.STAGING.value: {
        "validation": {"cooldown_seconds": 120},
        "risk": {"max_position_size": 3},
    },
    Environment.PRODUCTION.value: {
        "validation": {"cooldown_seconds": 180},
        "risk": {"max_vix_for_entry": 40, "max_position_size": 5},
        "cache": {"context_ttl_seconds": 30},
    },
}

# env var -> (section, key, parser)
ENV_OVERRIDES: Dict[str, Tuple[str, str, Callable[[str], Any]]] = {
    "LOG_LEVEL": ("system", "log_level", str.upper),
    "COOLDOWN_SECONDS": ("validation", "cooldown_seconds", int),
    "MAX_SIGNAL_AGE_MINUTES": ("validation", "max_signal_age_minutes", float),
    "MAX_VIX_FOR_ENTRY": ("risk", "max_vix_for_entry", float),
    "MAX_POSITION_SIZE": ("risk", "max_position_size", int),
    "MAX_TOTAL_EXPOSURE": ("risk", "max_total_exposure", float),
    "BASE_SIZE": ("sizing", "base_size", float),
    "KELLY_FRACTION": ("sizing", "kelly_fraction", float),
    "CONTEXT_TTL_SECONDS": ("cache", "context_ttl_seconds", float),
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


# ============================================================================
# ConfigLoader - Main Configuration Loader
# ============================================================================

class ConfigLoader:
    """
    Configuration loader with YAML + environment variable support.

    Features:
    - Loads configuration from a YAML file
    - Applies the selected environment profile
    - Overrides with environment variables
    - Validates using Pydantic models
    """

    def __init__(self, config_dir: Optional[Path] = None, config_name: str = "engine"):
        """
        Initialize configuration loader.

        Args:
            config_dir: Configuration directory (defaults to PROJECT_ROOT/config)
            config_name: YAML file name without extension
        """
        self.config_dir = Path(config_dir) if config_dir else (PROJECT_ROOT / "config")
        self.config_name = config_name
        logger.debug(f"ConfigLoader initialized with config_dir: {self.config_dir}")

    def load_yaml(self, config_name: Optional[str] = None) -> Dict[str, Any]:
        """
        Load a YAML configuration file.

        Raises:
            FileNotFoundError: If config file doesn't exist
        """
        config_path = self.config_dir / f"{config_name or self.config_name}.yaml"

        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        logger.debug(f"Loading YAML config from: {config_path}")

        with open(config_path, "r") as f:
            config = yaml.safe_load(f) or {}

        if not isinstance(config, dict):
            raise ConfigValidationError([f"{config_path}: top level must be a mapping"])

        return self._replace_env_vars(config)

    def _replace_env_vars(self, config: Any) -> Any:
        """
        Recursively replace environment variable placeholders in config.

        Placeholders format: ${ENV_VAR_NAME} or ${ENV_VAR_NAME:default_value}
        """
        if isinstance(config, dict):
            return {k: self._replace_env_vars(v) for k, v in config.items()}
        elif isinstance(config, list):
            return [self._replace_env_vars(item) for item in config]
        elif isinstance(config, str) and config.startswith("${") and config.endswith("}"):
            env_expr = config[2:-1]

            if ":" in env_expr:
                var_name, default_value = env_expr.split(":", 1)
                return os.getenv(var_name.strip(), default_value.strip())

            var_name = env_expr.strip()
            value = os.getenv(var_name)
            if value is None:
                logger.warning(f"Environment variable {var_name} not set, using empty string")
                return ""
            return value

        return config

    def load_app_config(self, environment: Optional[str] = None) -> AppConfig:
        """
        Load and validate the complete engine configuration.

        Args:
            environment: Profile name; defaults to $ENVIRONMENT, then the YAML
                system.environment, then development.

        Raises:
            ConfigValidationError: listing every invalid field
        """
        try:
            file_data = self.load_yaml()
        except FileNotFoundError:
            logger.info(f"{self.config_name}.yaml not found, using defaults")
            file_data = {}

        env_name = (
            environment
            or os.getenv("ENVIRONMENT")
            or (file_data.get("system") or {}).get("environment")
            or Environment.DEVELOPMENT.value
        )
        env_name = str(env_name).lower()
        if env_name not in ENVIRONMENT_PROFILES:
            raise ConfigValidationError(
                [f"system.environment: unknown environment (value={env_name!r})"]
            )

        config_data = _deep_merge(ENVIRONMENT_PROFILES[env_name], file_data)
        config_data = _deep_merge(config_data, {"system": {"environment": env_name}})
        config_data = self._apply_env_overrides(config_data)

        config = self.validate(config_data)
        logger.info(f"Configuration loaded for environment '{env_name}'")
        return config

    @staticmethod
    def validate(config_data: Dict[str, Any]) -> AppConfig:
        """Validate a raw mapping, translating Pydantic errors into ConfigValidationError."""
        try:
            return AppConfig.model_validate(config_data)
        except ValidationError as e:
            errors = []
            for err in e.errors():
                field = ".".join(str(part) for part in err["loc"]) or "<root>"
                errors.append(f"{field}: {err['msg']} (value={err.get('input')!r})")
            logger.error(f"Configuration validation failed: {errors}")
            raise ConfigValidationError(errors) from e

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply individual environment variable overrides."""
        errors = []
        for env_var, (section, key, parser) in ENV_OVERRIDES.items():
            if env_val := os.getenv(env_var):
                try:
                    config.setdefault(section, {})[key] = parser(env_val)
                except ValueError:
                    errors.append(f"{section}.{key}: cannot parse {env_var} (value={env_val!r})")
        if errors:
            raise ConfigValidationError(errors)
        return config


def load_config(config_dir: Optional[Path] = None, environment: Optional[str] = None) -> AppConfig:
    """Convenience wrapper around ConfigLoader.load_app_config."""
    return ConfigLoader(config_dir).load_app_config(environment)


def get_config_summary(config: AppConfig) -> Dict[str, Any]:
    """Compact view of the settings worth logging at startup."""
    return {
        "environment": config.system.environment.value,
        "cooldown_seconds": config.validation.cooldown_seconds,
        "market_hours": f"{config.validation.market_hours_start}-{config.validation.market_hours_end} "
                        f"{config.validation.exchange_timezone}",
        "max_vix_for_entry": config.risk.max_vix_for_entry,
        "max_position_size": config.risk.max_position_size,
        "max_total_exposure": config.risk.max_total_exposure,
        "kelly_fraction": config.sizing.kelly_fraction,
        "context_ttl_seconds": config.cache.context_ttl_seconds,
    }
