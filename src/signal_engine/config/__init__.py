"""
Configuration management module.

Loads configuration from YAML files and the environment, validated with Pydantic.
"""

from signal_engine.config.loader import ConfigLoader, get_config_summary, load_config
from signal_engine.config.settings import AppConfig

__all__ = ['AppConfig', 'ConfigLoader', 'load_config', 'get_config_summary']
