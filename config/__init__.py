"""
Config package for the EMA cross selection package.

Provides centralized configuration loading from the root .env file.
"""

from config.settings import (
    load_config,
    is_config_loaded,
    get_selection_overrides,
)

__all__ = [
    'load_config',
    'is_config_loaded',
    'get_selection_overrides',
]
