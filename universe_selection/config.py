"""
EMA cross universe selection configuration.

Indicator windows, crossover threshold and selection cap. All values can be
overridden via environment variables prefixed with ``EMA_SEL_``.
"""

import os
from dataclasses import dataclass
from typing import Optional

# Values of EMA_SEL_MAX_COUNT meaning "no cap"
_UNBOUNDED_TOKENS = {'', 'none', 'unbounded', 'inf', 'all'}


@dataclass
class EmaCrossSelectionConfig:
    """Configuration for the EMA cross selection pipeline."""

    # Indicator windows (fast should be shorter than slow)
    fast_window: int = 12
    slow_window: int = 26

    # Required relative excess of fast over slow (0.01 = 1%)
    threshold: float = 0.01

    # Cap on selected entities per batch, None = unbounded
    max_count: Optional[int] = None

    # Lock shards guarding tracker creation in the store
    store_shards: int = 16

    def validate(self) -> None:
        """Raise ValueError if any setting is out of range."""
        validate_windows(self.fast_window, self.slow_window)
        validate_selection(self.threshold, self.max_count)
        if self.store_shards <= 0:
            raise ValueError(f"store_shards must be positive, got {self.store_shards}")

    @classmethod
    def from_env(cls) -> 'EmaCrossSelectionConfig':
        """Create config with environment variable overrides."""
        from config.settings import load_config

        load_config()

        cfg = cls()
        if v := os.environ.get('EMA_SEL_FAST_WINDOW'):
            cfg.fast_window = int(v)
        if v := os.environ.get('EMA_SEL_SLOW_WINDOW'):
            cfg.slow_window = int(v)
        if v := os.environ.get('EMA_SEL_THRESHOLD'):
            cfg.threshold = float(v)
        if (v := os.environ.get('EMA_SEL_MAX_COUNT')) is not None:
            cfg.max_count = None if v.strip().lower() in _UNBOUNDED_TOKENS else int(v)
        if v := os.environ.get('EMA_SEL_STORE_SHARDS'):
            cfg.store_shards = int(v)

        cfg.validate()
        return cfg


def validate_windows(fast_window: int, slow_window: int) -> None:
    """Both windows must be positive integers."""
    for name, window in (('fast_window', fast_window), ('slow_window', slow_window)):
        if isinstance(window, bool) or not isinstance(window, int) or window <= 0:
            raise ValueError(f"{name} must be a positive integer, got {window!r}")


def validate_selection(threshold: float, max_count: Optional[int]) -> None:
    """Threshold must be non-negative; max_count non-negative or None."""
    if threshold < 0:
        raise ValueError(f"threshold must be non-negative, got {threshold}")
    if max_count is not None and max_count < 0:
        raise ValueError(f"max_count must be non-negative or None, got {max_count}")
