"""
Centralized configuration loading for the EMA cross selection package.

Hosts usually set ``EMA_SEL_*`` variables directly. For local development
they can live in a ``.env`` file at the project root instead.

Usage:
    from config.settings import load_config

    # At app startup (call once)
    load_config()
"""

import logging
import os
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

# Flag to track if config has been loaded
_CONFIG_LOADED = False

_SELECTION_PREFIX = 'EMA_SEL_'


def load_config(force_reload: bool = False, env_path: Optional[Path] = None) -> None:
    """
    Load environment variables from the project root .env file.

    A missing .env is not an error: variables set in the process
    environment are used as-is. Values already in the environment win over
    the file.

    Args:
        force_reload: If True, reload even if already loaded
        env_path: Override the .env location (mainly for tests)
    """
    global _CONFIG_LOADED

    if _CONFIG_LOADED and not force_reload:
        return

    # Import here to keep module import cheap
    from dotenv import load_dotenv

    if env_path is None:
        env_path = Path(__file__).parent.parent / '.env'

    if env_path.exists():
        load_dotenv(env_path, override=False)
        logger.debug(f"Loaded environment from {env_path}")
    else:
        logger.debug(f"No .env at {env_path}, using process environment")

    _CONFIG_LOADED = True


def is_config_loaded() -> bool:
    """Check if configuration has been loaded."""
    return _CONFIG_LOADED


def get_selection_overrides() -> Dict[str, str]:
    """Return the ``EMA_SEL_*`` variables currently set, for diagnostics."""
    load_config()
    return {
        k: v for k, v in os.environ.items()
        if k.startswith(_SELECTION_PREFIX)
    }
