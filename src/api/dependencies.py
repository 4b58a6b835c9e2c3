"""
Dependency injection for FastAPI routes

One GameDeploy instance per process, created on first use. Tests point it
at a temporary directory with GAMEDEPLOY_CONFIG_DIR and call
reset_services() between cases.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from ..config import DEFAULT_CONFIG_DIR, ENV_PREFIX
from ..core import GameDeploy

logger = logging.getLogger(__name__)

_services: Optional[GameDeploy] = None


def get_services() -> GameDeploy:
    """
    Get or create the GameDeploy singleton

    Returns:
        Initialized GameDeploy instance
    """
    global _services

    if _services is None:
        config_dir = Path(os.environ.get(f"{ENV_PREFIX}CONFIG_DIR") or DEFAULT_CONFIG_DIR)
        logger.info(f"Creating GameDeploy for {config_dir}")
        _services = GameDeploy(config_dir=config_dir)
        _services.init()

    return _services


def reset_services() -> None:
    """Drop the singleton (tests only)"""
    global _services
    _services = None
