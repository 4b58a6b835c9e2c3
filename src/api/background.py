"""
Background work management for FastAPI

Provides the lifespan context manager: on startup the services are created
and stale jobs pruned; on shutdown queued deployments and timeout
compensation tasks are awaited.

Usage:
    from src.api.background import lifespan

    app = FastAPI(lifespan=lifespan)
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from .dependencies import get_services

logger = logging.getLogger(__name__)

JOB_RETENTION_DAYS = 7


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    FastAPI lifespan context manager

    Args:
        app: FastAPI application instance
    """
    logger.info("🚀 Starting Game Server Deploy API...")

    try:
        services = get_services()
        removed = services.job_manager.cleanup_old_jobs(max_age_days=JOB_RETENTION_DAYS)
        if removed:
            logger.info(f"Pruned {removed} jobs older than {JOB_RETENTION_DAYS} days")
        if not services.settings.github_configured:
            logger.warning("GitHub App not configured; deployments will fail authentication")
        logger.info("✅ Game Server Deploy API ready!")
    except Exception as e:
        logger.error(f"❌ Failed to start API: {e}", exc_info=True)
        raise

    yield

    logger.info("🛑 Shutting down Game Server Deploy API...")
    try:
        await get_services().shutdown()
        logger.info("✅ Shutdown complete")
    except Exception as e:
        logger.error(f"❌ Error during shutdown: {e}", exc_info=True)
