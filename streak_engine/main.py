"""Process setup: logging, database pool and service container"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from streak_engine.config import Settings, get_settings
from streak_engine.db.schema import ensure_schema
from streak_engine.services.container import ServiceContainer, build_container

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the process"""
    logging.basicConfig(
        format=LOG_FORMAT,
        level=getattr(logging, level.upper(), logging.INFO)
    )


@asynccontextmanager
async def streak_engine_lifespan(
    settings: Optional[Settings] = None,
    use_database: bool = True,
    create_schema: bool = False
) -> AsyncIterator[ServiceContainer]:
    """
    Open the database pool, yield a ready container, close the pool on exit.

    Example:
        async with streak_engine_lifespan() as container:
            result = await container.ingestion_service.process_activity(
                user_id, "Europe/Stockholm", ActivityEvent(activity_type="voice_drill")
            )
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    container = build_container(settings, use_database=use_database)
    try:
        if container.db is not None:
            logger.info("Initializing database connection pool...")
            await container.db.init_pool()
            if create_schema:
                await ensure_schema(container.db)

        yield container
    finally:
        if container.db is not None:
            logger.info("Closing database connection...")
            await container.db.close_pool()
        logger.info("Shutdown complete")
