"""
Service Container - Dependency Injection Container

Wires settings, persistence and services. Built explicitly once per process
(or per test); there is no global instance.
"""

from dataclasses import dataclass, field
from typing import Optional
import logging

from streak_engine.config import Settings
from streak_engine.db.connection import Database
from streak_engine.db.memory_repository import InMemoryStreakRepository
from streak_engine.db.postgres_repository import PostgresStreakRepository
from streak_engine.db.repository import RewardGranter, StreakRepository

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """
    Simple dependency injection container for services.

    Services are lazy-loaded on first access via properties. With no database
    the in-memory repository is used.
    """

    settings: Settings
    db: Optional[Database] = None

    _repository: Optional[StreakRepository] = field(default=None, init=False, repr=False)
    _ingestion_service: Optional[object] = field(default=None, init=False, repr=False)

    @property
    def repository(self) -> StreakRepository:
        """Get the streak repository (lazy-loaded)"""
        if self._repository is None:
            if self.db is not None:
                self._repository = PostgresStreakRepository(self.db)
            else:
                self._repository = InMemoryStreakRepository()
            logger.debug(f"{type(self._repository).__name__} instantiated")
        return self._repository

    @property
    def reward_granter(self) -> RewardGranter:
        """Both bundled repositories also grant milestone rewards"""
        return self.repository

    @property
    def ingestion_service(self):
        """Get ActivityIngestionService instance (lazy-loaded)"""
        if self._ingestion_service is None:
            from streak_engine.services.activity_ingestion import ActivityIngestionService
            self._ingestion_service = ActivityIngestionService(
                self.repository,
                self.reward_granter,
                self.settings,
            )
            logger.debug("ActivityIngestionService instantiated")
        return self._ingestion_service


def build_container(settings: Settings, use_database: bool = True) -> ServiceContainer:
    """
    Build a service container from settings.

    Args:
        settings: Engine settings
        use_database: Back the repository with PostgreSQL (pool still has to
            be opened with `await container.db.init_pool()`)
    """
    db = Database.from_settings(settings) if use_database else None
    container = ServiceContainer(settings=settings, db=db)
    logger.info(f"Service container initialized (database={'postgres' if db else 'memory'})")
    return container
