"""PostgreSQL connection pool for the streak repositories"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from streak_engine.config import Settings
from streak_engine.exceptions import ConnectionError

logger = logging.getLogger(__name__)


class Database:
    """
    Owns one AsyncConnectionPool per process.

    Connections handed out by `connection()` return rows as dicts, which is
    what PostgresStreakRepository reads.
    """

    def __init__(self, connection_string: str, min_size: int = 2, max_size: int = 10):
        self.connection_string = connection_string
        self.min_size = min_size
        self.max_size = max_size
        self._pool: Optional[AsyncConnectionPool] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
        )

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    async def init_pool(self) -> None:
        logger.info(f"Opening streak database pool (min={self.min_size}, max={self.max_size})")
        pool = AsyncConnectionPool(
            self.connection_string,
            min_size=self.min_size,
            max_size=self.max_size,
            open=False
        )
        await pool.open()
        self._pool = pool

    async def close_pool(self) -> None:
        if self._pool:
            logger.info("Closing streak database pool")
            await self._pool.close()
            self._pool = None

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Borrow a dict-row connection from the pool"""
        if self._pool is None:
            raise ConnectionError(
                "Database pool not initialized",
                operation="db.connection",
            )

        async with self._pool.connection() as conn:
            conn.row_factory = dict_row
            yield conn
