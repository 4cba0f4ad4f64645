"""
MongoDB connection holder.

``MongoConnectionPool`` is constructed by the application entry point,
opened during startup, closed during shutdown, and handed to every
repository. The first ``get_connection()`` call establishes the connection;
concurrent first callers all await the same in-flight attempt.
"""

import asyncio
from typing import Any, Callable, Optional

import structlog
from pymongo import AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase

from api.src.errors import ConfigurationError

logger = structlog.get_logger(__name__)


class MongoConnectionPool:
    """Lazily connected, memoized MongoDB database handle."""

    def __init__(
        self,
        url: Optional[str],
        db_name: str,
        server_selection_timeout_ms: int = 5000,
        max_pool_size: int = 20,
        client_factory: Callable[..., Any] = AsyncMongoClient,
    ):
        """
        Initialize the pool without connecting.

        Args:
            url: MongoDB connection URL
            db_name: Database name
            server_selection_timeout_ms: Driver server selection timeout
            max_pool_size: Driver connection pool size
            client_factory: Callable building the driver client
        """
        self.url = url
        self.db_name = db_name
        self.server_selection_timeout_ms = server_selection_timeout_ms
        self.max_pool_size = max_pool_size
        self._client_factory = client_factory
        self._client: Any = None
        self._db: Optional[AsyncDatabase] = None
        self._connecting: Optional[asyncio.Task] = None
        self.connect_attempts = 0

    @property
    def is_connected(self) -> bool:
        return self._db is not None

    async def open(self) -> AsyncDatabase:
        """Connect eagerly. Equivalent to the first ``get_connection()``."""
        return await self.get_connection()

    async def get_connection(self) -> AsyncDatabase:
        """
        Get the ready database handle.

        Returns:
            The connected database

        Raises:
            ConfigurationError: If no connection URL is configured
        """
        if self._db is not None:
            return self._db

        if not self.url:
            logger.error("mongodb_url_missing")
            raise ConfigurationError("Missing MONGODB_URL")

        if self._connecting is None:
            self._connecting = asyncio.ensure_future(self._connect())

        attempt = self._connecting
        try:
            self._db = await asyncio.shield(attempt)
        except Exception:
            # Forget the failed attempt so the next caller tries again
            if self._connecting is attempt:
                self._connecting = None
            raise

        return self._db

    async def _connect(self) -> AsyncDatabase:
        self.connect_attempts += 1
        client = self._client_factory(
            self.url,
            serverSelectionTimeoutMS=self.server_selection_timeout_ms,
            maxPoolSize=self.max_pool_size,
        )

        try:
            await client.admin.command("ping")
        except Exception as e:
            logger.error("mongodb_connect_failed", error=str(e), database=self.db_name)
            await client.close()
            raise

        self._client = client
        logger.info("mongodb_connected", database=self.db_name, attempt=self.connect_attempts)
        return client[self.db_name]

    async def close(self) -> None:
        """Close the driver client and reset the memoized state."""
        if self._connecting is not None and not self._connecting.done():
            self._connecting.cancel()

        if self._client is not None:
            await self._client.close()
            logger.info("mongodb_connection_closed", database=self.db_name)

        self._client = None
        self._db = None
        self._connecting = None
