"""
Connection management for MDB_REPOSITORY.

Given a connection string, a connection manager yields the three handles a
repository consumes:

1. a client (owning the driver's connection pool),
2. the database named in the connection string (or overridden explicitly),
3. a fresh session per logical unit of work.

ConnectionManager uses the blocking pymongo client; AsyncConnectionManager
uses motor.

Usage:
    manager = ConnectionManager("mongodb://localhost:27017/shop")
    manager.initialize()
    with manager.start_session() as session:
        repo = MongoRepository(manager.database, session, Product)
    manager.shutdown()
"""

import logging
import time
from typing import Any

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import MongoClient
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

from ..config import RepositoryConfig, database_name_from_uri
from ..constants import (
    DEFAULT_APP_NAME,
    DEFAULT_MAX_IDLE_TIME_MS,
    DEFAULT_MAX_POOL_SIZE,
    DEFAULT_MIN_POOL_SIZE,
    DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
)
from ..exceptions import ConfigurationError, InitializationError
from ..observability import get_logger as get_contextual_logger
from .monitoring import CommandLogger

logger = logging.getLogger(__name__)
contextual_logger = get_contextual_logger(__name__)


class _BaseConnectionManager:
    """Connection settings and state shared by both managers."""

    def __init__(
        self,
        mongo_uri: str,
        db_name: str | None = None,
        max_pool_size: int = DEFAULT_MAX_POOL_SIZE,
        min_pool_size: int = DEFAULT_MIN_POOL_SIZE,
        server_selection_timeout_ms: int = DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
        log_queries: bool = False,
    ) -> None:
        """
        Initialize the connection manager.

        Args:
            mongo_uri: MongoDB connection URI
            db_name: Database name (defaults to the one embedded in the URI)
            max_pool_size: Maximum MongoDB connection pool size
            min_pool_size: Minimum MongoDB connection pool size
            server_selection_timeout_ms: Server selection timeout in milliseconds
            log_queries: Log every command at DEBUG level via CommandLogger
        """
        self.mongo_uri = mongo_uri
        self.db_name = db_name
        self.max_pool_size = max_pool_size
        self.min_pool_size = min_pool_size
        self.server_selection_timeout_ms = server_selection_timeout_ms
        self.log_queries = log_queries

        self._client: Any = None
        self._database: Any = None
        self._initialized: bool = False

    @classmethod
    def from_config(cls, config: RepositoryConfig):
        """Build a manager from a validated RepositoryConfig."""
        return cls(
            mongo_uri=config.mongo_uri,
            db_name=config.resolved_db_name(),
            max_pool_size=config.max_pool_size,
            min_pool_size=config.min_pool_size,
            server_selection_timeout_ms=config.server_selection_timeout_ms,
            log_queries=config.log_queries,
        )

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _resolve_db_name(self) -> str:
        name = self.db_name or database_name_from_uri(self.mongo_uri)
        if not name:
            raise ConfigurationError(
                "No database name given: pass db_name or include it in the URI path",
                config_key="db_name",
            )
        return name

    def _client_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {
            "serverSelectionTimeoutMS": self.server_selection_timeout_ms,
            "appname": DEFAULT_APP_NAME,
            "maxPoolSize": self.max_pool_size,
            "minPoolSize": self.min_pool_size,
            "maxIdleTimeMS": DEFAULT_MAX_IDLE_TIME_MS,
            "retryWrites": True,
            "retryReads": True,
        }
        if self.log_queries:
            options["event_listeners"] = [CommandLogger()]
        return options

    def _log_initializing(self) -> None:
        contextual_logger.info(
            "Initializing MongoDB connection",
            extra={
                "db_name": self.db_name,
                "max_pool_size": self.max_pool_size,
                "min_pool_size": self.min_pool_size,
                "log_queries": self.log_queries,
            },
        )

    def _initialization_failed(self, error: Exception, start_time: float) -> InitializationError:
        duration_ms = (time.time() - start_time) * 1000
        contextual_logger.critical(
            "MongoDB connection failed",
            extra={
                "error_type": type(error).__name__,
                "error": str(error),
                "duration_ms": round(duration_ms, 2),
            },
            exc_info=True,
        )
        if self._client is not None:
            self._client.close()
        self._client = None
        self._database = None
        return InitializationError(
            f"Failed to connect to MongoDB: {error}",
            mongo_uri=self.mongo_uri,
            db_name=self.db_name,
            context={"error_type": type(error).__name__},
        )

    def _initialization_succeeded(self, db_name: str, start_time: float) -> None:
        self._initialized = True
        duration_ms = (time.time() - start_time) * 1000
        contextual_logger.info(
            "MongoDB connection initialized successfully",
            extra={
                "db_name": db_name,
                "pool_size": f"{self.min_pool_size}-{self.max_pool_size}",
                "duration_ms": round(duration_ms, 2),
            },
        )

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError(
                f"{type(self).__name__} not initialized. Call initialize() first.",
            )

    @property
    def client(self) -> Any:
        """
        Get the MongoDB client.

        Raises:
            RuntimeError: If connection is not initialized
        """
        self._require_initialized()
        return self._client

    @property
    def database(self) -> Any:
        """
        Get the database handle resolved from the connection string.

        Raises:
            RuntimeError: If connection is not initialized
        """
        self._require_initialized()
        return self._database

    def shutdown(self) -> None:
        """
        Close the client and release the pool.

        This method is idempotent - it's safe to call multiple times.
        """
        if not self._initialized:
            return

        if self._client is not None:
            self._client.close()

        self._initialized = False
        self._client = None
        self._database = None
        contextual_logger.info("MongoDB connection closed")


class ConnectionManager(_BaseConnectionManager):
    """Blocking connection factory built on pymongo.MongoClient."""

    def initialize(self) -> None:
        """
        Connect, verify the connection with a ping, and resolve the database.

        Raises:
            ConfigurationError: If no database name can be determined
            InitializationError: If the server cannot be reached
        """
        if self._initialized:
            logger.warning("ConnectionManager already initialized. Skipping re-initialization.")
            return

        db_name = self._resolve_db_name()
        start_time = time.time()
        self._log_initializing()

        try:
            self._client = MongoClient(self.mongo_uri, **self._client_options())
            self._client.admin.command("ping")
            self._database = self._client[db_name]
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            raise self._initialization_failed(e, start_time) from e

        self._initialization_succeeded(db_name, start_time)

    def start_session(self, **kwargs: Any) -> Any:
        """
        Start a new client session (one per unit of work).

        Args:
            **kwargs: Session options such as ``causal_consistency``
        """
        return self.client.start_session(**kwargs)

    def __enter__(self) -> "ConnectionManager":
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.shutdown()
        return False


class AsyncConnectionManager(_BaseConnectionManager):
    """Asyncio connection factory built on motor's AsyncIOMotorClient."""

    async def initialize(self) -> None:
        """
        Connect, verify the connection with a ping, and resolve the database.

        Raises:
            ConfigurationError: If no database name can be determined
            InitializationError: If the server cannot be reached
        """
        if self._initialized:
            logger.warning(
                "AsyncConnectionManager already initialized. Skipping re-initialization."
            )
            return

        db_name = self._resolve_db_name()
        start_time = time.time()
        self._log_initializing()

        try:
            self._client = AsyncIOMotorClient(self.mongo_uri, **self._client_options())
            await self._client.admin.command("ping")
            self._database = self._client[db_name]
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            raise self._initialization_failed(e, start_time) from e

        self._initialization_succeeded(db_name, start_time)

    async def start_session(self, **kwargs: Any) -> Any:
        """Start a new motor client session (one per unit of work)."""
        return await self.client.start_session(**kwargs)

    async def __aenter__(self) -> "AsyncConnectionManager":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.shutdown()
        return False
