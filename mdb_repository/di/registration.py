"""
Container registrations for MongoDB repositories.

Wires a connection string into a Container so that repositories can be
resolved by entity type:

    container = Container()
    add_mongo(container, "mongodb://localhost:27017/shop", log_queries=True)
    add_repositories(container)

    with ScopeManager.request_scope():
        products = container.resolve(Repository[Product])

The client and database are singletons. The session is request-scoped and
ended when the scope closes. Repositories are transient.

For motor, the session has to be awaited, so it is opened explicitly:

    add_async_mongo(container, "mongodb://localhost:27017/shop")
    add_repositories(container)

    async with ScopeManager.request_scope():
        await open_async_session(container)
        products = container.resolve(AsyncRepository[Product])
"""

import logging
from typing import Any

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo import MongoClient
from pymongo.client_session import ClientSession
from pymongo.database import Database

from ..config import RepositoryConfig
from ..database import AsyncConnectionManager, ConnectionManager
from ..repositories import (
    AsyncMongoRepository,
    AsyncRepository,
    AsyncUnitOfWork,
    MongoRepository,
    Repository,
    UnitOfWork,
)
from .container import Container
from .scopes import Scope, ScopeManager

logger = logging.getLogger(__name__)


def _manager_options(
    connection: "str | RepositoryConfig", log_queries: bool, options: dict[str, Any]
) -> dict[str, Any]:
    if isinstance(connection, RepositoryConfig):
        return {
            "mongo_uri": connection.mongo_uri,
            "db_name": connection.resolved_db_name(),
            "max_pool_size": connection.max_pool_size,
            "min_pool_size": connection.min_pool_size,
            "server_selection_timeout_ms": connection.server_selection_timeout_ms,
            "log_queries": connection.log_queries or log_queries,
            **options,
        }
    return {"mongo_uri": connection, "log_queries": log_queries, **options}


def add_mongo(
    container: Container,
    connection: "str | RepositoryConfig",
    *,
    log_queries: bool = False,
    **options: Any,
) -> Container:
    """
    Register the blocking pymongo stack.

    Registers ConnectionManager, MongoClient and Database as singletons and
    ClientSession and UnitOfWork per request scope. The connection is opened
    on first resolve.

    Args:
        container: Container to register into
        connection: Connection string or a RepositoryConfig
        log_queries: Log every command at DEBUG level
        **options: Extra ConnectionManager arguments (db_name, max_pool_size, ...)

    Returns:
        The container, for chaining
    """
    manager_options = _manager_options(connection, log_queries, options)

    def _connect(c: Container) -> ConnectionManager:
        manager = ConnectionManager(**manager_options)
        manager.initialize()
        return manager

    container.register_factory(ConnectionManager, _connect, Scope.SINGLETON)
    container.register_factory(
        MongoClient, lambda c: c.resolve(ConnectionManager).client, Scope.SINGLETON
    )
    container.register_factory(
        Database, lambda c: c.resolve(ConnectionManager).database, Scope.SINGLETON
    )
    container.register_factory(
        ClientSession, lambda c: c.resolve(ConnectionManager).start_session(), Scope.REQUEST
    )
    container.register_factory(
        UnitOfWork,
        lambda c: UnitOfWork(c.resolve(Database), c.resolve(ClientSession)),
        Scope.REQUEST,
    )
    logger.debug("Registered pymongo client, database and session")
    return container


def _session_not_open(container: Container) -> Any:
    raise RuntimeError(
        "No motor session in this request scope. "
        "Call 'await open_async_session(container)' after entering the scope."
    )


def add_async_mongo(
    container: Container,
    connection: "str | RepositoryConfig",
    *,
    log_queries: bool = False,
    **options: Any,
) -> Container:
    """
    Register the motor stack.

    Registers AsyncConnectionManager, AsyncIOMotorClient and
    AsyncIOMotorDatabase as singletons and AsyncUnitOfWork per request
    scope. The session is supplied per scope by open_async_session().

    Returns:
        The container, for chaining
    """
    manager = AsyncConnectionManager(**_manager_options(connection, log_queries, options))

    container.register_instance(AsyncConnectionManager, manager)
    container.register_factory(
        AsyncIOMotorClient, lambda c: c.resolve(AsyncConnectionManager).client, Scope.SINGLETON
    )
    container.register_factory(
        AsyncIOMotorDatabase,
        lambda c: c.resolve(AsyncConnectionManager).database,
        Scope.SINGLETON,
    )
    container.register_factory(AsyncIOMotorClientSession, _session_not_open, Scope.REQUEST)
    container.register_factory(
        AsyncUnitOfWork,
        lambda c: AsyncUnitOfWork(
            c.resolve(AsyncIOMotorDatabase), c.resolve(AsyncIOMotorClientSession)
        ),
        Scope.REQUEST,
    )
    logger.debug("Registered motor client, database and session")
    return container


async def initialize_async_mongo(container: Container) -> AsyncConnectionManager:
    """Connect the registered AsyncConnectionManager (idempotent)."""
    manager = container.resolve(AsyncConnectionManager)
    if not manager.initialized:
        await manager.initialize()
    return manager


async def open_async_session(container: Container, **kwargs: Any) -> Any:
    """
    Start a motor session and store it in the current request scope.

    The session is ended when the scope closes.

    Raises:
        RuntimeError: If called outside a request scope
    """
    existing = (ScopeManager.get_request_scope() or {}).get(AsyncIOMotorClientSession)
    if existing is not None:
        return existing

    manager = await initialize_async_mongo(container)
    session = await manager.start_session(**kwargs)
    ScopeManager.put(AsyncIOMotorClientSession, session)
    return session


def _sync_repository(container: Container, args: tuple[Any, ...]) -> MongoRepository:
    return MongoRepository(container.resolve(Database), container.resolve(ClientSession), *args)


def _async_repository(container: Container, args: tuple[Any, ...]) -> AsyncMongoRepository:
    return AsyncMongoRepository(
        container.resolve(AsyncIOMotorDatabase),
        container.resolve(AsyncIOMotorClientSession),
        *args,
    )


def add_repositories(container: Container) -> Container:
    """
    Bind Repository[X] to MongoRepository and AsyncRepository[X] to
    AsyncMongoRepository for every entity type X, as transient services.
    """
    container.register_open_generic(Repository, _sync_repository, Scope.TRANSIENT)
    container.register_open_generic(AsyncRepository, _async_repository, Scope.TRANSIENT)
    return container


__all__ = [
    "add_mongo",
    "add_async_mongo",
    "add_repositories",
    "initialize_async_mongo",
    "open_async_session",
]
