"""
MDB_REPOSITORY - Generic MongoDB Repositories

Single-collection repositories over pymongo and motor, with session-bound
units of work and container registrations for dependency injection.
"""

# Connections
from .config import RepositoryConfig
from .database import AsyncConnectionManager, CommandLogger, ConnectionManager
# Dependency injection
from .di import (Container, Scope, ScopeManager, add_async_mongo, add_mongo,
                 add_repositories, inject, open_async_session)
# Entities and errors
from .entities import Entity, Identifiable
from .exceptions import (AmbiguousResultError, ConfigurationError,
                         ConflictError, InitializationError,
                         InvalidArgumentError, RepositoryError,
                         RepositoryOperationError, StoreFailureError)
# Repositories
from .repositories import (AsyncMongoRepository, AsyncQuery, AsyncRepository,
                           AsyncUnitOfWork, MongoRepository, Query,
                           Repository, UnitOfWork, by_id)

__version__ = "0.1.0"

__all__ = [
    # Repositories
    "Repository",
    "AsyncRepository",
    "MongoRepository",
    "AsyncMongoRepository",
    "Query",
    "AsyncQuery",
    "UnitOfWork",
    "AsyncUnitOfWork",
    "Entity",
    "Identifiable",
    "by_id",
    # Connections
    "RepositoryConfig",
    "ConnectionManager",
    "AsyncConnectionManager",
    "CommandLogger",
    # DI
    "Container",
    "Scope",
    "ScopeManager",
    "inject",
    "add_mongo",
    "add_async_mongo",
    "add_repositories",
    "open_async_session",
    # Errors
    "RepositoryError",
    "RepositoryOperationError",
    "InvalidArgumentError",
    "ConflictError",
    "AmbiguousResultError",
    "StoreFailureError",
    "ConfigurationError",
    "InitializationError",
]
