"""
Configuration management for MDB_REPOSITORY.

RepositoryConfig collects everything the connection factory needs. It can be
built directly or from environment variables, and always validates through
Pydantic so bad values fail before a client is created.

Example:
    # Using environment variables
    config = RepositoryConfig.from_env()
    manager = ConnectionManager.from_config(config)

    # Or using direct parameters
    config = RepositoryConfig(mongo_uri="mongodb://localhost:27017/shop")
"""

import os
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pymongo import uri_parser
from pymongo.errors import ConfigurationError as PyMongoConfigurationError

from .constants import (
    DEFAULT_MAX_POOL_SIZE,
    DEFAULT_MIN_POOL_SIZE,
    DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
)
from .exceptions import ConfigurationError

_TRUE_VALUES = {"1", "true", "yes", "on"}


class RepositoryConfig(BaseModel):
    """
    MongoDB connection configuration.

    Attributes:
        mongo_uri: MongoDB connection URI, optionally carrying the database name
        db_name: Explicit database name (overrides the one embedded in the URI)
        max_pool_size: Maximum connection pool size
        min_pool_size: Minimum connection pool size
        server_selection_timeout_ms: Server selection timeout in milliseconds
        log_queries: Log every command sent to the server at DEBUG level
    """

    model_config = ConfigDict(frozen=True)

    mongo_uri: str = Field(..., min_length=1, description="MongoDB connection URI")
    db_name: str | None = Field(None, description="Database name")
    max_pool_size: int = Field(DEFAULT_MAX_POOL_SIZE, ge=1)
    min_pool_size: int = Field(DEFAULT_MIN_POOL_SIZE, ge=0)
    server_selection_timeout_ms: int = Field(DEFAULT_SERVER_SELECTION_TIMEOUT_MS, ge=1000)
    log_queries: bool = False

    @model_validator(mode="after")
    def _check_pool_bounds(self) -> "RepositoryConfig":
        if self.min_pool_size > self.max_pool_size:
            raise ValueError(
                f"min_pool_size ({self.min_pool_size}) cannot be greater than "
                f"max_pool_size ({self.max_pool_size})"
            )
        return self

    @classmethod
    def create(cls, **values: Any) -> "RepositoryConfig":
        """
        Build a config, converting validation failures to ConfigurationError.

        Raises:
            ConfigurationError: If any value is missing or invalid
        """
        try:
            return cls(**values)
        except ValidationError as e:
            first = e.errors()[0]
            key = ".".join(str(part) for part in first["loc"]) or None
            raise ConfigurationError(
                f"Invalid repository configuration: {first['msg']}",
                config_key=key,
                config_value=first.get("input") if key else None,
            ) from e

    @classmethod
    def from_env(cls, **overrides: Any) -> "RepositoryConfig":
        """
        Build a config from environment variables.

        Reads MONGO_URI, DB_NAME, MONGO_MAX_POOL_SIZE, MONGO_MIN_POOL_SIZE,
        MONGO_SERVER_SELECTION_TIMEOUT_MS and MONGO_LOG_QUERIES. Keyword
        overrides win over the environment.
        """
        values: dict[str, Any] = {
            "mongo_uri": os.getenv("MONGO_URI", ""),
            "db_name": os.getenv("DB_NAME") or None,
            "max_pool_size": os.getenv("MONGO_MAX_POOL_SIZE", str(DEFAULT_MAX_POOL_SIZE)),
            "min_pool_size": os.getenv("MONGO_MIN_POOL_SIZE", str(DEFAULT_MIN_POOL_SIZE)),
            "server_selection_timeout_ms": os.getenv(
                "MONGO_SERVER_SELECTION_TIMEOUT_MS", str(DEFAULT_SERVER_SELECTION_TIMEOUT_MS)
            ),
            "log_queries": os.getenv("MONGO_LOG_QUERIES", "false").lower() in _TRUE_VALUES,
        }
        values.update(overrides)
        return cls.create(**values)

    def resolved_db_name(self) -> str:
        """
        Return the database name to use.

        Raises:
            ConfigurationError: If neither db_name nor the URI names a database
        """
        if self.db_name:
            return self.db_name
        name = database_name_from_uri(self.mongo_uri)
        if not name:
            raise ConfigurationError(
                "No database name given: set DB_NAME or include it in the URI path",
                config_key="db_name",
            )
        return name


def database_name_from_uri(mongo_uri: str) -> str | None:
    """
    Extract the database name embedded in a connection string.

    Returns:
        The database name, or None if the URI has no path component

    Raises:
        ConfigurationError: If the URI cannot be parsed
    """
    try:
        parsed = uri_parser.parse_uri(mongo_uri)
    except (PyMongoConfigurationError, ValueError) as e:
        raise ConfigurationError(f"Invalid MongoDB URI: {e}", config_key="mongo_uri") from e
    return parsed.get("database")
