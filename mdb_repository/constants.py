"""
Constants for MDB_REPOSITORY.

Shared defaults used by the connection factory and the repositories.
"""

from typing import Final

# ============================================================================
# CONNECTION CONSTANTS
# ============================================================================

DEFAULT_MAX_POOL_SIZE: Final[int] = 50
"""Default maximum MongoDB connection pool size."""

DEFAULT_MIN_POOL_SIZE: Final[int] = 0
"""Default minimum MongoDB connection pool size."""

DEFAULT_SERVER_SELECTION_TIMEOUT_MS: Final[int] = 5000
"""Default server selection timeout in milliseconds."""

DEFAULT_MAX_IDLE_TIME_MS: Final[int] = 45000
"""Default maximum idle time before closing connections (milliseconds)."""

DEFAULT_APP_NAME: Final[str] = "MDB_REPOSITORY"
"""Application name reported to the server in the connection handshake."""

# ============================================================================
# REPOSITORY CONSTANTS
# ============================================================================

ID_FIELD: Final[str] = "_id"
"""Primary key field of every stored document."""

DUPLICATE_KEY_ERROR_CODE: Final[int] = 11000
"""Server error code for a unique index violation."""

DEFAULT_BULK_ORDERED: Final[bool] = False
"""Bulk writes run unordered unless the caller asks otherwise."""

DEFAULT_BYPASS_DOCUMENT_VALIDATION: Final[bool] = False
"""Writes never bypass server-side document validation by default."""

AMBIGUITY_PROBE_LIMIT: Final[int] = 2
"""Documents fetched by single-result reads to detect a second match."""
