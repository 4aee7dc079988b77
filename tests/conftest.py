"""
Pytest configuration and shared fixtures for MDB_REPOSITORY tests.

This module provides:
- Mock pymongo database/collection/session fixtures
- Mock motor database/collection/session fixtures
- Isolation of the global DI container, request scope and logging context
- A real MongoDB (testcontainers) for integration tests
"""

import os
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from motor.motor_asyncio import (AsyncIOMotorClientSession,
                                 AsyncIOMotorCollection,
                                 AsyncIOMotorDatabase)
from pymongo import MongoClient
from pymongo.client_session import ClientSession
from pymongo.collection import Collection
from pymongo.database import Database

from mdb_repository.database import AsyncConnectionManager, ConnectionManager
from mdb_repository.di import Container
from mdb_repository.di.scopes import _request_scope
from mdb_repository.observability.logging import (_correlation_id,
                                                  _repository_context)


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: needs Docker to run MongoDB in a testcontainer"
    )


# ============================================================================
# RESULT HELPERS
# ============================================================================


def write_result(acknowledged: bool = True, **fields) -> MagicMock:
    """Build a driver write result with the given attributes."""
    return MagicMock(acknowledged=acknowledged, **fields)


# ============================================================================
# PYMONGO FIXTURES
# ============================================================================


@pytest.fixture
def mock_session() -> MagicMock:
    """Create a mock pymongo ClientSession."""
    return MagicMock(spec=ClientSession)


@pytest.fixture
def mock_collection() -> MagicMock:
    """Create a mock pymongo Collection with acknowledged write results."""
    collection = MagicMock(spec=Collection)
    collection.find.return_value = []
    collection.find_one.return_value = None
    collection.count_documents.return_value = 0
    collection.insert_one.return_value = write_result(inserted_id="test_id")
    collection.insert_many.return_value = write_result(inserted_ids=["id1", "id2"])
    collection.replace_one.return_value = write_result(matched_count=1, upserted_id=None)
    collection.update_many.return_value = write_result(modified_count=2)
    collection.delete_one.return_value = write_result(deleted_count=1)
    collection.delete_many.return_value = write_result(deleted_count=2)
    collection.bulk_write.return_value = write_result(
        inserted_count=0, upserted_count=0, upserted_ids={}
    )
    return collection


@pytest.fixture
def mock_database(mock_collection: MagicMock) -> MagicMock:
    """Create a mock pymongo Database whose collections are mock_collection."""
    db = MagicMock(spec=Database)
    db.name = "test_db"
    db.get_collection.return_value = mock_collection
    return db


# ============================================================================
# MOTOR FIXTURES
# ============================================================================


def async_cursor(docs: list) -> MagicMock:
    """Create a mock motor cursor supporting to_list() and async iteration."""
    cursor = MagicMock()
    cursor.to_list = AsyncMock(return_value=list(docs))
    cursor.__aiter__.return_value = list(docs)
    return cursor


@pytest.fixture
def mock_async_session() -> MagicMock:
    """Create a mock motor client session."""
    session = MagicMock(spec=AsyncIOMotorClientSession)
    session.end_session = AsyncMock()
    return session


@pytest.fixture
def mock_async_collection() -> MagicMock:
    """Create a mock motor collection with async methods."""
    collection = MagicMock(spec=AsyncIOMotorCollection)
    collection.find = MagicMock(return_value=async_cursor([]))
    collection.find_one = AsyncMock(return_value=None)
    collection.count_documents = AsyncMock(return_value=0)
    collection.insert_one = AsyncMock(return_value=write_result(inserted_id="test_id"))
    collection.insert_many = AsyncMock(return_value=write_result(inserted_ids=["id1", "id2"]))
    collection.replace_one = AsyncMock(
        return_value=write_result(matched_count=1, upserted_id=None)
    )
    collection.update_many = AsyncMock(return_value=write_result(modified_count=2))
    collection.delete_one = AsyncMock(return_value=write_result(deleted_count=1))
    collection.delete_many = AsyncMock(return_value=write_result(deleted_count=2))
    collection.bulk_write = AsyncMock(
        return_value=write_result(inserted_count=0, upserted_count=0, upserted_ids={})
    )
    collection.rename = AsyncMock()
    return collection


@pytest.fixture
def mock_async_database(mock_async_collection: MagicMock) -> MagicMock:
    """Create a mock motor database whose collections are mock_async_collection."""
    db = MagicMock(spec=AsyncIOMotorDatabase)
    db.name = "test_db"
    db.get_collection = MagicMock(return_value=mock_async_collection)
    db.drop_collection = AsyncMock()
    return db


# ============================================================================
# ISOLATION
# ============================================================================


@pytest.fixture(autouse=True)
def reset_di_state():
    """Reset the global container and any leftover request scope."""
    Container.reset_global()
    _request_scope.set(None)
    yield
    _request_scope.set(None)
    Container.reset_global()


@pytest.fixture(autouse=True)
def reset_logging_context():
    """Clear any correlation id or repository context a test left behind."""
    yield
    _correlation_id.set(None)
    _repository_context.set({})


# ============================================================================
# TESTCONTAINERS FIXTURES (Real MongoDB for Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def mongodb_container():
    """
    Start a MongoDB container for integration tests.

    Session-scoped: the container starts once and is shared by every
    integration test. Skips when testcontainers or Docker is unavailable.
    """
    try:
        from docker.errors import DockerException
        from testcontainers.mongodb import MongoDbContainer
    except ImportError:
        pytest.skip("testcontainers not installed. Install with: pip install -e '.[test]'")

    container = MongoDbContainer("mongo:7.0")
    try:
        container.start()
    except DockerException as e:
        pytest.skip(f"Docker is not available: {e}")
    try:
        yield container
    finally:
        container.stop()


@pytest.fixture(scope="session")
def mongodb_uri(mongodb_container) -> str:
    """Connection string of the container, without a database path."""
    return mongodb_container.get_connection_url()


@pytest.fixture
def integration_db_name() -> str:
    """Unique database name per test; dropped afterwards."""
    return f"test_db_{os.getpid()}_{uuid.uuid4().hex[:8]}"


@pytest.fixture
def mongo_connection(mongodb_uri, integration_db_name):
    """Initialized blocking ConnectionManager on a fresh database."""
    manager = ConnectionManager(mongodb_uri, db_name=integration_db_name)
    manager.initialize()
    yield manager
    manager.client.drop_database(integration_db_name)
    manager.shutdown()


@pytest.fixture
def motor_connection(mongodb_uri, integration_db_name):
    """
    Uninitialized AsyncConnectionManager on a fresh database.

    Tests enter it with ``async with`` so the motor client lives on the
    test's event loop.
    """
    yield AsyncConnectionManager(mongodb_uri, db_name=integration_db_name)
    with MongoClient(mongodb_uri) as client:
        client.drop_database(integration_db_name)
