"""
Unit of Work Pattern

A unit of work owns one session and hands out repositories bound to it, so
every read and write in a logical unit shares the same causal-consistency
scope. It does not start or commit transactions; callers that need one use
the session directly.
"""

import contextlib
import inspect
import logging
import uuid
from typing import Any, TypeVar

from ..entities import Identifiable
from ..observability import repository_context
from .async_mongo import AsyncMongoRepository
from .mongo import MongoRepository

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Identifiable)


class _UnitOfWorkBase:
    """Repository cache and entity registry shared by both units of work."""

    _repository_class: type = MongoRepository

    def __init__(
        self,
        database: Any,
        session: Any,
        entity_registry: dict[str, type[Identifiable]] | None = None,
        owns_session: bool = False,
    ):
        """
        Initialize the Unit of Work.

        Args:
            database: Driver database handle
            session: Session shared by every repository of this unit
            entity_registry: Optional mapping of collection names to entity classes
            owns_session: End the session when the unit is disposed
        """
        self._database = database
        self._session = session
        self._owns_session = owns_session
        self._repositories: dict[tuple[type, str], Any] = {}
        self._entity_registry: dict[str, type[Identifiable]] = dict(entity_registry or {})
        self._id = uuid.uuid4().hex[:12]
        self._context = contextlib.ExitStack()

    @property
    def database(self) -> Any:
        return self._database

    @property
    def session(self) -> Any:
        return self._session

    @property
    def id(self) -> str:
        """Short identifier added to log records as ``unit_of_work``."""
        return self._id

    def _enter_context(self) -> None:
        # Records logged inside the with block carry this unit's id.
        self._context.enter_context(repository_context(unit_of_work=self._id))

    def register_entity(self, collection_name: str, entity_type: type[Identifiable]) -> None:
        """
        Register an entity class for attribute access (``uow.<collection_name>``).
        """
        self._entity_registry[collection_name] = entity_type

    def repository(self, entity_type: type[T], collection_name: str | None = None) -> Any:
        """
        Get or create the repository for an entity type.

        Args:
            entity_type: Entity type (any Identifiable class)
            collection_name: Collection override (defaults to the class name)

        Returns:
            Repository bound to this unit's database and session
        """
        name = collection_name or entity_type.__name__
        key = (entity_type, name)
        if key not in self._repositories:
            self._repositories[key] = self._repository_class(
                self._database, self._session, entity_type, name
            )
            logger.debug(
                f"Unit of work {self._id} created repository for '{name}' "
                f"with entity {entity_type.__name__}"
            )
        return self._repositories[key]

    def __getattr__(self, name: str) -> Any:
        """
        Access repositories of registered entities via attribute syntax.

        Example:
            uow.register_entity("products", Product)
            uow.products.find_all({"price": {"$lt": 10}})
        """
        if name.startswith("_"):
            raise AttributeError(f"'{type(self).__name__}' has no attribute '{name}'")

        entity_type = self._entity_registry.get(name)
        if entity_type is None:
            raise AttributeError(
                f"No entity registered for collection '{name}'. "
                f"Call register_entity('{name}', EntityClass) first."
            )
        return self.repository(entity_type, name)


class UnitOfWork(_UnitOfWorkBase):
    """
    Blocking unit of work.

    Usage:
        with UnitOfWork.begin(manager) as uow:
            products = uow.repository(Product)
            products.add(Product("A-100"))
    """

    _repository_class = MongoRepository

    @classmethod
    def begin(cls, connection: Any, **kwargs: Any) -> "UnitOfWork":
        """Start a unit of work with a fresh session from a ConnectionManager."""
        return cls(connection.database, connection.start_session(), owns_session=True, **kwargs)

    def dispose(self) -> None:
        """
        Dispose of the UnitOfWork, clearing cached repositories.

        Ends the session if this unit started it.
        """
        self._repositories.clear()
        if self._owns_session:
            self._session.end_session()
        logger.debug(f"UnitOfWork {self._id} disposed")

    def __enter__(self) -> "UnitOfWork":
        self._enter_context()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        try:
            self.dispose()
        finally:
            self._context.close()
        return False


class AsyncUnitOfWork(_UnitOfWorkBase):
    """
    Asyncio unit of work handing out AsyncMongoRepository instances.

    Usage:
        async with await AsyncUnitOfWork.begin(manager) as uow:
            await uow.repository(Product).add(Product("A-100"))
    """

    _repository_class = AsyncMongoRepository

    @classmethod
    async def begin(cls, connection: Any, **kwargs: Any) -> "AsyncUnitOfWork":
        """Start a unit of work with a fresh session from an AsyncConnectionManager."""
        session = await connection.start_session()
        return cls(connection.database, session, owns_session=True, **kwargs)

    async def dispose(self) -> None:
        self._repositories.clear()
        if self._owns_session:
            result = self._session.end_session()
            if inspect.isawaitable(result):
                await result
        logger.debug(f"AsyncUnitOfWork {self._id} disposed")

    async def __aenter__(self) -> "AsyncUnitOfWork":
        self._enter_context()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        try:
            await self.dispose()
        finally:
            self._context.close()
        return False
