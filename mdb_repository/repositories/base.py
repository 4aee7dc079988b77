"""
Abstract Repository Pattern

Defines the generic single-collection repository interface. Calling code
depends on Repository[T] (or AsyncRepository[T]) and never on a concrete
driver binding.

Conventions shared by every operation:
    - ``session``: keyword-only override of the session bound at construction
    - ``timeout``: keyword-only deadline in seconds for the single store call
    - filters, updates and options are MongoDB mappings passed to the driver
      untouched
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import Any, Generic, TypeVar

from ..entities import Identifiable
from .operations import Condition
from .query import AsyncQuery, Query

T = TypeVar("T", bound=Identifiable)


class Repository(ABC, Generic[T]):
    """
    Blocking repository interface for one entity type.

    Example:
        class OrderService:
            def __init__(self, orders: Repository[Order]):
                self._orders = orders

            def open_orders(self) -> list[Order]:
                return self._orders.find_all({"status": "open"})
    """

    # Reads

    @abstractmethod
    def get_last_added(self, *, session: Any = None, timeout: float | None = None) -> T | None:
        """
        Get the entity with the greatest id.

        Ordering is the store's native ordering of ``_id`` values; it is only
        chronological when the ids encode insertion time (as ObjectIds do).

        Returns:
            Entity with the greatest id, or None if the collection is empty
        """

    @abstractmethod
    def get_all(self, *, session: Any = None, timeout: float | None = None) -> list[T]:
        """Get every entity in the collection."""

    @abstractmethod
    def get_all_as_queryable(self, *, session: Any = None) -> Query[T]:
        """Lazy query over the whole collection."""

    @abstractmethod
    def find_all_as_queryable(
        self, filter: Mapping[str, Any], *, session: Any = None
    ) -> Query[T]:
        """Lazy query over the entities matching ``filter``."""

    @abstractmethod
    def find_by_id(
        self, id: str, *, session: Any = None, timeout: float | None = None
    ) -> T | None:
        """
        Get a single entity by id.

        Args:
            id: Entity id

        Returns:
            Entity if found, None otherwise

        Raises:
            AmbiguousResultError: If more than one document carries the id
        """

    @abstractmethod
    def find_all(
        self, filter: Mapping[str, Any], *, session: Any = None, timeout: float | None = None
    ) -> list[T]:
        """
        Find every entity matching a filter.

        Args:
            filter: MongoDB filter document

        Returns:
            List of matching entities (possibly empty)
        """

    @abstractmethod
    def find(
        self, filter: Mapping[str, Any], *, session: Any = None, timeout: float | None = None
    ) -> T | None:
        """
        Find the single entity matching a filter.

        Args:
            filter: MongoDB filter document

        Returns:
            The matching entity, or None if nothing matches

        Raises:
            AmbiguousResultError: If more than one document matches
        """

    @abstractmethod
    def exists(self, id: str, *, session: Any = None, timeout: float | None = None) -> bool:
        """Check whether an entity with this id exists."""

    @abstractmethod
    def exists_where(
        self, filter: Mapping[str, Any], *, session: Any = None, timeout: float | None = None
    ) -> bool:
        """Check whether any entity matches a filter."""

    @abstractmethod
    def count(
        self,
        filter: Mapping[str, Any] | None = None,
        *,
        session: Any = None,
        timeout: float | None = None,
    ) -> int:
        """
        Count entities matching a filter.

        The count is exact; estimated counts are never used.
        """

    # Writes

    @abstractmethod
    def add(
        self,
        entity: T,
        *,
        bypass_document_validation: bool = False,
        session: Any = None,
        timeout: float | None = None,
    ) -> None:
        """
        Insert a new entity.

        The id assigned by the store is written back to ``entity.id``.

        Raises:
            ConflictError: If an entity with the same id already exists
        """

    @abstractmethod
    def add_all(
        self,
        entities: Iterable[T],
        *,
        ordered: bool = True,
        bypass_document_validation: bool = False,
        session: Any = None,
        timeout: float | None = None,
    ) -> None:
        """
        Insert a batch of entities.

        Partial success follows the store's batch-insert semantics for the
        requested ordering.

        Raises:
            InvalidArgumentError: If the batch is empty
            ConflictError: If any id already exists
        """

    @abstractmethod
    def add_or_update(
        self,
        condition: Mapping[str, Any],
        entity: T,
        *,
        session: Any = None,
        timeout: float | None = None,
    ) -> T | None:
        """
        Replace the entity matching ``condition``, inserting it if none matches.

        Returns:
            ``entity`` if the write was acknowledged, None otherwise
        """

    @abstractmethod
    def bulk_add_or_update(
        self,
        condition: Condition,
        records: Iterable[T | None],
        *,
        ordered: bool = False,
        bypass_document_validation: bool = False,
        session: Any = None,
        timeout: float | None = None,
    ) -> int:
        """
        Upsert-replace a batch of records in one round trip.

        ``condition`` is either one filter shared by every record, so every
        record targets the same document, or a callable returning the filter
        for each record (see ``by_id``). None records are skipped. Records
        without an id receive the id the store generated for their upsert.

        Returns:
            Number of documents newly inserted (replacements are not counted)
        """

    @abstractmethod
    def bulk_insert(
        self,
        condition: Condition,
        records: Iterable[T | None],
        *,
        ordered: bool = False,
        bypass_document_validation: bool = False,
        session: Any = None,
        timeout: float | None = None,
    ) -> int:
        """
        Insert a batch of records in one round trip.

        With a per-record callable (see ``by_id``) each insert is guarded: a
        record is written only when its own filter matches nothing, and a
        document that already matches is left unchanged. A shared filter
        mapping cannot distinguish records, so every record is inserted as
        is and an existing identifier raises ConflictError. None records are
        skipped. Records without an id receive the id the store generated.

        Returns:
            Number of documents inserted
        """

    @abstractmethod
    def update(
        self, entity: T, key: str, *, session: Any = None, timeout: float | None = None
    ) -> T | None:
        """
        Replace the entity whose id is ``key``. Never inserts.

        Returns:
            ``entity`` if the write was acknowledged, None otherwise
        """

    @abstractmethod
    def update_where(
        self,
        condition: Mapping[str, Any],
        entity: T,
        *,
        session: Any = None,
        timeout: float | None = None,
    ) -> T | None:
        """Replace the entity matching ``condition``. Never inserts."""

    @abstractmethod
    def update_all(
        self,
        filter: Mapping[str, Any],
        update: Mapping[str, Any],
        *,
        session: Any = None,
        timeout: float | None = None,
    ) -> bool:
        """
        Apply an update document to every entity matching ``filter``.

        Returns:
            True if the write was acknowledged
        """

    @abstractmethod
    def update_fields(
        self,
        condition: Mapping[str, Any],
        update: Mapping[str, Any],
        *,
        session: Any = None,
        timeout: float | None = None,
    ) -> bool:
        """
        Apply a field-level update to every match, never upserting.

        Example:
            repo.update_fields({"sku": "A-100"}, {"$set": {"price": 12.0}})
        """

    # Deletes

    @abstractmethod
    def delete(self, key: str, *, session: Any = None, timeout: float | None = None) -> bool:
        """Delete the entity whose id is ``key``. Returns acknowledgement."""

    @abstractmethod
    def delete_where(
        self, filter: Mapping[str, Any], *, session: Any = None, timeout: float | None = None
    ) -> bool:
        """Delete every entity matching ``filter``. Returns acknowledgement."""

    # Administration

    @abstractmethod
    def drop(
        self,
        collection_name: str | None = None,
        *,
        session: Any = None,
        timeout: float | None = None,
    ) -> None:
        """Drop the bound collection, or ``collection_name`` when given."""

    @abstractmethod
    def copy_from(
        self,
        from_collection: str,
        collection_name: str | None = None,
        *,
        session: Any = None,
        timeout: float | None = None,
        **rename_options: Any,
    ) -> None:
        """
        Replace the destination collection with ``from_collection``.

        Drops the destination (the bound collection unless ``collection_name``
        is given), then renames ``from_collection`` onto it. The two steps are
        not atomic: a failure after the drop leaves the destination absent.

        Args:
            from_collection: Source collection, consumed by the rename
            collection_name: Destination override
            **rename_options: Extra rename options (e.g. ``dropTarget``)
        """


class AsyncRepository(ABC, Generic[T]):
    """
    Asyncio repository interface for one entity type.

    Mirrors Repository method for method; every store-touching method is a
    coroutine. See Repository for the full contracts.
    """

    @abstractmethod
    async def get_last_added(
        self, *, session: Any = None, timeout: float | None = None
    ) -> T | None:
        pass

    @abstractmethod
    async def get_all(self, *, session: Any = None, timeout: float | None = None) -> list[T]:
        pass

    @abstractmethod
    def get_all_as_queryable(self, *, session: Any = None) -> AsyncQuery[T]:
        """Lazy query over the whole collection (not a coroutine)."""

    @abstractmethod
    def find_all_as_queryable(
        self, filter: Mapping[str, Any], *, session: Any = None
    ) -> AsyncQuery[T]:
        """Lazy query over matching entities (not a coroutine)."""

    @abstractmethod
    async def find_by_id(
        self, id: str, *, session: Any = None, timeout: float | None = None
    ) -> T | None:
        pass

    @abstractmethod
    async def find_all(
        self, filter: Mapping[str, Any], *, session: Any = None, timeout: float | None = None
    ) -> list[T]:
        pass

    @abstractmethod
    async def find(
        self, filter: Mapping[str, Any], *, session: Any = None, timeout: float | None = None
    ) -> T | None:
        pass

    @abstractmethod
    async def exists(self, id: str, *, session: Any = None, timeout: float | None = None) -> bool:
        pass

    @abstractmethod
    async def exists_where(
        self, filter: Mapping[str, Any], *, session: Any = None, timeout: float | None = None
    ) -> bool:
        pass

    @abstractmethod
    async def count(
        self,
        filter: Mapping[str, Any] | None = None,
        *,
        session: Any = None,
        timeout: float | None = None,
    ) -> int:
        pass

    @abstractmethod
    async def add(
        self,
        entity: T,
        *,
        bypass_document_validation: bool = False,
        session: Any = None,
        timeout: float | None = None,
    ) -> None:
        pass

    @abstractmethod
    async def add_all(
        self,
        entities: Iterable[T],
        *,
        ordered: bool = True,
        bypass_document_validation: bool = False,
        session: Any = None,
        timeout: float | None = None,
    ) -> None:
        pass

    @abstractmethod
    async def add_or_update(
        self,
        condition: Mapping[str, Any],
        entity: T,
        *,
        session: Any = None,
        timeout: float | None = None,
    ) -> T | None:
        pass

    @abstractmethod
    async def bulk_add_or_update(
        self,
        condition: Condition,
        records: Iterable[T | None],
        *,
        ordered: bool = False,
        bypass_document_validation: bool = False,
        session: Any = None,
        timeout: float | None = None,
    ) -> int:
        pass

    @abstractmethod
    async def bulk_insert(
        self,
        condition: Condition,
        records: Iterable[T | None],
        *,
        ordered: bool = False,
        bypass_document_validation: bool = False,
        session: Any = None,
        timeout: float | None = None,
    ) -> int:
        pass

    @abstractmethod
    async def update(
        self, entity: T, key: str, *, session: Any = None, timeout: float | None = None
    ) -> T | None:
        pass

    @abstractmethod
    async def update_where(
        self,
        condition: Mapping[str, Any],
        entity: T,
        *,
        session: Any = None,
        timeout: float | None = None,
    ) -> T | None:
        pass

    @abstractmethod
    async def update_all(
        self,
        filter: Mapping[str, Any],
        update: Mapping[str, Any],
        *,
        session: Any = None,
        timeout: float | None = None,
    ) -> bool:
        pass

    @abstractmethod
    async def update_fields(
        self,
        condition: Mapping[str, Any],
        update: Mapping[str, Any],
        *,
        session: Any = None,
        timeout: float | None = None,
    ) -> bool:
        pass

    @abstractmethod
    async def delete(self, key: str, *, session: Any = None, timeout: float | None = None) -> bool:
        pass

    @abstractmethod
    async def delete_where(
        self, filter: Mapping[str, Any], *, session: Any = None, timeout: float | None = None
    ) -> bool:
        pass

    @abstractmethod
    async def drop(
        self,
        collection_name: str | None = None,
        *,
        session: Any = None,
        timeout: float | None = None,
    ) -> None:
        pass

    @abstractmethod
    async def copy_from(
        self,
        from_collection: str,
        collection_name: str | None = None,
        *,
        session: Any = None,
        timeout: float | None = None,
        **rename_options: Any,
    ) -> None:
        pass
