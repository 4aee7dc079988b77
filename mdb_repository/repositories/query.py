"""
Lazy, composable queries over a repository collection.

A query only describes what to read. Nothing is sent to the server until it
is iterated or materialized, and every iteration opens a fresh cursor, so the
same query object can be evaluated any number of times.

Usage:
    recent = (
        repo.find_all_as_queryable({"status": "open"})
        .sort("_id", DESCENDING)
        .limit(10)
    )
    for order in recent:
        ...
    first_page = recent.to_list()
"""

from collections.abc import AsyncIterator, Callable, Iterator, Mapping, Sequence
from typing import Any, Generic, TypeVar, Union

from pymongo import ASCENDING

from ..entities import Identifiable
from .operations import store_call

T = TypeVar("T", bound=Identifiable)
Q = TypeVar("Q", bound="_BaseQuery")

SortSpec = Union[str, Sequence[tuple[str, int]]]


class _BaseQuery(Generic[T]):
    """Immutable query description shared by the blocking and asyncio queries."""

    def __init__(
        self,
        collection_factory: Callable[[], Any],
        entity_type: type[T],
        collection_name: str,
        filter: Mapping[str, Any] | None = None,
        *,
        session: Any = None,
        sort: list[tuple[str, int]] | None = None,
        skip: int = 0,
        limit: int = 0,
        projection: Mapping[str, Any] | None = None,
    ):
        self._collection_factory = collection_factory
        self._entity_type = entity_type
        self._collection_name = collection_name
        self._filter: dict[str, Any] = dict(filter or {})
        self._session = session
        self._sort = list(sort or [])
        self._skip = skip
        self._limit = limit
        self._projection = dict(projection) if projection is not None else None

    def _replace(self: Q, **changes: Any) -> Q:
        params = {
            "filter": self._filter,
            "session": self._session,
            "sort": self._sort,
            "skip": self._skip,
            "limit": self._limit,
            "projection": self._projection,
        }
        params.update(changes)
        return type(self)(
            self._collection_factory,
            self._entity_type,
            self._collection_name,
            **params,
        )

    @property
    def filter(self) -> dict[str, Any]:
        return dict(self._filter)

    def where(self: Q, filter: Mapping[str, Any]) -> Q:
        """Narrow the query; combined with the existing filter via ``$and``."""
        if not filter:
            return self
        if not self._filter:
            return self._replace(filter=dict(filter))
        return self._replace(filter={"$and": [self._filter, dict(filter)]})

    def sort(self: Q, key_or_list: SortSpec, direction: int = ASCENDING) -> Q:
        """Append sort keys, either one field name or a list of (field, direction)."""
        if isinstance(key_or_list, str):
            keys = [(key_or_list, direction)]
        else:
            keys = list(key_or_list)
        return self._replace(sort=self._sort + keys)

    def skip(self: Q, count: int) -> Q:
        return self._replace(skip=count)

    def limit(self: Q, count: int) -> Q:
        return self._replace(limit=count)

    def project(self: Q, projection: Mapping[str, Any]) -> Q:
        """
        Restrict returned fields.

        A projected query yields raw documents instead of entities, since the
        partial document may not satisfy the entity's required fields.
        """
        return self._replace(projection=projection)

    def _cursor(self, limit: int | None = None) -> Any:
        return self._collection_factory().find(
            self._filter,
            self._projection,
            session=self._session,
            sort=self._sort or None,
            skip=self._skip,
            limit=self._limit if limit is None else limit,
        )

    def _convert(self, doc: dict[str, Any]) -> Any:
        if self._projection is not None:
            return doc
        return self._entity_type.from_document(doc)

    def _count_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {"session": self._session}
        if self._skip:
            options["skip"] = self._skip
        if self._limit:
            options["limit"] = self._limit
        return options

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self._entity_type.__name__}, "
            f"collection={self._collection_name!r}, filter={self._filter!r})"
        )


class Query(_BaseQuery[T]):
    """Lazy query evaluated with the blocking pymongo driver."""

    def __iter__(self) -> Iterator[T]:
        with store_call("query", self._collection_name):
            for doc in self._cursor():
                yield self._convert(doc)

    def to_list(self, *, timeout: float | None = None) -> list[T]:
        with store_call("query", self._collection_name, timeout):
            return [self._convert(doc) for doc in self._cursor()]

    def first(self, *, timeout: float | None = None) -> T | None:
        with store_call("query", self._collection_name, timeout):
            for doc in self._cursor(limit=1):
                return self._convert(doc)
        return None

    def count(self, *, timeout: float | None = None) -> int:
        with store_call("query.count", self._collection_name, timeout):
            return self._collection_factory().count_documents(
                self._filter, **self._count_options()
            )


class AsyncQuery(_BaseQuery[T]):
    """Lazy query evaluated with the motor driver."""

    def __aiter__(self) -> AsyncIterator[T]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[T]:
        with store_call("query", self._collection_name):
            async for doc in self._cursor():
                yield self._convert(doc)

    async def to_list(self, *, timeout: float | None = None) -> list[T]:
        with store_call("query", self._collection_name, timeout):
            docs = await self._cursor().to_list(length=None)
        return [self._convert(doc) for doc in docs]

    async def first(self, *, timeout: float | None = None) -> T | None:
        with store_call("query", self._collection_name, timeout):
            docs = await self._cursor(limit=1).to_list(length=1)
        return self._convert(docs[0]) if docs else None

    async def count(self, *, timeout: float | None = None) -> int:
        with store_call("query.count", self._collection_name, timeout):
            return await self._collection_factory().count_documents(
                self._filter, **self._count_options()
            )
