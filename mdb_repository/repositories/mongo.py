"""
MongoDB Repository Implementation

Implements the Repository interface on the blocking pymongo driver. Every
operation resolves the collection afresh from the database handle, threads
the session through the driver call, and maps driver errors to repository
exceptions.
"""

import contextlib
import logging
import time
from collections.abc import Iterable, Iterator, Mapping
from typing import Any, Generic, TypeVar

from pymongo import DESCENDING

from ..constants import AMBIGUITY_PROBE_LIMIT, ID_FIELD
from ..entities import Identifiable, decode_id, is_entity_type
from ..exceptions import AmbiguousResultError, InvalidArgumentError
from ..observability import log_operation, repository_context
from .base import Repository
from .operations import (
    BulkBatch,
    Condition,
    build_insert_batch,
    build_upsert_batch,
    bulk_options,
    id_filter,
    match_all,
    store_call,
)
from .query import Query

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Identifiable)


class MongoBinding(Generic[T]):
    """
    The immutable (database, session, entity type, collection name) binding.

    Shared by the blocking and asyncio repositories; holds no other state.
    """

    def __init__(
        self,
        database: Any,
        session: Any,
        entity_type: type[T],
        collection_name: str | None = None,
    ):
        """
        Initialize the binding.

        Args:
            database: Driver database handle
            session: Driver session threaded through every operation
            entity_type: Identifiable class stored in the collection
            collection_name: Collection override (defaults to the entity class name)

        Raises:
            InvalidArgumentError: If database or session is missing, or
                entity_type lacks the Identifiable capabilities
        """
        if database is None:
            raise InvalidArgumentError("database must not be None", argument="database")
        if session is None:
            raise InvalidArgumentError("session must not be None", argument="session")
        if not is_entity_type(entity_type):
            raise InvalidArgumentError(
                f"entity_type must expose id, to_document and from_document, got {entity_type!r}",
                argument="entity_type",
            )

        self._database = database
        self._session = session
        self._entity_type = entity_type
        self._collection_name = collection_name or entity_type.__name__

    @property
    def database(self) -> Any:
        return self._database

    @property
    def session(self) -> Any:
        return self._session

    @property
    def entity_type(self) -> type[T]:
        return self._entity_type

    @property
    def collection_name(self) -> str:
        return self._collection_name

    @property
    def _collection(self) -> Any:
        # Resolved on every access so store-side changes are always visible.
        return self._database.get_collection(self._collection_name)

    def _use(self, session: Any) -> Any:
        return self._session if session is None else session

    @contextlib.contextmanager
    def _call(
        self,
        operation: str,
        timeout: float | None = None,
        collection_name: str | None = None,
    ) -> Iterator[None]:
        target = collection_name or self._collection_name
        with repository_context(
            collection=target, entity=self._entity_type.__name__, operation=operation
        ):
            with store_call(operation, target, timeout):
                yield

    @contextlib.contextmanager
    def _write(
        self,
        operation: str,
        timeout: float | None = None,
        collection_name: str | None = None,
    ) -> Iterator[dict[str, Any]]:
        # The block may add fields (such as requests) to the logged outcome.
        outcome: dict[str, Any] = {}
        start = time.perf_counter()
        with self._call(operation, timeout, collection_name):
            yield outcome
            log_operation(
                logger, operation, duration_ms=(time.perf_counter() - start) * 1000, **outcome
            )

    def _to_entity(self, doc: dict[str, Any] | None) -> T | None:
        return self._entity_type.from_document(doc)

    def _expect_single(self, operation: str, docs: list[dict[str, Any]]) -> T | None:
        if len(docs) > 1:
            raise AmbiguousResultError(
                f"Expected at most one {self._entity_type.__name__}, found several",
                operation=operation,
                collection_name=self._collection_name,
            )
        return self._to_entity(docs[0]) if docs else None

    def _entity_batch(self, entities: Iterable[T]) -> list[T]:
        batch = list(entities)
        if not batch:
            raise InvalidArgumentError(
                "add_all requires at least one entity", argument="entities"
            )
        return batch

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}[{self._entity_type.__name__}]"
            f"(collection={self._collection_name!r})"
        )


class MongoRepository(MongoBinding[T], Repository[T]):
    """
    Blocking MongoDB implementation of the Repository interface.

    Example:
        client = MongoClient("mongodb://localhost:27017")
        with client.start_session() as session:
            products = MongoRepository(client["shop"], session, Product)

            products.add(Product("A-100", price=9.5))
            cheap = products.find_all({"price": {"$lt": 10}})
    """

    def get_last_added(self, *, session: Any = None, timeout: float | None = None) -> T | None:
        with self._call("get_last_added", timeout):
            doc = self._collection.find_one(
                match_all(), sort=[(ID_FIELD, DESCENDING)], session=self._use(session)
            )
        return self._to_entity(doc)

    def get_all(self, *, session: Any = None, timeout: float | None = None) -> list[T]:
        return self.find_all(match_all(), session=session, timeout=timeout)

    def get_all_as_queryable(self, *, session: Any = None) -> Query[T]:
        return self.find_all_as_queryable(match_all(), session=session)

    def find_all_as_queryable(
        self, filter: Mapping[str, Any], *, session: Any = None
    ) -> Query[T]:
        return Query(
            lambda: self._collection,
            self._entity_type,
            self._collection_name,
            filter,
            session=self._use(session),
        )

    def find_by_id(
        self, id: str, *, session: Any = None, timeout: float | None = None
    ) -> T | None:
        return self._find_single("find_by_id", id_filter(id), session, timeout)

    def find_all(
        self, filter: Mapping[str, Any], *, session: Any = None, timeout: float | None = None
    ) -> list[T]:
        with self._call("find_all", timeout):
            docs = list(self._collection.find(filter, session=self._use(session)))
        return [self._to_entity(doc) for doc in docs]

    def find(
        self, filter: Mapping[str, Any], *, session: Any = None, timeout: float | None = None
    ) -> T | None:
        return self._find_single("find", filter, session, timeout)

    def _find_single(
        self,
        operation: str,
        filter: Mapping[str, Any],
        session: Any,
        timeout: float | None,
    ) -> T | None:
        with self._call(operation, timeout):
            docs = list(
                self._collection.find(
                    filter, session=self._use(session), limit=AMBIGUITY_PROBE_LIMIT
                )
            )
        return self._expect_single(operation, docs)

    def exists(self, id: str, *, session: Any = None, timeout: float | None = None) -> bool:
        return self.exists_where(id_filter(id), session=session, timeout=timeout)

    def exists_where(
        self, filter: Mapping[str, Any], *, session: Any = None, timeout: float | None = None
    ) -> bool:
        with self._call("exists", timeout):
            found = self._collection.count_documents(filter, session=self._use(session), limit=1)
        return found > 0

    def count(
        self,
        filter: Mapping[str, Any] | None = None,
        *,
        session: Any = None,
        timeout: float | None = None,
    ) -> int:
        with self._call("count", timeout):
            return self._collection.count_documents(
                filter if filter is not None else match_all(), session=self._use(session)
            )

    def add(
        self,
        entity: T,
        *,
        bypass_document_validation: bool = False,
        session: Any = None,
        timeout: float | None = None,
    ) -> None:
        with self._write("add", timeout):
            result = self._collection.insert_one(
                entity.to_document(),
                bypass_document_validation=bypass_document_validation,
                session=self._use(session),
            )
        entity.id = decode_id(result.inserted_id)
        logger.debug(f"Added {self._entity_type.__name__} with id={entity.id}")

    def add_all(
        self,
        entities: Iterable[T],
        *,
        ordered: bool = True,
        bypass_document_validation: bool = False,
        session: Any = None,
        timeout: float | None = None,
    ) -> None:
        batch = self._entity_batch(entities)
        with self._write("add_all", timeout):
            result = self._collection.insert_many(
                [entity.to_document() for entity in batch],
                ordered=ordered,
                bypass_document_validation=bypass_document_validation,
                session=self._use(session),
            )
        for entity, inserted_id in zip(batch, result.inserted_ids):
            entity.id = decode_id(inserted_id)
        logger.debug(f"Added {len(batch)} {self._entity_type.__name__} entities")

    def add_or_update(
        self,
        condition: Mapping[str, Any],
        entity: T,
        *,
        session: Any = None,
        timeout: float | None = None,
    ) -> T | None:
        with self._write("add_or_update", timeout):
            result = self._collection.replace_one(
                condition, entity.to_document(), upsert=True, session=self._use(session)
            )
        if not result.acknowledged:
            return None
        if entity.id is None and result.upserted_id is not None:
            entity.id = decode_id(result.upserted_id)
        return entity

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
        return self._bulk_write(
            "bulk_add_or_update",
            build_upsert_batch(condition, records),
            bulk_options(ordered, bypass_document_validation),
            session,
            timeout,
        )

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
        return self._bulk_write(
            "bulk_insert",
            build_insert_batch(condition, records),
            bulk_options(ordered, bypass_document_validation),
            session,
            timeout,
        )

    def _bulk_write(
        self,
        operation: str,
        batch: BulkBatch[T],
        options: dict[str, bool],
        session: Any,
        timeout: float | None,
    ) -> int:
        if not batch:
            return 0
        with self._write(operation, timeout) as outcome:
            result = self._collection.bulk_write(
                batch.requests, session=self._use(session), **options
            )
            outcome["requests"] = len(batch)
        if not result.acknowledged:
            return 0
        batch.assign_ids(result.upserted_ids)
        return result.inserted_count + result.upserted_count

    def update(
        self, entity: T, key: str, *, session: Any = None, timeout: float | None = None
    ) -> T | None:
        return self._replace("update", id_filter(key), entity, session, timeout)

    def update_where(
        self,
        condition: Mapping[str, Any],
        entity: T,
        *,
        session: Any = None,
        timeout: float | None = None,
    ) -> T | None:
        return self._replace("update_where", condition, entity, session, timeout)

    def _replace(
        self,
        operation: str,
        condition: Mapping[str, Any],
        entity: T,
        session: Any,
        timeout: float | None,
    ) -> T | None:
        with self._write(operation, timeout):
            result = self._collection.replace_one(
                condition, entity.to_document(), upsert=False, session=self._use(session)
            )
        return entity if result.acknowledged else None

    def update_all(
        self,
        filter: Mapping[str, Any],
        update: Mapping[str, Any],
        *,
        session: Any = None,
        timeout: float | None = None,
    ) -> bool:
        with self._write("update_all", timeout):
            result = self._collection.update_many(filter, update, session=self._use(session))
        return result.acknowledged

    def update_fields(
        self,
        condition: Mapping[str, Any],
        update: Mapping[str, Any],
        *,
        session: Any = None,
        timeout: float | None = None,
    ) -> bool:
        with self._write("update_fields", timeout):
            result = self._collection.update_many(
                condition, update, upsert=False, session=self._use(session)
            )
        return result.acknowledged

    def delete(self, key: str, *, session: Any = None, timeout: float | None = None) -> bool:
        with self._write("delete", timeout):
            result = self._collection.delete_one(id_filter(key), session=self._use(session))
        logger.debug(f"Deleted {self._entity_type.__name__} with id={key}")
        return result.acknowledged

    def delete_where(
        self, filter: Mapping[str, Any], *, session: Any = None, timeout: float | None = None
    ) -> bool:
        with self._write("delete_where", timeout):
            result = self._collection.delete_many(filter, session=self._use(session))
        return result.acknowledged

    def drop(
        self,
        collection_name: str | None = None,
        *,
        session: Any = None,
        timeout: float | None = None,
    ) -> None:
        target = collection_name or self._collection_name
        with self._write("drop", timeout, target):
            self._database.drop_collection(target, session=self._use(session))
        logger.info(f"Dropped collection '{target}'")

    def copy_from(
        self,
        from_collection: str,
        collection_name: str | None = None,
        *,
        session: Any = None,
        timeout: float | None = None,
        **rename_options: Any,
    ) -> None:
        target = collection_name or self._collection_name
        self.drop(target, session=session, timeout=timeout)
        with self._write("copy_from", timeout, target):
            self._database.get_collection(from_collection).rename(
                target, session=self._use(session), **rename_options
            )
        logger.info(f"Copied collection '{from_collection}' onto '{target}'")
