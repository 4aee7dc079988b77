"""
Asyncio MongoDB Repository Implementation

Implements the AsyncRepository interface on motor. Each coroutine awaits
exactly one driver call; cancelling the awaiting task cancels the wait.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any, TypeVar

from pymongo import DESCENDING

from ..constants import AMBIGUITY_PROBE_LIMIT, ID_FIELD
from ..entities import Identifiable, decode_id
from .base import AsyncRepository
from .mongo import MongoBinding
from .operations import (
    BulkBatch,
    Condition,
    build_insert_batch,
    build_upsert_batch,
    bulk_options,
    id_filter,
    match_all,
)
from .query import AsyncQuery

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Identifiable)


class AsyncMongoRepository(MongoBinding[T], AsyncRepository[T]):
    """
    Motor implementation of the AsyncRepository interface.

    Example:
        client = AsyncIOMotorClient("mongodb://localhost:27017")
        async with await client.start_session() as session:
            products = AsyncMongoRepository(client["shop"], session, Product)

            await products.add(Product("A-100", price=9.5))
            async for product in products.get_all_as_queryable().limit(10):
                ...
    """

    async def get_last_added(
        self, *, session: Any = None, timeout: float | None = None
    ) -> T | None:
        with self._call("get_last_added", timeout):
            doc = await self._collection.find_one(
                match_all(), sort=[(ID_FIELD, DESCENDING)], session=self._use(session)
            )
        return self._to_entity(doc)

    async def get_all(self, *, session: Any = None, timeout: float | None = None) -> list[T]:
        return await self.find_all(match_all(), session=session, timeout=timeout)

    def get_all_as_queryable(self, *, session: Any = None) -> AsyncQuery[T]:
        return self.find_all_as_queryable(match_all(), session=session)

    def find_all_as_queryable(
        self, filter: Mapping[str, Any], *, session: Any = None
    ) -> AsyncQuery[T]:
        return AsyncQuery(
            lambda: self._collection,
            self._entity_type,
            self._collection_name,
            filter,
            session=self._use(session),
        )

    async def find_by_id(
        self, id: str, *, session: Any = None, timeout: float | None = None
    ) -> T | None:
        return await self._find_single("find_by_id", id_filter(id), session, timeout)

    async def find_all(
        self, filter: Mapping[str, Any], *, session: Any = None, timeout: float | None = None
    ) -> list[T]:
        with self._call("find_all", timeout):
            docs = await self._collection.find(filter, session=self._use(session)).to_list(
                length=None
            )
        return [self._to_entity(doc) for doc in docs]

    async def find(
        self, filter: Mapping[str, Any], *, session: Any = None, timeout: float | None = None
    ) -> T | None:
        return await self._find_single("find", filter, session, timeout)

    async def _find_single(
        self,
        operation: str,
        filter: Mapping[str, Any],
        session: Any,
        timeout: float | None,
    ) -> T | None:
        with self._call(operation, timeout):
            cursor = self._collection.find(
                filter, session=self._use(session), limit=AMBIGUITY_PROBE_LIMIT
            )
            docs = await cursor.to_list(length=AMBIGUITY_PROBE_LIMIT)
        return self._expect_single(operation, docs)

    async def exists(self, id: str, *, session: Any = None, timeout: float | None = None) -> bool:
        return await self.exists_where(id_filter(id), session=session, timeout=timeout)

    async def exists_where(
        self, filter: Mapping[str, Any], *, session: Any = None, timeout: float | None = None
    ) -> bool:
        with self._call("exists", timeout):
            found = await self._collection.count_documents(
                filter, session=self._use(session), limit=1
            )
        return found > 0

    async def count(
        self,
        filter: Mapping[str, Any] | None = None,
        *,
        session: Any = None,
        timeout: float | None = None,
    ) -> int:
        with self._call("count", timeout):
            return await self._collection.count_documents(
                filter if filter is not None else match_all(), session=self._use(session)
            )

    async def add(
        self,
        entity: T,
        *,
        bypass_document_validation: bool = False,
        session: Any = None,
        timeout: float | None = None,
    ) -> None:
        with self._write("add", timeout):
            result = await self._collection.insert_one(
                entity.to_document(),
                bypass_document_validation=bypass_document_validation,
                session=self._use(session),
            )
        entity.id = decode_id(result.inserted_id)
        logger.debug(f"Added {self._entity_type.__name__} with id={entity.id}")

    async def add_all(
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
            result = await self._collection.insert_many(
                [entity.to_document() for entity in batch],
                ordered=ordered,
                bypass_document_validation=bypass_document_validation,
                session=self._use(session),
            )
        for entity, inserted_id in zip(batch, result.inserted_ids):
            entity.id = decode_id(inserted_id)
        logger.debug(f"Added {len(batch)} {self._entity_type.__name__} entities")

    async def add_or_update(
        self,
        condition: Mapping[str, Any],
        entity: T,
        *,
        session: Any = None,
        timeout: float | None = None,
    ) -> T | None:
        with self._write("add_or_update", timeout):
            result = await self._collection.replace_one(
                condition, entity.to_document(), upsert=True, session=self._use(session)
            )
        if not result.acknowledged:
            return None
        if entity.id is None and result.upserted_id is not None:
            entity.id = decode_id(result.upserted_id)
        return entity

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
        return await self._bulk_write(
            "bulk_add_or_update",
            build_upsert_batch(condition, records),
            bulk_options(ordered, bypass_document_validation),
            session,
            timeout,
        )

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
        return await self._bulk_write(
            "bulk_insert",
            build_insert_batch(condition, records),
            bulk_options(ordered, bypass_document_validation),
            session,
            timeout,
        )

    async def _bulk_write(
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
            result = await self._collection.bulk_write(
                batch.requests, session=self._use(session), **options
            )
            outcome["requests"] = len(batch)
        if not result.acknowledged:
            return 0
        batch.assign_ids(result.upserted_ids)
        return result.inserted_count + result.upserted_count

    async def update(
        self, entity: T, key: str, *, session: Any = None, timeout: float | None = None
    ) -> T | None:
        return await self._replace("update", id_filter(key), entity, session, timeout)

    async def update_where(
        self,
        condition: Mapping[str, Any],
        entity: T,
        *,
        session: Any = None,
        timeout: float | None = None,
    ) -> T | None:
        return await self._replace("update_where", condition, entity, session, timeout)

    async def _replace(
        self,
        operation: str,
        condition: Mapping[str, Any],
        entity: T,
        session: Any,
        timeout: float | None,
    ) -> T | None:
        with self._write(operation, timeout):
            result = await self._collection.replace_one(
                condition, entity.to_document(), upsert=False, session=self._use(session)
            )
        return entity if result.acknowledged else None

    async def update_all(
        self,
        filter: Mapping[str, Any],
        update: Mapping[str, Any],
        *,
        session: Any = None,
        timeout: float | None = None,
    ) -> bool:
        with self._write("update_all", timeout):
            result = await self._collection.update_many(
                filter, update, session=self._use(session)
            )
        return result.acknowledged

    async def update_fields(
        self,
        condition: Mapping[str, Any],
        update: Mapping[str, Any],
        *,
        session: Any = None,
        timeout: float | None = None,
    ) -> bool:
        with self._write("update_fields", timeout):
            result = await self._collection.update_many(
                condition, update, upsert=False, session=self._use(session)
            )
        return result.acknowledged

    async def delete(self, key: str, *, session: Any = None, timeout: float | None = None) -> bool:
        with self._write("delete", timeout):
            result = await self._collection.delete_one(id_filter(key), session=self._use(session))
        logger.debug(f"Deleted {self._entity_type.__name__} with id={key}")
        return result.acknowledged

    async def delete_where(
        self, filter: Mapping[str, Any], *, session: Any = None, timeout: float | None = None
    ) -> bool:
        with self._write("delete_where", timeout):
            result = await self._collection.delete_many(filter, session=self._use(session))
        return result.acknowledged

    async def drop(
        self,
        collection_name: str | None = None,
        *,
        session: Any = None,
        timeout: float | None = None,
    ) -> None:
        target = collection_name or self._collection_name
        with self._write("drop", timeout, target):
            await self._database.drop_collection(target, session=self._use(session))
        logger.info(f"Dropped collection '{target}'")

    async def copy_from(
        self,
        from_collection: str,
        collection_name: str | None = None,
        *,
        session: Any = None,
        timeout: float | None = None,
        **rename_options: Any,
    ) -> None:
        target = collection_name or self._collection_name
        await self.drop(target, session=session, timeout=timeout)
        with self._write("copy_from", timeout, target):
            await self._database.get_collection(from_collection).rename(
                target, session=self._use(session), **rename_options
            )
        logger.info(f"Copied collection '{from_collection}' onto '{target}'")
