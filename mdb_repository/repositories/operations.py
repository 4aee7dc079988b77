"""
Shared building blocks for the MongoDB repositories.

Both the blocking and the asyncio repository build filters, bulk requests and
option defaults the same way, and both translate driver errors into the
repository exception hierarchy through store_call().
"""

import contextlib
from collections.abc import Callable, Iterable, Iterator, Mapping
from typing import Any, Generic, TypeVar, Union

import pymongo
from pymongo import InsertOne, ReplaceOne, UpdateOne
from pymongo.errors import BulkWriteError, DuplicateKeyError, PyMongoError

from ..constants import (
    DEFAULT_BULK_ORDERED,
    DEFAULT_BYPASS_DOCUMENT_VALIDATION,
    DUPLICATE_KEY_ERROR_CODE,
    ID_FIELD,
)
from ..entities import Identifiable, decode_id, encode_id
from ..exceptions import ConflictError, InvalidArgumentError, StoreFailureError
from ..observability import get_logger

contextual_logger = get_logger(__name__)

T = TypeVar("T", bound=Identifiable)

Filter = Mapping[str, Any]
Condition = Union[Filter, Callable[[Any], Filter]]


def match_all() -> dict[str, Any]:
    """Filter matching every document."""
    return {}


def id_filter(id: Any) -> dict[str, Any]:
    """Filter matching the document whose ``_id`` equals ``id``."""
    return {ID_FIELD: encode_id(id)}


def by_id(record: Identifiable) -> dict[str, Any]:
    """
    Per-record bulk condition matching each record by its own id.

    Raises:
        InvalidArgumentError: If the record has no id yet
    """
    if record.id is None:
        raise InvalidArgumentError(
            f"by_id needs an id on every record, got {type(record).__name__} without one",
            argument="records",
        )
    return id_filter(record.id)


def resolve_condition(condition: Condition, record: Identifiable) -> Filter:
    """
    Return the filter a bulk request should use for ``record``.

    A mapping is shared by every record; a callable is evaluated per record.
    """
    if callable(condition):
        return condition(record)
    if isinstance(condition, Mapping):
        return condition
    raise InvalidArgumentError(
        f"condition must be a filter mapping or a callable, got {type(condition).__name__}",
        argument="condition",
    )


class BulkBatch(Generic[T]):
    """
    Bulk write requests together with the records and documents they came from.

    Keeps request order aligned with the records so ids generated by the store
    can be written back after the write.
    """

    def __init__(self) -> None:
        self.records: list[T] = []
        self.documents: list[dict[str, Any]] = []
        self.requests: list[Union[InsertOne, ReplaceOne, UpdateOne]] = []

    def __len__(self) -> int:
        return len(self.requests)

    def append(self, record: T, document: dict[str, Any], request: Any) -> None:
        self.records.append(record)
        self.documents.append(document)
        self.requests.append(request)

    def assign_ids(self, upserted_ids: Mapping[int, Any] | None) -> None:
        """
        Write store-generated ids back onto records that had none.

        Upserted ids are keyed by request index. Plain inserts get their
        ``_id`` added to the sent document by the driver.
        """
        upserted_ids = upserted_ids or {}
        for index, (record, document) in enumerate(zip(self.records, self.documents)):
            if record.id is not None:
                continue
            new_id = upserted_ids.get(index, document.get(ID_FIELD))
            if new_id is not None:
                record.id = decode_id(new_id)


def build_upsert_batch(condition: Condition, records: Iterable[T | None]) -> BulkBatch[T]:
    """One upserting replace per non-None record."""
    batch: BulkBatch[T] = BulkBatch()
    for record in records:
        if record is None:
            continue
        document = record.to_document()
        batch.append(
            record,
            document,
            ReplaceOne(resolve_condition(condition, record), document, upsert=True),
        )
    return batch


def build_insert_batch(condition: Condition, records: Iterable[T | None]) -> BulkBatch[T]:
    """
    One insert per non-None record.

    A per-record callable (such as ``by_id``) makes each insert guarded: the
    record is written only when its own filter matches nothing, and a match
    is left untouched. A shared mapping cannot tell records apart, so it is
    not sent to the store; every record becomes a plain insert and an
    existing identifier raises ConflictError.
    """
    guarded = callable(condition)
    batch: BulkBatch[T] = BulkBatch()
    for record in records:
        if record is None:
            continue
        filter = resolve_condition(condition, record)
        document = record.to_document()
        if guarded:
            request = UpdateOne(filter, {"$setOnInsert": document}, upsert=True)
        else:
            request = InsertOne(document)
        batch.append(record, document, request)
    return batch


def bulk_options(
    ordered: bool | None = None,
    bypass_document_validation: bool | None = None,
) -> dict[str, bool]:
    """Bulk write options with the repository defaults filled in."""
    return {
        "ordered": DEFAULT_BULK_ORDERED if ordered is None else ordered,
        "bypass_document_validation": (
            DEFAULT_BYPASS_DOCUMENT_VALIDATION
            if bypass_document_validation is None
            else bypass_document_validation
        ),
    }


def _has_duplicate_key(error: BulkWriteError) -> bool:
    write_errors = (error.details or {}).get("writeErrors", [])
    return any(err.get("code") == DUPLICATE_KEY_ERROR_CODE for err in write_errors)


@contextlib.contextmanager
def _deadline(timeout: float | None) -> Iterator[None]:
    if timeout is None:
        yield
        return
    with pymongo.timeout(timeout):
        yield


@contextlib.contextmanager
def store_call(
    operation: str,
    collection_name: str,
    timeout: float | None = None,
) -> Iterator[None]:
    """
    Wrap a single driver call.

    Applies the optional client-side deadline and translates driver errors:
    duplicate keys become ConflictError, everything else StoreFailureError.
    The driver exception is chained as ``__cause__``.

    Args:
        operation: Repository operation name, used in error context
        collection_name: Target collection, used in error context
        timeout: Optional deadline in seconds for the wrapped call
    """
    try:
        with _deadline(timeout):
            yield
    except DuplicateKeyError as e:
        contextual_logger.warning(
            "Duplicate key rejected by store",
            extra={"operation": operation, "collection": collection_name},
        )
        raise ConflictError(
            f"Document with the same identifier already exists: {e}",
            operation=operation,
            collection_name=collection_name,
            context={"code": e.code},
        ) from e
    except BulkWriteError as e:
        error_cls = ConflictError if _has_duplicate_key(e) else StoreFailureError
        contextual_logger.warning(
            "Bulk write failed",
            extra={
                "operation": operation,
                "collection": collection_name,
                "error_type": error_cls.__name__,
            },
        )
        raise error_cls(
            f"Bulk write failed: {e}",
            operation=operation,
            collection_name=collection_name,
            context={"code": e.code},
        ) from e
    except PyMongoError as e:
        contextual_logger.warning(
            "Store operation failed",
            extra={
                "operation": operation,
                "collection": collection_name,
                "error_type": type(e).__name__,
            },
        )
        context: dict[str, Any] = {"error_type": type(e).__name__}
        code = getattr(e, "code", None)
        if code is not None:
            context["code"] = code
        raise StoreFailureError(
            f"Store operation '{operation}' failed: {e}",
            operation=operation,
            collection_name=collection_name,
            context=context,
        ) from e
