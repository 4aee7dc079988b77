"""
Unit tests for MongoRepository.

Tests every repository operation against a mocked pymongo collection,
including session threading, ambiguity detection and error translation.
"""

from dataclasses import dataclass
from unittest.mock import MagicMock, call

import pytest
from bson import ObjectId
from pymongo import DESCENDING, InsertOne, ReplaceOne, UpdateOne
from pymongo.errors import BulkWriteError, DuplicateKeyError, NetworkTimeout

from mdb_repository.entities import Entity
from mdb_repository.exceptions import (AmbiguousResultError, ConflictError,
                                       InvalidArgumentError, StoreFailureError)
from mdb_repository.repositories import MongoRepository, Query, by_id
from mdb_repository.repositories.operations import match_all


@dataclass
class Product(Entity):
    sku: str
    price: float = 0.0


@pytest.fixture
def repo(mock_database, mock_session) -> MongoRepository:
    return MongoRepository(mock_database, mock_session, Product)


class TestConstruction:
    """Test repository construction and binding."""

    def test_collection_defaults_to_entity_name(self, repo):
        assert repo.collection_name == "Product"
        assert repo.entity_type is Product

    def test_collection_override(self, mock_database, mock_session):
        repo = MongoRepository(mock_database, mock_session, Product, "products")
        assert repo.collection_name == "products"

    def test_missing_database(self, mock_session):
        with pytest.raises(InvalidArgumentError) as exc_info:
            MongoRepository(None, mock_session, Product)
        assert exc_info.value.argument == "database"

    def test_missing_session(self, mock_database):
        with pytest.raises(InvalidArgumentError) as exc_info:
            MongoRepository(mock_database, None, Product)
        assert exc_info.value.argument == "session"

    def test_non_entity_type(self, mock_database, mock_session):
        with pytest.raises(InvalidArgumentError):
            MongoRepository(mock_database, mock_session, dict)

    def test_collection_resolved_per_operation(self, repo, mock_database):
        repo.count()
        repo.count()
        assert mock_database.get_collection.call_args_list == [call("Product"), call("Product")]


class TestReads:
    """Test read operations."""

    def test_get_last_added_sorts_by_id_descending(self, repo, mock_collection, mock_session):
        mock_collection.find_one.return_value = {"_id": "p9", "sku": "Z"}

        product = repo.get_last_added()

        assert product == Product("Z", id="p9")
        mock_collection.find_one.assert_called_once_with(
            {}, sort=[("_id", DESCENDING)], session=mock_session
        )

    def test_get_last_added_empty(self, repo):
        assert repo.get_last_added() is None

    def test_get_all(self, repo, mock_collection, mock_session):
        mock_collection.find.return_value = [{"_id": "a", "sku": "A"}, {"_id": "b", "sku": "B"}]

        products = repo.get_all()

        assert [p.sku for p in products] == ["A", "B"]
        mock_collection.find.assert_called_once_with({}, session=mock_session)

    def test_find_all(self, repo, mock_collection):
        mock_collection.find.return_value = [{"_id": "a", "sku": "A", "price": 5.0}]
        products = repo.find_all({"price": {"$lt": 10}})
        assert products == [Product("A", price=5.0, id="a")]

    def test_find_all_no_match(self, repo):
        assert repo.find_all({"sku": "missing"}) == []

    def test_find_single_match(self, repo, mock_collection, mock_session):
        mock_collection.find.return_value = [{"_id": "a", "sku": "A"}]

        product = repo.find({"sku": "A"})

        assert product.id == "a"
        mock_collection.find.assert_called_once_with({"sku": "A"}, session=mock_session, limit=2)

    def test_find_no_match(self, repo):
        assert repo.find({"sku": "missing"}) is None

    def test_find_ambiguous(self, repo, mock_collection):
        mock_collection.find.return_value = [{"_id": "a", "sku": "A"}, {"_id": "b", "sku": "A"}]
        with pytest.raises(AmbiguousResultError) as exc_info:
            repo.find({"sku": "A"})
        assert exc_info.value.operation == "find"

    def test_find_by_id_encodes_object_id(self, repo, mock_collection):
        hex_id = "65a1b2c3d4e5f60718293a4b"
        mock_collection.find.return_value = [{"_id": ObjectId(hex_id), "sku": "A"}]

        product = repo.find_by_id(hex_id)

        assert product.id == hex_id
        assert mock_collection.find.call_args.args[0] == {"_id": ObjectId(hex_id)}

    def test_find_by_id_missing(self, repo):
        assert repo.find_by_id("nope") is None

    def test_exists(self, repo, mock_collection, mock_session):
        mock_collection.count_documents.return_value = 1
        assert repo.exists("a") is True
        mock_collection.count_documents.assert_called_once_with(
            {"_id": "a"}, session=mock_session, limit=1
        )

    def test_exists_where_false(self, repo):
        assert repo.exists_where({"sku": "missing"}) is False

    def test_count(self, repo, mock_collection, mock_session):
        mock_collection.count_documents.return_value = 7
        assert repo.count({"price": {"$gt": 1}}) == 7
        mock_collection.count_documents.assert_called_once_with(
            {"price": {"$gt": 1}}, session=mock_session
        )

    def test_count_all(self, repo, mock_collection):
        repo.count()
        assert mock_collection.count_documents.call_args.args[0] == {}

    def test_queryables_are_lazy(self, repo, mock_collection):
        query = repo.get_all_as_queryable()
        narrowed = repo.find_all_as_queryable({"sku": "A"})
        assert isinstance(query, Query)
        assert narrowed.filter == {"sku": "A"}
        mock_collection.find.assert_not_called()


class TestAdd:
    """Test single and batch inserts."""

    def test_add_writes_back_id(self, repo, mock_collection, mock_session):
        oid = ObjectId()
        mock_collection.insert_one.return_value = MagicMock(acknowledged=True, inserted_id=oid)
        product = Product("A")

        repo.add(product)

        assert product.id == str(oid)
        mock_collection.insert_one.assert_called_once_with(
            {"sku": "A", "price": 0.0}, bypass_document_validation=False, session=mock_session
        )

    def test_add_duplicate(self, repo, mock_collection):
        mock_collection.insert_one.side_effect = DuplicateKeyError("dup", code=11000)
        with pytest.raises(ConflictError):
            repo.add(Product("A", id="a"))

    def test_add_all(self, repo, mock_collection, mock_session):
        products = [Product("A"), Product("B")]

        repo.add_all(products)

        assert [p.id for p in products] == ["id1", "id2"]
        mock_collection.insert_many.assert_called_once_with(
            [{"sku": "A", "price": 0.0}, {"sku": "B", "price": 0.0}],
            ordered=True,
            bypass_document_validation=False,
            session=mock_session,
        )

    def test_add_all_empty(self, repo, mock_collection):
        with pytest.raises(InvalidArgumentError):
            repo.add_all([])
        mock_collection.insert_many.assert_not_called()

    def test_add_or_update_inserts(self, repo, mock_collection, mock_session):
        mock_collection.replace_one.return_value = MagicMock(
            acknowledged=True, upserted_id="new"
        )
        product = Product("A")

        result = repo.add_or_update({"sku": "A"}, product)

        assert result is product
        assert product.id == "new"
        mock_collection.replace_one.assert_called_once_with(
            {"sku": "A"}, {"sku": "A", "price": 0.0}, upsert=True, session=mock_session
        )

    def test_add_or_update_replaces(self, repo):
        product = Product("A", id="a")
        assert repo.add_or_update({"_id": "a"}, product) is product
        assert product.id == "a"

    def test_add_or_update_unacknowledged(self, repo, mock_collection):
        mock_collection.replace_one.return_value = MagicMock(acknowledged=False)
        assert repo.add_or_update({"sku": "A"}, Product("A")) is None


def bulk_result(inserted: int = 0, upserted_ids: dict | None = None) -> MagicMock:
    upserted_ids = upserted_ids or {}
    return MagicMock(
        acknowledged=True,
        inserted_count=inserted,
        upserted_count=len(upserted_ids),
        upserted_ids=upserted_ids,
    )


class TestBulk:
    """Test bulk writes."""

    def test_bulk_add_or_update(self, repo, mock_collection, mock_session):
        mock_collection.bulk_write.return_value = bulk_result(upserted_ids={1: "b"})
        records = [Product("A", id="a"), None, Product("B", id="b")]

        inserted = repo.bulk_add_or_update(by_id, records)

        assert inserted == 1
        mock_collection.bulk_write.assert_called_once_with(
            [
                ReplaceOne({"_id": "a"}, {"_id": "a", "sku": "A", "price": 0.0}, upsert=True),
                ReplaceOne({"_id": "b"}, {"_id": "b", "sku": "B", "price": 0.0}, upsert=True),
            ],
            session=mock_session,
            ordered=False,
            bypass_document_validation=False,
        )

    def test_bulk_add_or_update_shared_condition(self, repo, mock_collection):
        repo.bulk_add_or_update({"status": "draft"}, [Product("A"), Product("B")])
        requests = mock_collection.bulk_write.call_args.args[0]
        assert [r._filter for r in requests] == [{"status": "draft"}, {"status": "draft"}]

    def test_bulk_add_or_update_assigns_upserted_ids(self, repo, mock_collection):
        oid = ObjectId()
        mock_collection.bulk_write.return_value = bulk_result(upserted_ids={1: oid})
        kept, upserted = Product("A", id="a"), Product("B")

        repo.bulk_add_or_update({"sku": {"$exists": False}}, [kept, None, upserted])

        assert kept.id == "a"
        # Index 1 is the second request; the None record sends none
        assert upserted.id == str(oid)

    def test_bulk_insert_with_per_record_condition(self, repo, mock_collection):
        mock_collection.bulk_write.return_value = bulk_result(upserted_ids={0: "a", 1: "b"})

        inserted = repo.bulk_insert(by_id, [Product("A", id="a"), Product("B", id="b")])

        assert inserted == 2
        requests = mock_collection.bulk_write.call_args.args[0]
        assert requests[0] == UpdateOne(
            {"_id": "a"}, {"$setOnInsert": {"_id": "a", "sku": "A", "price": 0.0}}, upsert=True
        )

    def test_bulk_insert_with_shared_condition_inserts_each_record(self, repo, mock_collection):
        records = [Product("r0"), Product("r1"), Product("r2")]
        mock_collection.bulk_write.return_value = bulk_result(inserted=len(records))

        inserted = repo.bulk_insert({"never": "matches"}, records)

        assert inserted == len(records)
        requests = mock_collection.bulk_write.call_args.args[0]
        assert requests == [InsertOne(record.to_document()) for record in records]

    def test_bulk_insert_assigns_generated_ids(self, repo, mock_collection):
        oid = ObjectId()

        def bulk_write(requests, **kwargs):
            # The driver writes the generated _id into the sent document
            requests[0]._doc["_id"] = oid
            return bulk_result(inserted=1)

        mock_collection.bulk_write.side_effect = bulk_write
        product = Product("A")

        repo.bulk_insert(match_all(), [product])

        assert product.id == str(oid)

    def test_bulk_insert_duplicate_key(self, repo, mock_collection):
        mock_collection.bulk_write.side_effect = BulkWriteError(
            {"writeErrors": [{"index": 0, "code": 11000, "errmsg": "dup"}], "nInserted": 0}
        )
        with pytest.raises(ConflictError):
            repo.bulk_insert(match_all(), [Product("A", id="a")])

    def test_bulk_options_passed(self, repo, mock_collection):
        repo.bulk_insert(
            by_id, [Product("A", id="a")], ordered=True, bypass_document_validation=True
        )
        kwargs = mock_collection.bulk_write.call_args.kwargs
        assert kwargs["ordered"] is True
        assert kwargs["bypass_document_validation"] is True

    def test_bulk_nothing_to_write(self, repo, mock_collection):
        assert repo.bulk_add_or_update(by_id, [None, None]) == 0
        assert repo.bulk_insert(by_id, []) == 0
        mock_collection.bulk_write.assert_not_called()

    def test_bulk_unacknowledged(self, repo, mock_collection):
        mock_collection.bulk_write.return_value = MagicMock(acknowledged=False)
        assert repo.bulk_insert(by_id, [Product("A", id="a")]) == 0


class TestUpdates:
    """Test replace and partial updates."""

    def test_update_by_key(self, repo, mock_collection, mock_session):
        product = Product("A", price=2.0, id="a")

        assert repo.update(product, "a") is product
        mock_collection.replace_one.assert_called_once_with(
            {"_id": "a"},
            {"_id": "a", "sku": "A", "price": 2.0},
            upsert=False,
            session=mock_session,
        )

    def test_update_where(self, repo, mock_collection):
        product = Product("A")
        assert repo.update_where({"sku": "A"}, product) is product
        assert mock_collection.replace_one.call_args.kwargs["upsert"] is False

    def test_update_unacknowledged(self, repo, mock_collection):
        mock_collection.replace_one.return_value = MagicMock(acknowledged=False)
        assert repo.update(Product("A"), "a") is None

    def test_update_all(self, repo, mock_collection, mock_session):
        assert repo.update_all({"sku": "A"}, {"$set": {"price": 1.0}}) is True
        mock_collection.update_many.assert_called_once_with(
            {"sku": "A"}, {"$set": {"price": 1.0}}, session=mock_session
        )

    def test_update_fields(self, repo, mock_collection, mock_session):
        assert repo.update_fields({"sku": "A"}, {"$inc": {"price": 1}}) is True
        mock_collection.update_many.assert_called_once_with(
            {"sku": "A"}, {"$inc": {"price": 1}}, upsert=False, session=mock_session
        )


class TestDeletes:
    """Test deletes and collection management."""

    def test_delete_uses_bound_session(self, repo, mock_collection, mock_session):
        assert repo.delete("a") is True
        mock_collection.delete_one.assert_called_once_with({"_id": "a"}, session=mock_session)

    def test_delete_where(self, repo, mock_collection, mock_session):
        assert repo.delete_where({"price": 0}) is True
        mock_collection.delete_many.assert_called_once_with({"price": 0}, session=mock_session)

    def test_delete_unacknowledged(self, repo, mock_collection):
        mock_collection.delete_one.return_value = MagicMock(acknowledged=False)
        assert repo.delete("a") is False

    def test_drop_default_collection(self, repo, mock_database, mock_session):
        repo.drop()
        mock_database.drop_collection.assert_called_once_with("Product", session=mock_session)

    def test_drop_named_collection(self, repo, mock_database, mock_session):
        repo.drop("archive")
        mock_database.drop_collection.assert_called_once_with("archive", session=mock_session)

    def test_copy_from_drops_then_renames(self, repo, mock_database, mock_collection, mock_session):
        manager = MagicMock()
        manager.attach_mock(mock_database.drop_collection, "drop_collection")
        manager.attach_mock(mock_collection.rename, "rename")

        repo.copy_from("staging")

        assert manager.mock_calls == [
            call.drop_collection("Product", session=mock_session),
            call.rename("Product", session=mock_session),
        ]
        mock_database.get_collection.assert_called_with("staging")

    def test_copy_from_rename_failure_leaves_drop_done(
        self, repo, mock_database, mock_collection
    ):
        mock_collection.rename.side_effect = NetworkTimeout("timed out")

        with pytest.raises(StoreFailureError) as exc_info:
            repo.copy_from("staging", "products")

        mock_database.drop_collection.assert_called_once()
        assert exc_info.value.operation == "copy_from"
        assert exc_info.value.collection_name == "products"


class TestSessionOverride:
    """Test per-call session overrides."""

    def test_override_session(self, repo, mock_collection):
        other = MagicMock()
        repo.delete("a", session=other)
        mock_collection.delete_one.assert_called_once_with({"_id": "a"}, session=other)

    def test_queryable_uses_override(self, repo):
        other = MagicMock()
        query = repo.find_all_as_queryable({"sku": "A"}, session=other)
        assert query._session is other
