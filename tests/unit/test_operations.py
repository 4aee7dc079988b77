"""
Unit tests for shared repository operations.

Tests filter helpers, bulk request builders and driver error translation.
"""

from dataclasses import dataclass
from unittest.mock import patch

import pytest
from bson import ObjectId
from pymongo import InsertOne, ReplaceOne, UpdateOne
from pymongo.errors import (AutoReconnect, BulkWriteError, DuplicateKeyError,
                            OperationFailure)

from mdb_repository.entities import Entity
from mdb_repository.exceptions import (ConflictError, InvalidArgumentError,
                                       StoreFailureError)
from mdb_repository.repositories.operations import (build_insert_batch,
                                                    build_upsert_batch,
                                                    bulk_options, by_id,
                                                    id_filter, match_all,
                                                    resolve_condition,
                                                    store_call)


@dataclass
class Product(Entity):
    sku: str
    price: float = 0.0


class TestFilters:
    """Test filter helpers."""

    def test_match_all(self):
        assert match_all() == {}

    def test_id_filter_with_object_id_hex(self):
        hex_id = "65a1b2c3d4e5f60718293a4b"
        assert id_filter(hex_id) == {"_id": ObjectId(hex_id)}

    def test_id_filter_with_custom_id(self):
        assert id_filter("A-100") == {"_id": "A-100"}

    def test_by_id(self):
        assert by_id(Product("A-100", id="p1")) == {"_id": "p1"}

    def test_by_id_requires_id(self):
        with pytest.raises(InvalidArgumentError):
            by_id(Product("A-100"))

    def test_resolve_shared_condition(self):
        condition = {"sku": "A-100"}
        assert resolve_condition(condition, Product("B-200")) is condition

    def test_resolve_rejects_other_types(self):
        with pytest.raises(InvalidArgumentError) as exc_info:
            resolve_condition(42, Product("A-100"))
        assert exc_info.value.argument == "condition"


class TestBulkBatches:
    """Test bulk request builders."""

    def test_upsert_batch_skips_none(self):
        records = [Product("A", id="a"), None, Product("B", id="b")]
        batch = build_upsert_batch(by_id, records)
        assert batch.requests == [
            ReplaceOne({"_id": "a"}, {"_id": "a", "sku": "A", "price": 0.0}, upsert=True),
            ReplaceOne({"_id": "b"}, {"_id": "b", "sku": "B", "price": 0.0}, upsert=True),
        ]
        assert batch.records == [records[0], records[2]]

    def test_shared_condition_is_used_for_every_record(self):
        condition = {"status": "draft"}
        batch = build_upsert_batch(condition, [Product("A"), Product("B")])
        assert [r._filter for r in batch.requests] == [condition, condition]

    def test_per_record_condition_guards_inserts(self):
        batch = build_insert_batch(by_id, [Product("A", id="a")])
        assert batch.requests == [
            UpdateOne(
                {"_id": "a"},
                {"$setOnInsert": {"_id": "a", "sku": "A", "price": 0.0}},
                upsert=True,
            )
        ]

    def test_shared_condition_inserts_every_record(self):
        records = [Product("r0"), Product("r1"), Product("r2")]
        batch = build_insert_batch({"never": "matches"}, records)

        assert len(batch) == len(records)
        assert batch.requests == [
            InsertOne({"sku": "r0", "price": 0.0}),
            InsertOne({"sku": "r1", "price": 0.0}),
            InsertOne({"sku": "r2", "price": 0.0}),
        ]

    def test_insert_rejects_invalid_condition(self):
        with pytest.raises(InvalidArgumentError):
            build_insert_batch(42, [Product("A")])

    def test_empty_records(self):
        assert len(build_insert_batch(by_id, [])) == 0
        assert len(build_upsert_batch(by_id, [None])) == 0

    def test_assign_upserted_ids(self):
        oid = ObjectId()
        records = [Product("A", id="a"), Product("B")]
        batch = build_upsert_batch({"sku": "B"}, records)

        batch.assign_ids({1: oid})

        assert records[0].id == "a"
        assert records[1].id == str(oid)

    def test_assign_ids_from_inserted_documents(self):
        oid = ObjectId()
        record = Product("A")
        batch = build_insert_batch(match_all(), [record])
        # The driver adds _id to documents sent with InsertOne
        batch.documents[0]["_id"] = oid

        batch.assign_ids({})

        assert record.id == str(oid)

    def test_unmatched_records_keep_no_id(self):
        record = Product("A")
        build_upsert_batch({"sku": "A"}, [record]).assign_ids(None)
        assert record.id is None

    def test_bulk_option_defaults(self):
        assert bulk_options() == {"ordered": False, "bypass_document_validation": False}

    def test_bulk_option_overrides(self):
        assert bulk_options(True, True) == {"ordered": True, "bypass_document_validation": True}


class TestStoreCall:
    """Test driver error translation."""

    def test_passes_through_on_success(self):
        with store_call("find", "Product"):
            value = 1
        assert value == 1

    def test_duplicate_key_becomes_conflict(self):
        cause = DuplicateKeyError("E11000 duplicate key", code=11000)
        with pytest.raises(ConflictError) as exc_info:
            with store_call("add", "Product"):
                raise cause
        assert exc_info.value.__cause__ is cause
        assert exc_info.value.operation == "add"
        assert exc_info.value.collection_name == "Product"

    def test_bulk_duplicate_key_becomes_conflict(self):
        cause = BulkWriteError({"writeErrors": [{"index": 0, "code": 11000}]})
        with pytest.raises(ConflictError) as exc_info:
            with store_call("bulk_insert", "Product"):
                raise cause
        assert exc_info.value.__cause__ is cause

    def test_other_bulk_errors_become_store_failure(self):
        cause = BulkWriteError({"writeErrors": [{"index": 0, "code": 121}]})
        with pytest.raises(StoreFailureError):
            with store_call("bulk_insert", "Product"):
                raise cause

    def test_connectivity_error_becomes_store_failure(self):
        cause = AutoReconnect("connection reset")
        with pytest.raises(StoreFailureError) as exc_info:
            with store_call("find", "Product"):
                raise cause
        assert exc_info.value.__cause__ is cause
        assert exc_info.value.context["error_type"] == "AutoReconnect"

    def test_server_error_code_is_kept(self):
        with pytest.raises(StoreFailureError) as exc_info:
            with store_call("update_all", "Product"):
                raise OperationFailure("not authorized", code=13)
        assert exc_info.value.context["code"] == 13

    def test_non_driver_errors_propagate(self):
        with pytest.raises(KeyError):
            with store_call("find", "Product"):
                raise KeyError("sku")

    def test_timeout_applies_deadline(self):
        with patch("mdb_repository.repositories.operations.pymongo.timeout") as mock_timeout:
            with store_call("find", "Product", timeout=2.5):
                pass
        mock_timeout.assert_called_once_with(2.5)

    def test_no_timeout_no_deadline(self):
        with patch("mdb_repository.repositories.operations.pymongo.timeout") as mock_timeout:
            with store_call("find", "Product"):
                pass
        mock_timeout.assert_not_called()
