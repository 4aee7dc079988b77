"""
MDB Repository Pattern

Generic single-collection repositories for MongoDB, in a blocking flavour
(pymongo) and an asyncio flavour (motor).

Usage:
    from mdb_repository.repositories import MongoRepository, Repository

    class CatalogService:
        def __init__(self, products: Repository[Product]):
            self._products = products

        def price_of(self, sku: str) -> float | None:
            product = self._products.find({"sku": sku})
            return product.price if product else None
"""

from .async_mongo import AsyncMongoRepository
from .base import AsyncRepository, Repository
from .mongo import MongoBinding, MongoRepository
from .operations import by_id, id_filter, match_all
from .query import AsyncQuery, Query
from .unit_of_work import AsyncUnitOfWork, UnitOfWork

__all__ = [
    "Repository",
    "AsyncRepository",
    "MongoBinding",
    "MongoRepository",
    "AsyncMongoRepository",
    "Query",
    "AsyncQuery",
    "UnitOfWork",
    "AsyncUnitOfWork",
    "by_id",
    "id_filter",
    "match_all",
]
