"""
MDB Repository Dependency Injection Module

Lightweight DI container with service lifetimes:
- SINGLETON: One instance per application lifetime
- REQUEST: One instance per request scope (sessions, units of work)
- TRANSIENT: New instance on every injection (repositories)

Usage:
    from fastapi import Depends
    from mdb_repository.di import Container, add_mongo, add_repositories, inject

    container = Container()
    add_mongo(container, "mongodb://localhost:27017/shop")
    add_repositories(container)

    @app.get("/products")
    def list_products(products: Repository[Product] = Depends(inject(Repository[Product]))):
        return products.get_all()
"""

from .container import Container, Inject, inject
from .providers import FactoryProvider, OpenGenericProvider, Provider, SingletonProvider
from .registration import (
    add_async_mongo,
    add_mongo,
    add_repositories,
    initialize_async_mongo,
    open_async_session,
)
from .scopes import Scope, ScopeManager

__all__ = [
    "Container",
    "Scope",
    "ScopeManager",
    "Provider",
    "FactoryProvider",
    "SingletonProvider",
    "OpenGenericProvider",
    "inject",
    "Inject",
    "add_mongo",
    "add_async_mongo",
    "add_repositories",
    "initialize_async_mongo",
    "open_async_session",
]
