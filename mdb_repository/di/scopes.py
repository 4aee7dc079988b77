"""
Service Scopes for Dependency Injection

Defines service lifetime scopes:
- SINGLETON: Created once, shared across all units of work
- REQUEST: Created once per unit of work (request scope), disposed after
- TRANSIENT: Created fresh on every injection
"""

import inspect
import logging
from collections.abc import Callable
from contextvars import ContextVar
from enum import Enum
from typing import Any

from pymongo.errors import PyMongoError

from ..observability import get_correlation_id, reset_correlation_id, set_correlation_id

logger = logging.getLogger(__name__)

# Context variable for request-scoped instances
_request_scope: ContextVar[dict[Any, Any] | None] = ContextVar("request_scope", default=None)


class Scope(Enum):
    """
    Service lifetime scopes.

    SINGLETON: One instance for the entire application lifetime.
               Use for: clients, database handles, configuration.

    REQUEST: One instance per request scope. Released when the scope ends.
             Use for: sessions, units of work.

    TRANSIENT: New instance created every time it's requested.
               Use for: repositories.
    """

    SINGLETON = "singleton"
    REQUEST = "request"
    TRANSIENT = "transient"


def _release(instance: Any) -> Any:
    # Units of work expose dispose(); driver sessions expose end_session().
    for name in ("dispose", "end_session"):
        method = getattr(instance, name, None)
        if callable(method):
            return method()
    return None


class ScopeManager:
    """
    Manages request-scoped instance lifecycles.

    Usage with FastAPI middleware:
        @app.middleware("http")
        async def scope_middleware(request: Request, call_next):
            async with ScopeManager.request_scope():
                response = await call_next(request)
            return response

    Or around a blocking unit of work:
        with ScopeManager.request_scope():
            repo = container.resolve(Repository[Product])
    """

    @classmethod
    def begin_request(cls) -> dict[Any, Any]:
        """
        Begin a new request scope.

        Returns the scope dictionary for manual management if needed.
        """
        scope_dict: dict[Any, Any] = {}
        _request_scope.set(scope_dict)
        logger.debug("Request scope started")
        return scope_dict

    @classmethod
    def _take_instances(cls) -> list[Any]:
        # Newest first, so units of work go before the sessions they use.
        scope_dict = _request_scope.get()
        instances = list(reversed(scope_dict.values())) if scope_dict else []
        if scope_dict:
            scope_dict.clear()
        _request_scope.set(None)
        return instances

    @classmethod
    def end_request(cls) -> None:
        """
        End the current request scope and release instances.

        Calls dispose() or end_session() on instances that have one.
        """
        for instance in cls._take_instances():
            try:
                result = _release(instance)
            except (AttributeError, RuntimeError, TypeError, PyMongoError) as e:
                logger.warning(f"Error disposing {type(instance).__name__}: {e}")
                continue
            if inspect.isawaitable(result):
                if inspect.iscoroutine(result):
                    result.close()
                logger.warning(
                    f"{type(instance).__name__} needs async disposal; "
                    f"use 'async with ScopeManager.request_scope()'"
                )
        logger.debug("Request scope ended")

    @classmethod
    async def aend_request(cls) -> None:
        """End the current request scope, awaiting asynchronous disposal."""
        for instance in cls._take_instances():
            try:
                result = _release(instance)
                if inspect.isawaitable(result):
                    await result
            except (AttributeError, RuntimeError, TypeError, PyMongoError) as e:
                logger.warning(f"Error disposing {type(instance).__name__}: {e}")
        logger.debug("Request scope ended")

    @classmethod
    def get_request_scope(cls) -> dict[Any, Any] | None:
        """Get the current request scope dictionary."""
        return _request_scope.get()

    @classmethod
    def _require_scope(cls) -> dict[Any, Any]:
        scope_dict = _request_scope.get()
        if scope_dict is None:
            raise RuntimeError(
                "No active request scope. Ensure ScopeManager.begin_request() "
                "was called (usually via middleware or ScopeManager.request_scope())."
            )
        return scope_dict

    @classmethod
    def get_or_create(cls, key: Any, factory: Callable[[], Any]) -> Any:
        """
        Get an existing instance from request scope or create one.

        Args:
            key: Cache key (a type or a parametrized generic)
            factory: Callable to create a new instance if not cached

        Returns:
            The cached or newly created instance

        Raises:
            RuntimeError: If called outside a request scope
        """
        scope_dict = cls._require_scope()
        if key not in scope_dict:
            scope_dict[key] = factory()
            logger.debug(f"Created request-scoped instance: {key!r}")
        return scope_dict[key]

    @classmethod
    def put(cls, key: Any, instance: Any) -> None:
        """Store an externally created instance in the current request scope."""
        cls._require_scope()[key] = instance

    @classmethod
    def request_scope(cls) -> "_RequestScopeContext":
        """
        Context manager for a request scope, usable with ``with`` or ``async with``.
        """
        return _RequestScopeContext()


class _RequestScopeContext:
    """
    Sync and async context manager for request scope.

    Also makes a correlation id current for the scope, keeping one that an
    outer layer (such as a middleware reading a request header) already set.
    """

    def _begin(self) -> None:
        self._correlation_token = set_correlation_id(get_correlation_id())
        ScopeManager.begin_request()

    def __enter__(self):
        self._begin()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            ScopeManager.end_request()
        finally:
            reset_correlation_id(self._correlation_token)
        return False

    async def __aenter__(self):
        self._begin()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        try:
            await ScopeManager.aend_request()
        finally:
            reset_correlation_id(self._correlation_token)
        return False
