"""
Service Providers for Dependency Injection

Providers are responsible for creating and managing service instances
according to their configured scope.
"""

import inspect
import logging
import typing
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from .scopes import Scope, ScopeManager

if TYPE_CHECKING:
    from .container import Container

logger = logging.getLogger(__name__)

T = TypeVar("T")

OpenGenericFactory = Callable[["Container", tuple[Any, ...]], Any]


def type_name(service_type: Any) -> str:
    """Readable name for plain types and parametrized generics alike."""
    if typing.get_origin(service_type) is not None:
        return repr(service_type)
    return getattr(service_type, "__name__", repr(service_type))


class Provider(ABC, Generic[T]):
    """
    Abstract base class for service providers.

    Providers know how to create instances of a service and manage
    their lifecycle according to the configured scope.
    """

    def __init__(
        self,
        service_type: type[T],
        scope: Scope,
        factory: Callable[..., T] | None = None,
    ):
        self.service_type = service_type
        self.scope = scope
        self._factory = factory or service_type

    @abstractmethod
    def get(self, container: "Container") -> T:
        """
        Get or create a service instance.

        Args:
            container: The DI container for resolving dependencies

        Returns:
            Service instance
        """

    def _create_instance(self, container: "Container") -> T:
        """
        Create a new instance, injecting dependencies.

        Inspects the factory/constructor signature and resolves
        any type-hinted parameters from the container.
        """
        sig = inspect.signature(self._factory)
        kwargs: dict[str, Any] = {}

        for param_name, param in sig.parameters.items():
            if param_name == "self":
                continue
            if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue
            if param.annotation is inspect.Parameter.empty:
                continue

            param_type = param.annotation
            if param_type in (str, int, float, bool, type(None), Any):
                continue

            try:
                kwargs[param_name] = container.resolve(param_type)
            except KeyError:
                # If not registered and has default, skip
                if param.default is not inspect.Parameter.empty:
                    continue
                raise

        return self._factory(**kwargs)


class SingletonProvider(Provider[T]):
    """
    Provider that creates a single instance shared across the application.

    The instance is created lazily on first request and cached forever.
    """

    def __init__(
        self,
        service_type: type[T],
        factory: Callable[..., T] | None = None,
    ):
        super().__init__(service_type, Scope.SINGLETON, factory)
        self._instance: T | None = None

    def get(self, container: "Container") -> T:
        if self._instance is None:
            self._instance = self._create_instance(container)
            logger.debug(f"Created singleton: {type_name(self.service_type)}")
        return self._instance

    def reset(self) -> None:
        """Reset the singleton (useful for testing)."""
        self._instance = None


class RequestProvider(Provider[T]):
    """
    Provider that creates one instance per request scope.

    Uses ScopeManager to cache instances within the request scope.
    """

    def __init__(
        self,
        service_type: type[T],
        factory: Callable[..., T] | None = None,
    ):
        super().__init__(service_type, Scope.REQUEST, factory)

    def get(self, container: "Container") -> T:
        return ScopeManager.get_or_create(
            self.service_type, lambda: self._create_instance(container)
        )


class TransientProvider(Provider[T]):
    """
    Provider that creates a new instance every time.
    """

    def __init__(
        self,
        service_type: type[T],
        factory: Callable[..., T] | None = None,
    ):
        super().__init__(service_type, Scope.TRANSIENT, factory)

    def get(self, container: "Container") -> T:
        instance = self._create_instance(container)
        logger.debug(f"Created transient: {type_name(self.service_type)}")
        return instance


class FactoryProvider(Provider[T]):
    """
    Provider that uses a custom factory function.

    The factory is called with the container as the first argument,
    allowing manual dependency resolution.

    Usage:
        def create_session(container: Container) -> ClientSession:
            return container.resolve(MongoClient).start_session()

        container.register_factory(ClientSession, create_session, Scope.REQUEST)
    """

    def __init__(
        self,
        service_type: type[T],
        factory: Callable[["Container"], T],
        scope: Scope,
    ):
        super().__init__(service_type, scope, None)
        self._custom_factory = factory
        self._singleton_instance: T | None = None

    def get(self, container: "Container") -> T:
        if self.scope == Scope.SINGLETON:
            if self._singleton_instance is None:
                self._singleton_instance = self._custom_factory(container)
            return self._singleton_instance

        elif self.scope == Scope.REQUEST:
            return ScopeManager.get_or_create(
                self.service_type, lambda: self._custom_factory(container)
            )

        else:  # TRANSIENT
            return self._custom_factory(container)

    def reset(self) -> None:
        self._singleton_instance = None


class OpenGenericProvider:
    """
    Provider for every parametrization of a generic service.

    Registered once for ``Repository`` and asked for ``Repository[Product]``,
    it calls the factory with the container and the type arguments
    (``(Product,)``) and caches per parametrization according to its scope.

    Usage:
        container.register_open_generic(
            Repository,
            lambda c, args: MongoRepository(c.resolve(Database), c.resolve(ClientSession), *args),
        )
    """

    def __init__(self, generic_type: Any, factory: OpenGenericFactory, scope: Scope):
        self.generic_type = generic_type
        self.scope = scope
        self._factory = factory
        self._singletons: dict[Any, Any] = {}

    def get(self, container: "Container", closed_type: Any) -> Any:
        args = typing.get_args(closed_type)
        if not args:
            raise KeyError(
                f"{type_name(self.generic_type)} must be parametrized, "
                f"e.g. {type_name(self.generic_type)}[Entity]"
            )

        if self.scope == Scope.SINGLETON:
            if closed_type not in self._singletons:
                self._singletons[closed_type] = self._factory(container, args)
            return self._singletons[closed_type]

        if self.scope == Scope.REQUEST:
            return ScopeManager.get_or_create(
                closed_type, lambda: self._factory(container, args)
            )

        instance = self._factory(container, args)
        logger.debug(f"Created transient: {type_name(closed_type)}")
        return instance

    def reset(self) -> None:
        self._singletons.clear()


__all__ = [
    "Provider",
    "SingletonProvider",
    "RequestProvider",
    "TransientProvider",
    "FactoryProvider",
    "OpenGenericProvider",
    "type_name",
]
