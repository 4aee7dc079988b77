"""
Dependency Injection Container

A lightweight, FastAPI-native DI container with proper service lifetimes
and open-generic registrations (``Repository`` serving ``Repository[X]``
for any entity X).
"""

import logging
import typing
from collections.abc import Callable
from typing import Any, Optional, TypeVar

from .providers import OpenGenericFactory, OpenGenericProvider, Provider, type_name
from .scopes import Scope

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Container:
    """
    Dependency Injection Container with proper service lifetimes.

    Supports three scopes:
    - SINGLETON: One instance for app lifetime
    - REQUEST: One instance per request scope
    - TRANSIENT: New instance on every resolve

    Usage:
        container = Container()

        # Register with factory
        container.register_factory(
            Database,
            lambda c: c.resolve(MongoClient)["shop"],
            scope=Scope.SINGLETON
        )

        # Register instance directly
        container.register_instance(RepositoryConfig, config)

        # Register one factory for every parametrization
        container.register_open_generic(Repository, build_repository)

        # Resolve
        products = container.resolve(Repository[Product])
    """

    _global_instance: Optional["Container"] = None

    def __init__(self):
        self._providers: dict[Any, Provider] = {}
        self._instances: dict[Any, Any] = {}  # For register_instance
        self._open_generics: dict[Any, OpenGenericProvider] = {}

    @classmethod
    def get_global(cls) -> "Container":
        """Get the global container instance."""
        if cls._global_instance is None:
            cls._global_instance = Container()
        return cls._global_instance

    @classmethod
    def set_global(cls, container: "Container") -> None:
        """Set the global container instance."""
        cls._global_instance = container

    @classmethod
    def reset_global(cls) -> None:
        """Reset the global container (useful for testing)."""
        cls._global_instance = None

    def register(
        self,
        service_type: type[T],
        implementation: type[T] | None = None,
        scope: Scope = Scope.SINGLETON,
    ) -> "Container":
        """
        Register a service type with the container.

        Args:
            service_type: The type to register (interface or concrete class)
            implementation: Optional implementation class (defaults to service_type)
            scope: Service lifetime scope

        Returns:
            Self for chaining

        Example:
            container.register(RepositoryConfig)
            container.register(Clock, SystemClock, Scope.TRANSIENT)
        """
        from .providers import RequestProvider, SingletonProvider, TransientProvider

        impl = implementation or service_type

        if scope == Scope.SINGLETON:
            self._providers[service_type] = SingletonProvider(service_type, impl)
        elif scope == Scope.REQUEST:
            self._providers[service_type] = RequestProvider(service_type, impl)
        else:
            self._providers[service_type] = TransientProvider(service_type, impl)

        logger.debug(f"Registered {type_name(service_type)} as {scope.value}")
        return self

    def register_factory(
        self,
        service_type: type[T],
        factory: Callable[["Container"], T],
        scope: Scope = Scope.SINGLETON,
    ) -> "Container":
        """
        Register a service with a custom factory function.

        The factory receives the container and can resolve dependencies manually.

        Args:
            service_type: The type to register
            factory: Factory function (container) -> instance
            scope: Service lifetime scope

        Returns:
            Self for chaining

        Example:
            container.register_factory(
                ClientSession,
                lambda c: c.resolve(MongoClient).start_session(),
                Scope.REQUEST
            )
        """
        from .providers import FactoryProvider

        self._providers[service_type] = FactoryProvider(service_type, factory, scope)
        logger.debug(f"Registered factory for {type_name(service_type)} as {scope.value}")
        return self

    def register_instance(self, service_type: type[T], instance: T) -> "Container":
        """
        Register an existing instance as a singleton.

        Useful for configuration objects or externally created instances.

        Args:
            service_type: The type to register
            instance: The instance to use

        Returns:
            Self for chaining
        """
        self._instances[service_type] = instance
        logger.debug(f"Registered instance for {type_name(service_type)}")
        return self

    def register_open_generic(
        self,
        generic_type: Any,
        factory: OpenGenericFactory,
        scope: Scope = Scope.TRANSIENT,
    ) -> "Container":
        """
        Register one factory serving every parametrization of a generic type.

        The factory receives the container and the tuple of type arguments.

        Args:
            generic_type: The unparametrized generic (e.g. ``Repository``)
            factory: Factory function (container, type_args) -> instance
            scope: Service lifetime scope, applied per parametrization

        Returns:
            Self for chaining

        Example:
            container.register_open_generic(
                Repository,
                lambda c, args: MongoRepository(
                    c.resolve(Database), c.resolve(ClientSession), *args
                ),
            )
            container.resolve(Repository[Product])
        """
        self._open_generics[generic_type] = OpenGenericProvider(generic_type, factory, scope)
        logger.debug(f"Registered open generic {type_name(generic_type)} as {scope.value}")
        return self

    def resolve(self, service_type: type[T]) -> T:
        """
        Resolve a service instance.

        Args:
            service_type: The type to resolve

        Returns:
            Service instance

        Raises:
            KeyError: If service is not registered
        """
        # Check direct instances first
        if service_type in self._instances:
            return self._instances[service_type]

        if service_type in self._providers:
            return self._providers[service_type].get(self)

        origin = typing.get_origin(service_type)
        if origin is not None and origin in self._open_generics:
            return self._open_generics[origin].get(self, service_type)

        name = type_name(service_type)
        raise KeyError(
            f"Service {name} is not registered. Call container.register({name}) first."
        )

    def try_resolve(self, service_type: type[T]) -> T | None:
        """
        Try to resolve a service, returning None if not registered.

        Args:
            service_type: The type to resolve

        Returns:
            Service instance or None
        """
        try:
            return self.resolve(service_type)
        except KeyError:
            return None

    def is_registered(self, service_type: Any) -> bool:
        """Check if a service type (or its generic origin) is registered."""
        if service_type in self._providers or service_type in self._instances:
            return True
        return service_type in self._open_generics or (
            typing.get_origin(service_type) in self._open_generics
        )

    def reset(self) -> None:
        """
        Reset all registrations and cached instances.

        Useful for testing.
        """
        for provider in [*self._providers.values(), *self._open_generics.values()]:
            if hasattr(provider, "reset"):
                provider.reset()
        self._providers.clear()
        self._instances.clear()
        self._open_generics.clear()
        logger.debug("Container reset")

    def __contains__(self, service_type: Any) -> bool:
        """Support 'in' operator for checking registration."""
        return self.is_registered(service_type)


# FastAPI integration helpers
def inject(service_type: type[T]) -> Callable[..., Any]:
    """
    FastAPI dependency that resolves a service from the container.

    The container is read from ``app.state.container`` when present,
    otherwise the global container is used.

    Usage:
        @app.get("/products")
        async def list_products(
            products: AsyncRepository[Product] = Depends(inject(AsyncRepository[Product])),
        ):
            return await products.get_all()
    """
    from fastapi import Request

    async def _dependency(request: Request) -> T:
        container = getattr(request.app.state, "container", None)
        if container is None:
            container = Container.get_global()
        return container.resolve(service_type)

    return _dependency


# Alias for cleaner syntax
Inject = inject
