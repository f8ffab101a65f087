"""Dependency injection container and runtime wiring."""

from __future__ import annotations

from typing import Any, Callable, TypeVar

from prometheus_client import CollectorRegistry

from kv_schema.infrastructure.config import Config, get_config
from kv_schema.infrastructure.logging import get_logger, setup_logging
from kv_schema.infrastructure.metrics import MetricsRegistry, get_metrics, setup_metrics
from kv_schema.infrastructure.tracing import setup_tracing

T = TypeVar("T")


class Container:
    """
    Simple dependency injection container.

    Supports singleton and factory registrations with lazy initialization.
    """

    def __init__(self) -> None:
        """Initialize the container."""
        self._singletons: dict[type, Any] = {}
        self._factories: dict[type, Callable[[Container], Any]] = {}
        self._instances: dict[type, Any] = {}

    def register_singleton(self, interface: type[T], instance: T) -> None:
        """
        Register a singleton instance.

        Args:
            interface: The interface/type to register
            instance: The singleton instance
        """
        self._singletons[interface] = instance
        self._instances[interface] = instance

    def register_factory(
        self,
        interface: type[T],
        factory: Callable[[Container], T],
    ) -> None:
        """
        Register a factory function for lazy instantiation.

        The factory runs on the first resolve; its result is reused after that.

        Args:
            interface: The interface/type to register
            factory: Factory function that takes the container and returns an instance
        """
        self._instances.pop(interface, None)
        self._factories[interface] = factory

    def resolve(self, interface: type[T]) -> T:
        """
        Resolve a dependency.

        Raises:
            KeyError: If no registration exists for the interface
        """
        if interface in self._instances:
            return self._instances[interface]

        if interface in self._factories:
            instance = self._factories[interface](self)
            self._instances[interface] = instance
            return instance

        raise KeyError(f"No registration found for {interface}")

    def has(self, interface: type) -> bool:
        """Check if an interface is registered."""
        return (
            interface in self._singletons
            or interface in self._factories
            or interface in self._instances
        )

    def clear(self) -> None:
        """Clear all registrations and instances."""
        self._singletons.clear()
        self._factories.clear()
        self._instances.clear()


# Global container instance
_container: Container | None = None


def get_container() -> Container:
    """Get the global container instance."""
    global _container
    if _container is None:
        _container = Container()
    return _container


def reset_container() -> None:
    """Reset the global container (useful for testing)."""
    global _container
    if _container is not None:
        _container.clear()
    _container = None


def build_storage(config: Config, metrics: MetricsRegistry | None = None) -> Any:
    """
    Assemble the configured storage backend.

    Args:
        config: Runtime configuration
        metrics: Registry for the layered tier counters

    Returns:
        The backend, wrapped in a LayeredStorage with an in-memory tier 0
        when config.storage.cache_tier is set
    """
    # Imported here: the adapters depend on this package for logging and metrics
    from kv_schema.adapters.outbound import (
        FileStorage,
        InMemoryStorage,
        LayeredStorage,
        WritePolicy,
    )

    storage_config = config.storage
    backend: Any
    if storage_config.backend == "file":
        backend = FileStorage(storage_config.data_dir)
    else:
        backend = InMemoryStorage()

    if not storage_config.cache_tier:
        return backend
    return LayeredStorage(
        [InMemoryStorage(), backend],
        write_policy=WritePolicy(storage_config.write_policy),
        metrics=metrics,
    )


def bootstrap(
    config: Config | None = None,
    schema: Any | None = None,
    registry: CollectorRegistry | None = None,
) -> Container:
    """
    Configure observability and register the runtime components.

    Registers Config, MetricsRegistry and Storage; with a schema, also a
    lazily built Database over that storage.

    Args:
        config: Runtime configuration (defaults to get_config())
        schema: Optional Schema to serve through a Database
        registry: Prometheus registry for the metrics (defaults to the global one)

    Returns:
        The global container
    """
    from kv_schema.adapters.outbound import PydanticRecordSerializer
    from kv_schema.application import Database
    from kv_schema.ports.outbound import Storage

    config = config or get_config()
    observability = config.observability

    logger = setup_logging(observability.log_level, observability.log_format)
    if observability.otel_endpoint:
        setup_tracing(
            observability.otel_service_name,
            observability.otel_endpoint,
            sample_ratio=observability.otel_sample_ratio,
        )

    if observability.metrics_enabled:
        metrics = setup_metrics(observability.metrics_port, registry)
    elif registry is not None:
        metrics = MetricsRegistry(registry)
    else:
        metrics = get_metrics()

    container = get_container()
    container.register_singleton(Config, config)
    container.register_singleton(MetricsRegistry, metrics)
    container.register_factory(Storage, lambda c: build_storage(config, metrics))

    if schema is not None:
        strict = config.serialization.strict
        container.register_factory(
            Database,
            lambda c: Database(
                schema,
                c.resolve(Storage),
                lambda table: PydanticRecordSerializer.for_table(table, strict=strict),
                metrics=metrics,
            ),
        )

    logger.info(
        "kv_schema_container_initialized",
        backend=config.storage.backend,
        cache_tier=config.storage.cache_tier,
        tables=len(schema) if schema is not None else 0,
    )
    return container
