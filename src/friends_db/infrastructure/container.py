"""Dependency injection container."""

from __future__ import annotations

from functools import partial
from typing import Any, Callable, TypeVar

from friends_db.adapters.outbound import SQLiteRecordEngine
from friends_db.application import ConnectionManager, FriendStore, upgrade_friends_schema
from friends_db.infrastructure.config import Config
from friends_db.infrastructure.metrics import MetricsRegistry, get_metrics

T = TypeVar("T")


class Container:
    """
    Simple dependency injection container.

    Supports singleton and factory registrations with lazy initialization.
    """

    def __init__(self) -> None:
        """Initialize the container."""
        self._factories: dict[type, Callable[[Container], Any]] = {}
        self._instances: dict[type, Any] = {}

    def register_singleton(self, interface: type[T], instance: T) -> None:
        """
        Register a singleton instance.

        Args:
            interface: The interface/type to register
            instance: The singleton instance
        """
        self._instances[interface] = instance

    def register_factory(
        self,
        interface: type[T],
        factory: Callable[[Container], T],
    ) -> None:
        """
        Register a factory function for lazy instantiation.

        The factory runs on first resolve; its result is reused afterwards.

        Args:
            interface: The interface/type to register
            factory: Factory function that takes the container and returns an instance
        """
        self._factories[interface] = factory

    def resolve(self, interface: type[T]) -> T:
        """
        Resolve a dependency.

        Args:
            interface: The interface/type to resolve

        Returns:
            The resolved instance

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
        return interface in self._factories or interface in self._instances

    def clear(self) -> None:
        """Clear all registrations and instances."""
        self._factories.clear()
        self._instances.clear()


def build_container(config: Config, metrics: MetricsRegistry | None = None) -> Container:
    """
    Wire the process-scoped objects once at startup.

    Registers the configuration, the metrics registry, a ConnectionManager
    backed by SQLite files in the configured data directory, and the
    FriendStore that depends on it.

    Args:
        config: Application configuration
        metrics: Metrics registry (global registry if None)

    Returns:
        The populated container
    """
    container = Container()
    container.register_singleton(Config, config)
    container.register_singleton(MetricsRegistry, metrics or get_metrics())

    storage = config.storage
    engine_factory = partial(
        SQLiteRecordEngine.for_database,
        storage.data_dir,
        journal_mode=storage.journal_mode,
        synchronous=storage.synchronous,
        busy_timeout=storage.busy_timeout,
    )

    container.register_factory(
        ConnectionManager,
        lambda c: ConnectionManager(
            engine_factory,
            on_upgrade_needed=upgrade_friends_schema,
            metrics=c.resolve(MetricsRegistry),
        ),
    )
    container.register_factory(
        FriendStore,
        lambda c: FriendStore(c.resolve(ConnectionManager)),
    )
    return container
