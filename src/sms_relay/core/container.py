"""Simple service container for wiring relay components."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

T = TypeVar("T")


class ServiceContainer:
    """Dependency container with lazy singleton semantics.

    Factories receive the container so they can resolve their own
    collaborators. Pre-built objects (platform adapters, test fakes) are
    registered with :meth:`provide`.
    """

    def __init__(self) -> None:
        self._factories: dict[str, Callable[[ServiceContainer], Any]] = {}
        self._instances: dict[str, Any] = {}

    def register(self, key: str, factory: Callable[[ServiceContainer], T]) -> None:
        """Register a factory under a given key, dropping any cached instance."""
        self._factories[key] = factory
        self._instances.pop(key, None)

    def provide(self, key: str, instance: Any) -> None:
        """Register an already constructed instance."""
        self._factories[key] = lambda _container: instance
        self._instances[key] = instance

    def resolve(self, key: str) -> Any:
        """Resolve a dependency by key, invoking its factory once."""
        if key in self._instances:
            return self._instances[key]
        if key not in self._factories:
            msg = f"Service '{key}' is not registered"
            raise KeyError(msg)
        instance = self._factories[key](self)
        self._instances[key] = instance
        return instance


__all__ = ["ServiceContainer"]
