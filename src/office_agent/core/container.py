"""Service container holding the process-wide collaborators."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from typing import Any, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class ServiceContainer:
    """Dependency container with lazy singleton semantics.

    Factories receive the container so they can resolve their own
    collaborators. Each key is built at most once per container.
    """

    def __init__(self) -> None:
        """Initialise container storage."""
        self._factories: dict[str, Callable[[ServiceContainer], Any]] = {}
        self._instances: dict[str, Any] = {}

    def register(self, key: str, factory: Callable[[ServiceContainer], T]) -> None:
        """Register a factory under a given key, dropping any cached instance."""
        self._factories[key] = factory
        self._instances.pop(key, None)

    def register_instance(self, key: str, instance: Any) -> None:
        """Register an already constructed service."""
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

    def try_resolve(self, key: str) -> Any | None:
        """Resolve a dependency if available; return None otherwise."""
        try:
            return self.resolve(key)
        except KeyError:
            return None

    def __contains__(self, key: object) -> bool:
        return key in self._factories

    async def aclose(self) -> None:
        """Close every built service exposing ``close`` and clear the cache."""
        for key, instance in reversed(list(self._instances.items())):
            closer = getattr(instance, "close", None)
            if not callable(closer):
                continue
            try:
                result = closer()
                if inspect.isawaitable(result):
                    await result
            except Exception:  # pylint: disable=broad-except
                LOGGER.exception("Failed to close service %s", key)
        self._instances.clear()


__all__ = ["ServiceContainer"]
