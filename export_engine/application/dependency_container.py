"""
Service Registry

The app factory builds the export engine once per Flask app and stores every
shared service here, keyed by its class. API resources and Celery tasks look
services up through ``current_app.container``.
"""

import logging
import threading
from typing import Any, Dict, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DependencyNotFoundError(Exception):
    """No service was registered under the requested key."""


class DependencyContainer:
    """
    Maps service classes to the single instance the app shares.

    ``override`` shadows a registration without touching it; tests use it to
    swap one collaborator (a failing dispatcher, a fake clock) and
    ``clear_overrides`` restores the wired graph.
    """

    def __init__(self):
        self._services: Dict[Type, Any] = {}
        self._shadowed: Dict[Type, Any] = {}
        self._lock = threading.Lock()

    def register_singleton(self, key: Type[T], instance: T) -> None:
        with self._lock:
            self._services[key] = instance
        logger.debug(f"Service {key.__name__} -> {type(instance).__name__}")

    def resolve(self, key: Type[T]) -> T:
        """
        Look up the instance for ``key``, preferring an override.

        Raises:
            DependencyNotFoundError: nothing is registered for ``key``
        """
        with self._lock:
            for table in (self._shadowed, self._services):
                if key in table:
                    return table[key]
        raise DependencyNotFoundError(f"{key.__name__} is not registered in the container")

    def override(self, key: Type[T], instance: T) -> None:
        with self._lock:
            self._shadowed[key] = instance
        logger.debug(f"Service {key.__name__} overridden by {type(instance).__name__}")

    def clear_overrides(self) -> None:
        with self._lock:
            self._shadowed.clear()

    def is_registered(self, key: Type) -> bool:
        with self._lock:
            return key in self._services or key in self._shadowed

    def __len__(self) -> int:
        with self._lock:
            return len(self._services)
