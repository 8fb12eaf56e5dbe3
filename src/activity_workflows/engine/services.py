"""Service locator for external dependencies activities need at execution time.

Keys are types or strings. Register either an instance or a factory; factory
results are cached unless registered with `singleton=False`.
"""

from __future__ import annotations

import logging
import sys
import threading
from collections.abc import Callable
from typing import Any

import requests

from .errors import ServiceNotFound

logger = logging.getLogger(__name__)

CONSOLE = "console"


def _key_name(key: object) -> str:
    if isinstance(key, type):
        return f"{key.__module__}.{key.__qualname__}"
    return str(key)


class ServiceProvider:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._instances: dict[object, object] = {}
        self._factories: dict[object, tuple[Callable[[ServiceProvider], object], bool]] = {}

    @classmethod
    def default(cls) -> ServiceProvider:
        """A provider with the services built-in activities expect."""

        provider = cls()
        provider.register_factory(CONSOLE, lambda _: sys.stdout, singleton=False)
        provider.register_factory(requests.Session, lambda _: requests.Session())
        return provider

    def register(self, key: object, instance: object) -> None:
        with self._lock:
            self._factories.pop(key, None)
            self._instances[key] = instance

    def register_factory(
        self,
        key: object,
        factory: Callable[[ServiceProvider], object],
        *,
        singleton: bool = True,
    ) -> None:
        with self._lock:
            self._instances.pop(key, None)
            self._factories[key] = (factory, singleton)

    def get(self, key: object) -> Any:
        with self._lock:
            if key in self._instances:
                return self._instances[key]
            entry = self._factories.get(key)

        if entry is None:
            raise ServiceNotFound(f"No service registered for {_key_name(key)}")

        factory, singleton = entry
        instance = factory(self)
        if singleton:
            with self._lock:
                instance = self._instances.setdefault(key, instance)
            logger.debug("Created service", extra={"service": _key_name(key)})
        return instance

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._instances or key in self._factories
