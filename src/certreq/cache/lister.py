"""Thread-safe in-memory object caches.

Stand in for the informer/lister layer of a Kubernetes controller:
objects are stored by ``(namespace, name)``; cluster-scoped objects use
an empty namespace.  Change handlers let the controller re-enqueue work
when a referenced object appears.

Usage::

    issuers = Lister("Issuer", key_func=namespaced_key)
    issuers.add(issuer)
    issuers.on_change(controller.on_issuer_change)
    issuer = issuers.get("default", "vault")   # raises NotFoundError
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from certreq.core.errors import NotFoundError

log = logging.getLogger(__name__)

T = TypeVar("T")

ChangeHandler = Callable[[Any], None]


def namespaced_key(obj: Any) -> tuple[str, str]:  # noqa: ANN401
    return (obj.namespace or "", obj.name)


def cluster_key(obj: Any) -> tuple[str, str]:  # noqa: ANN401
    return ("", obj.name)


class Lister(Generic[T]):
    """In-memory store of one object kind."""

    def __init__(
        self,
        kind: str,
        key_func: Callable[[T], tuple[str, str]] = namespaced_key,
    ) -> None:
        self.kind = kind
        self._key_func = key_func
        self._lock = threading.Lock()
        self._items: dict[tuple[str, str], T] = {}
        self._handlers: list[ChangeHandler] = []

    def on_change(self, handler: ChangeHandler) -> None:
        """Register *handler* to be called with each added or updated object."""
        self._handlers.append(handler)

    def add(self, obj: T) -> None:
        """Insert or replace *obj* and notify change handlers."""
        with self._lock:
            self._items[self._key_func(obj)] = obj
        for handler in list(self._handlers):
            try:
                handler(obj)
            except Exception:
                log.exception("%s change handler failed", self.kind)

    def delete(self, namespace: str | None, name: str) -> None:
        with self._lock:
            self._items.pop((namespace or "", name), None)

    def get(self, namespace: str | None, name: str) -> T:
        """Return the object or raise :class:`NotFoundError`."""
        with self._lock:
            obj = self._items.get((namespace or "", name))
        if obj is None:
            raise NotFoundError(self.kind, name, namespace)
        return obj

    def list(self, namespace: str | None = None) -> list[T]:
        """All objects, optionally restricted to one namespace."""
        with self._lock:
            items = list(self._items.items())
        return [obj for (ns, _), obj in items if namespace is None or ns == namespace]

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
