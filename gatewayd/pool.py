"""A thread-safe keyed pool with an optional capacity."""

from __future__ import annotations

import threading
from collections.abc import Callable, Hashable
from typing import Any

from gatewayd.config import EMPTY_POOL_CAPACITY
from gatewayd.errors import ErrCode, GatewayDError

Callback = Callable[[Any, Any], bool]


class Pool:
    """Key/value store; a capacity of zero or less means unlimited."""

    def __init__(self, cap: int = EMPTY_POOL_CAPACITY) -> None:
        self._cap = cap
        self._items: dict[Hashable, Any] = {}
        self._lock = threading.RLock()

    def _full(self) -> bool:
        return self._cap > 0 and len(self._items) >= self._cap

    def for_each(self, callback: Callback) -> None:
        """Call ``callback(key, value)`` for each entry until it returns False.

        The entries are snapshotted first, so the callback may change the pool.
        """
        with self._lock:
            snapshot = list(self._items.items())
        for key, value in snapshot:
            if not callback(key, value):
                break

    def put(self, key: Hashable, value: Any) -> None:
        """Store ``value`` under ``key``."""
        with self._lock:
            if self._full():
                raise GatewayDError(ErrCode.POOL_EXHAUSTED)
            if value is None:
                raise GatewayDError(ErrCode.NIL_POINTER)
            self._items[key] = value

    def get(self, key: Hashable) -> Any:
        """Return the value under ``key``, or None."""
        with self._lock:
            return self._items.get(key)

    def get_or_put(self, key: Hashable, value: Any) -> tuple[Any, bool]:
        """Return ``(stored value, loaded)``; store ``value`` if ``key`` is absent."""
        with self._lock:
            if self._full():
                raise GatewayDError(ErrCode.POOL_EXHAUSTED)
            if value is None:
                raise GatewayDError(ErrCode.NIL_POINTER)
            if key in self._items:
                return self._items[key], True
            self._items[key] = value
            return value, False

    def pop(self, key: Hashable) -> Any:
        """Remove ``key`` and return its value, or None if absent."""
        with self._lock:
            return self._items.pop(key, None)

    def remove(self, key: Hashable) -> None:
        """Remove ``key`` if present."""
        with self._lock:
            self._items.pop(key, None)

    def size(self) -> int:
        """Return the number of entries."""
        with self._lock:
            return len(self._items)

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._items

    def clear(self) -> None:
        """Remove every entry."""
        with self._lock:
            self._items = {}

    def capacity(self) -> int:
        """Return the capacity given at construction."""
        return self._cap