"""Storage interface and an in-process LRU storage with expiry."""

from __future__ import annotations

import abc
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from ormcache.util import Kv, rand_floating_int

_ITEMS_TO_PRUNE = 500


class DataLayer(abc.ABC):
    """Key-value storage behind the query cache."""

    @abc.abstractmethod
    def init(self, config: Any, prefix: str) -> None: ...

    @abc.abstractmethod
    def batch_key_exist(self, keys: Iterable[str]) -> bool: ...

    @abc.abstractmethod
    def key_exists(self, key: str) -> bool: ...

    @abc.abstractmethod
    def get_value(self, key: str) -> str: ...

    @abc.abstractmethod
    def batch_get_values(self, keys: Iterable[str]) -> list[str]: ...

    @abc.abstractmethod
    def clean_cache(self) -> None: ...

    @abc.abstractmethod
    def delete_keys_with_prefix(self, key_prefix: str) -> None: ...

    @abc.abstractmethod
    def delete_key(self, key: str) -> None: ...

    @abc.abstractmethod
    def batch_delete_keys(self, keys: Iterable[str]) -> None: ...

    @abc.abstractmethod
    def batch_set_keys(self, kvs: Iterable[Kv]) -> None: ...

    @abc.abstractmethod
    def set_key(self, kv: Kv) -> None: ...


@dataclass
class _Item:
    value: str
    expires_at: float


class MemoryLayer(DataLayer):
    """In-memory storage: least recently used items go first when full."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._items: OrderedDict[str, _Item] = OrderedDict()
        self._max_size = 0
        self._ttl = 0
        self._lock = threading.RLock()

    def init(self, config: Any, prefix: str) -> None:
        with self._lock:
            self._items = OrderedDict()
            self._max_size = config.cache_size
            self._ttl = config.cache_ttl

    def _live(self, key: str) -> _Item | None:
        item = self._items.get(key)
        if item is None:
            return None
        self._items.move_to_end(key)
        if item.expires_at < self._clock():
            return None
        return item

    def _store(self, kv: Kv) -> None:
        if self._ttl > 0:
            lifetime = rand_floating_int(self._ttl) / 1000
        else:
            lifetime = rand_floating_int(24) * 3600
        self._items[kv.key] = _Item(kv.value, self._clock() + lifetime)
        self._items.move_to_end(kv.key)
        if len(self._items) > self._max_size:
            for _ in range(min(_ITEMS_TO_PRUNE, len(self._items))):
                self._items.popitem(last=False)

    def clean_cache(self) -> None:
        with self._lock:
            self._items.clear()

    def batch_key_exist(self, keys: Iterable[str]) -> bool:
        with self._lock:
            return all(self._live(key) is not None for key in keys)

    def key_exists(self, key: str) -> bool:
        with self._lock:
            return self._live(key) is not None

    def get_value(self, key: str) -> str:
        """Return the value for ``key``; raise KeyError if absent or expired."""
        with self._lock:
            item = self._live(key)
        if item is None:
            raise KeyError("cannot get item")
        return item.value

    def batch_get_values(self, keys: Iterable[str]) -> list[str]:
        """Return all values in order; raise KeyError if any one is missing."""
        keys = list(keys)
        with self._lock:
            items = [self._live(key) for key in keys]
        values = [item.value for item in items if item is not None]
        if len(values) != len(keys):
            raise KeyError("cannot get items")
        return values

    def delete_keys_with_prefix(self, key_prefix: str) -> None:
        with self._lock:
            for key in [k for k in self._items if k.startswith(key_prefix)]:
                del self._items[key]

    def delete_key(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def batch_delete_keys(self, keys: Iterable[str]) -> None:
        with self._lock:
            for key in keys:
                self._items.pop(key, None)

    def batch_set_keys(self, kvs: Iterable[Kv]) -> None:
        with self._lock:
            for kv in kvs:
                self._store(kv)

    def set_key(self, kv: Kv) -> None:
        with self._lock:
            self._store(kv)