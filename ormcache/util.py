"""Cache key generation, shared errors and small helpers."""

from __future__ import annotations

import hashlib
import random
import string
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

GORM_CACHE_PREFIX = "gormcache"

_INSTANCE_ID_CHARS = string.digits[1:] + "0" + string.ascii_lowercase + string.ascii_uppercase
_INSTANCE_ID_LENGTH = 5


@dataclass
class Kv:
    """A cache key and the string stored under it."""

    key: str
    value: str


class CacheError(Exception):
    """Base class of the errors the cache layer raises."""

    default_message = "cache error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(self.default_message if message is None else message)


class PrimaryCacheHit(CacheError):
    """The query was answered from the primary-key cache."""

    default_message = "primary cache hit"


class SearchCacheHit(CacheError):
    """The query was answered from the search cache."""

    default_message = "search cache hit"


class CacheUnmarshalError(CacheError):
    """A cached value was found but could not be decoded."""

    default_message = "cache hit, but unmarshal error"


class CacheLoadFailedError(CacheError):
    """A cached value was found but could not be loaded."""

    default_message = "cache hit, but load value error"


def gen_instance_id() -> str:
    """Return a random five character identifier for a cache instance."""
    return "".join(random.choices(_INSTANCE_ID_CHARS, k=_INSTANCE_ID_LENGTH))


def gen_primary_cache_key(instance_id: str, table_name: str, primary_key: str) -> str:
    return f"{GORM_CACHE_PREFIX}:{instance_id}:p:{table_name}:{primary_key}"


def gen_primary_cache_prefix(instance_id: str, table_name: str) -> str:
    return f"{GORM_CACHE_PREFIX}:{instance_id}:p:{table_name}"


def _format_value(value: Any) -> str:
    """Render a query variable the way it takes part in a search key."""
    if value is None:
        return "<nil>"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (bytes, bytearray)):
        return "[" + " ".join(str(b) for b in value) + "]"
    if isinstance(value, (list, tuple)):
        return "[" + " ".join(_format_value(item) for item in value) + "]"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "map[" + " ".join(f"{_format_value(k)}:{_format_value(v)}" for k, v in items) + "]"
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return str(value)


def gen_search_cache_key(instance_id: str, table_name: str, sql: str, *args: Any) -> str:
    """Return the key under which the result of ``sql`` with ``args`` is cached."""
    content = sql + "".join(":" + _format_value(arg) for arg in args)
    digest = hashlib.md5(content.encode("utf-8")).hexdigest()
    return f"{GORM_CACHE_PREFIX}:{instance_id}:s:{table_name}:{digest}"


def gen_search_cache_prefix(instance_id: str, table_name: str) -> str:
    return f"{GORM_CACHE_PREFIX}:{instance_id}:s:{table_name}"


def should_cache(table_name: str, tables: Iterable[str] | None) -> bool:
    """Tell whether ``table_name`` is cached; an empty table list caches all."""
    tables = list(tables or ())
    if not tables:
        return True
    return table_name in tables


def rand_floating_int(value: int) -> int:
    """Return ``value`` scaled by a random factor in [0.9, 1.1), truncated."""
    return int(value * (random.random() * 0.2 + 0.9))