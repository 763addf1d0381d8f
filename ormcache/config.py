"""Cache configuration, the default logger and Redis connection settings."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Any

import redis


class CacheLevel(IntEnum):
    """Which caches are active."""

    OFF = 0
    ONLY_PRIMARY = 1
    ONLY_SEARCH = 2
    ALL = 3


class CacheStorage(IntEnum):
    """Where cached values are kept."""

    MEMORY = 0
    REDIS = 1


class RedisConfigMode(IntEnum):
    """How the Redis client is obtained."""

    OPTIONS = 0
    RAW = 1


def _timestamp() -> str:
    now = datetime.now()
    millis = f"{now.microsecond // 1000:03d}".rstrip("0")
    stamp = now.strftime("%Y-%m-%d %H:%M:%S")
    return f"{stamp}.{millis}" if millis else stamp


@dataclass
class DefaultLogger:
    """Logger that prints to standard output, only in debug mode."""

    debug: bool = False

    def _emit(self, level: str, message: str, args: tuple) -> None:
        if not self.debug:
            return
        text = message % args if args else message
        print(f"{_timestamp()} [{level}] {text}")

    def info(self, message: str, *args: Any) -> None:
        self._emit("INFO", message, args)

    def error(self, message: str, *args: Any) -> None:
        self._emit("ERROR", message, args)


@dataclass
class RedisConfig:
    """Redis settings: keyword options for a new client, or a ready client."""

    mode: RedisConfigMode = RedisConfigMode.OPTIONS
    options: dict[str, Any] | None = None
    client: Any = None
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)
    _initialized: bool = field(default=False, init=False, repr=False, compare=False)

    def init_client(self) -> Any:
        """Create the client once when built from options, and return it."""
        with self._lock:
            if not self._initialized:
                self._initialized = True
                if self.mode == RedisConfigMode.OPTIONS:
                    self.client = redis.Redis(**(self.options or {}))
        return self.client


@dataclass
class CacheConfig:
    """Settings that decide what is cached, where and for how long."""

    cache_level: CacheLevel = CacheLevel.OFF
    cache_storage: CacheStorage = CacheStorage.MEMORY
    redis_config: RedisConfig | None = None
    # Only these tables are cached; an empty list caches every table.
    tables: list[str] = field(default_factory=list)
    invalidate_when_update: bool = False
    # Time to live in milliseconds; 0 keeps values with no fixed expiry.
    cache_ttl: int = 0
    # Queries returning more objects than this are not cached; 0 caches all.
    cache_max_item_cnt: int = 0
    # Maximum number of items kept in memory storage.
    cache_size: int = 0
    debug_mode: bool = False
    debug_logger: Any = None