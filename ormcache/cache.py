"""The query cache: key bookkeeping on top of a storage layer."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from typing import Any

from ormcache.config import (
    CacheConfig,
    CacheStorage,
    DefaultLogger,
    RedisConfig,
    RedisConfigMode,
)
from ormcache.memory_layer import DataLayer, MemoryLayer
from ormcache.redis_layer import RedisLayer
from ormcache.util import (
    GORM_CACHE_PREFIX,
    Kv,
    gen_instance_id,
    gen_primary_cache_key,
    gen_primary_cache_prefix,
    gen_search_cache_key,
    gen_search_cache_prefix,
)


class QueryCache:
    """Caches query results by primary key and by search statement."""

    def __init__(self, config: CacheConfig) -> None:
        self.config = config
        self.logger: Any = None
        self.instance_id = ""
        self._cache: DataLayer | None = None
        self._hit_count = 0
        self._hit_lock = threading.Lock()

    def init(self) -> None:
        """Set up the storage layer and logger; raise if storage cannot start."""
        config = self.config
        if config.cache_storage == CacheStorage.REDIS:
            if config.redis_config is None:
                raise ValueError("please init redis config!")
            config.redis_config.init_client()
        self.instance_id = gen_instance_id()
        prefix = f"{GORM_CACHE_PREFIX}:{self.instance_id}"

        if config.cache_storage == CacheStorage.REDIS:
            self._cache = RedisLayer()
        else:
            self._cache = MemoryLayer()

        if config.debug_logger is None:
            config.debug_logger = DefaultLogger()
        self.logger = config.debug_logger
        self.logger.debug = config.debug_mode

        try:
            self._cache.init(config, prefix)
        except Exception as exc:
            self.logger.error("[Init] cache init error: %s", exc)
            raise

    @property
    def _layer(self) -> DataLayer:
        if self._cache is None:
            raise RuntimeError("cache is not initialised")
        return self._cache

    def name(self) -> str:
        return GORM_CACHE_PREFIX

    def hit_count(self) -> int:
        with self._hit_lock:
            return self._hit_count

    def reset_hit_count(self) -> None:
        with self._hit_lock:
            self._hit_count = 0

    def incr_hit_count(self) -> None:
        with self._hit_lock:
            self._hit_count += 1

    def reset_cache(self) -> None:
        """Zero the hit count and drop everything this instance cached."""
        self.reset_hit_count()
        try:
            self._layer.clean_cache()
        except Exception as exc:
            self.logger.error("[ResetCache] reset cache error: %s", exc)
            raise

    def _primary_keys(self, table_name: str, primary_keys: Iterable[str]) -> list[str]:
        return [gen_primary_cache_key(self.instance_id, table_name, key) for key in primary_keys]

    def invalidate_search_cache(self, table_name: str) -> None:
        self._layer.delete_keys_with_prefix(gen_search_cache_prefix(self.instance_id, table_name))

    def invalidate_primary_cache(self, table_name: str, primary_key: str) -> None:
        self._layer.delete_key(gen_primary_cache_key(self.instance_id, table_name, primary_key))

    def batch_invalidate_primary_cache(self, table_name: str, primary_keys: Iterable[str]) -> None:
        self._layer.batch_delete_keys(self._primary_keys(table_name, primary_keys))

    def invalidate_all_primary_cache(self, table_name: str) -> None:
        self._layer.delete_keys_with_prefix(gen_primary_cache_prefix(self.instance_id, table_name))

    def batch_primary_key_exists(self, table_name: str, primary_keys: Iterable[str]) -> bool:
        return self._layer.batch_key_exist(self._primary_keys(table_name, primary_keys))

    def search_key_exists(self, table_name: str, sql: str, *args: Any) -> bool:
        return self._layer.key_exists(gen_search_cache_key(self.instance_id, table_name, sql, *args))

    def batch_set_primary_key_cache(self, table_name: str, kvs: Iterable[Kv]) -> None:
        """Store values under primary cache keys built from each ``kv.key``."""
        stored = [
            Kv(gen_primary_cache_key(self.instance_id, table_name, kv.key), kv.value) for kv in kvs
        ]
        self._layer.batch_set_keys(stored)

    def set_search_cache(self, cache_value: str, table_name: str, sql: str, *args: Any) -> None:
        key = gen_search_cache_key(self.instance_id, table_name, sql, *args)
        self._layer.set_key(Kv(key, cache_value))

    def get_search_cache(self, table_name: str, sql: str, *args: Any) -> str:
        """Return the cached search result; raise KeyError when absent."""
        return self._layer.get_value(gen_search_cache_key(self.instance_id, table_name, sql, *args))

    def batch_get_primary_cache(self, table_name: str, primary_keys: Iterable[str]) -> list[str]:
        return self._layer.batch_get_values(self._primary_keys(table_name, primary_keys))


def new_cache(config: CacheConfig | None) -> QueryCache:
    """Build and initialise a cache from ``config``."""
    if config is None:
        raise ValueError("you pass a nil config")
    cache = QueryCache(config)
    cache.init()
    return cache


def redis_config_with_options(options: dict[str, Any]) -> RedisConfig:
    """Redis settings that create a client from keyword options."""
    return RedisConfig(mode=RedisConfigMode.OPTIONS, options=options)


def redis_config_with_client(client: Any) -> RedisConfig:
    """Redis settings that use an existing client."""
    return RedisConfig(mode=RedisConfigMode.RAW, client=client)