"""Redis-backed storage for the query cache."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import redis

from ormcache.config import DefaultLogger, RedisConfigMode
from ormcache.memory_layer import DataLayer
from ormcache.util import Kv, rand_floating_int

_BATCH_KEY_EXIST_SCRIPT = """
for idx, val in pairs(KEYS) do
    local exists = redis.call('EXISTS', val)
    if exists == 0 then
        return 0
    end
end
return 1"""

_CLEAN_CACHE_SCRIPT = """
local keys = redis.call('keys', ARGV[1])
for i=1,#keys,5000 do
    redis.call('del', 'defaultKey', unpack(keys, i, math.min(i+4999, #keys)))
end
return 1"""


def _to_str(value: Any) -> str:
    return value.decode("utf-8") if isinstance(value, (bytes, bytearray)) else str(value)


class RedisLayer(DataLayer):
    """Storage that keeps cached values in Redis."""

    def __init__(self) -> None:
        self._client: Any = None
        self._ttl = 0
        self._logger: Any = DefaultLogger()
        self._key_prefix = ""
        self._batch_exist_sha = ""
        self._clean_cache_sha = ""

    def init(self, config: Any, prefix: str) -> None:
        redis_config = config.redis_config
        if redis_config.mode == RedisConfigMode.OPTIONS:
            self._client = redis.Redis(**(redis_config.options or {}))
        else:
            self._client = redis_config.client
        self._ttl = config.cache_ttl
        self._logger = config.debug_logger if config.debug_logger is not None else DefaultLogger()
        self._logger.debug = config.debug_mode
        self._key_prefix = prefix
        self._init_scripts()

    def _init_scripts(self) -> None:
        try:
            self._batch_exist_sha = self._client.script_load(_BATCH_KEY_EXIST_SCRIPT)
        except redis.RedisError as exc:
            self._logger.error("[initScripts] init script 1 error: %s", exc)
            raise
        self._logger.info("[initScripts] init batch exist script sha1: %s", self._batch_exist_sha)
        try:
            self._clean_cache_sha = self._client.script_load(_CLEAN_CACHE_SCRIPT)
        except redis.RedisError as exc:
            self._logger.error("[initScripts] init script 2 error: %s", exc)
            raise
        self._logger.info("[initScripts] init clean cache script sha1: %s", self._clean_cache_sha)

    def clean_cache(self) -> None:
        try:
            self._client.evalsha(self._clean_cache_sha, 1, "0", self._key_prefix + ":*")
        except redis.RedisError as exc:
            self._logger.error("[CleanCache] clean cache error: %s", exc)
            raise

    def batch_key_exist(self, keys: Iterable[str]) -> bool:
        keys = list(keys)
        try:
            result = self._client.evalsha(self._batch_exist_sha, len(keys), *keys)
        except redis.RedisError as exc:
            self._logger.error("[BatchKeyExist] eval script error: %s", exc)
            raise
        return int(result) == 1

    def key_exists(self, key: str) -> bool:
        try:
            result = self._client.exists(key)
        except redis.RedisError as exc:
            self._logger.error("[KeyExists] exists error: %s", exc)
            raise
        return result == 1

    def get_value(self, key: str) -> str:
        """Return the value for ``key``; raise KeyError if it is not stored."""
        value = self._client.get(key)
        if value is None:
            raise KeyError(key)
        return _to_str(value)

    def batch_get_values(self, keys: Iterable[str]) -> list[str]:
        """Return the values that are present, in key order."""
        try:
            values = self._client.mget(list(keys))
        except redis.RedisError as exc:
            self._logger.error("[BatchGetValues] mget error: %s", exc)
            raise
        return [_to_str(value) for value in values if value is not None]

    def delete_keys_with_prefix(self, key_prefix: str) -> None:
        self._client.evalsha(self._clean_cache_sha, 1, "0", key_prefix + ":*")

    def delete_key(self, key: str) -> None:
        self._client.delete(key)

    def batch_delete_keys(self, keys: Iterable[str]) -> None:
        self._client.delete(*keys)

    def _set_args(self) -> dict[str, int]:
        lifetime = rand_floating_int(self._ttl)
        return {"px": lifetime} if lifetime > 0 else {}

    def batch_set_keys(self, kvs: Iterable[Kv]) -> None:
        kvs = list(kvs)
        if self._ttl == 0:
            self._client.mset({kv.key: kv.value for kv in kvs})
            return
        pipe = self._client.pipeline(transaction=False)
        for kv in kvs:
            pipe.set(kv.key, kv.value, **self._set_args())
        try:
            pipe.execute()
        except redis.RedisError as exc:
            self._logger.error("[BatchSetKeys] set keys error: %s", exc)
            raise

    def set_key(self, kv: Kv) -> None:
        self._client.set(kv.key, kv.value, **self._set_args())