"""Callbacks that read from and maintain the query cache around ORM operations."""

from __future__ import annotations

import dataclasses
import json
import re
from collections.abc import Mapping
from typing import Any

from ormcache.cache import QueryCache
from ormcache.config import CacheLevel
from ormcache.statement import (
    Statement,
    has_other_clause_except_primary,
    objects_after_load,
    primary_keys_from_where,
)
from ormcache.util import (
    CacheUnmarshalError,
    Kv,
    PrimaryCacheHit,
    SearchCacheHit,
    should_cache,
)

SQL_SETTING = "gorm:cache:sql"
VARS_SETTING = "gorm:cache:vars"

_PRIMARY_LEVELS = (CacheLevel.ALL, CacheLevel.ONLY_PRIMARY)
_SEARCH_LEVELS = (CacheLevel.ALL, CacheLevel.ONLY_SEARCH)
_ROWS_PATTERN = re.compile(r"[+-]?[0-9]+")
_BASIC_TYPES = (str, int, float, bool, bytes, bytearray)


def _jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if hasattr(value, "__dict__"):
        return {k: _jsonable(v) for k, v in vars(value).items() if not k.startswith("_")}
    raise TypeError(f"cannot encode {type(value).__name__}")


def _encode(value: Any) -> str:
    return json.dumps(_jsonable(value), separators=(",", ":"))


def _is_sequence(dest: Any) -> bool:
    return isinstance(dest, (list, tuple))


def _is_struct(dest: Any) -> bool:
    return dest is not None and not _is_sequence(dest) and not isinstance(dest, _BASIC_TYPES)


def _load_into(dest: Any, text: str) -> None:
    """Decode ``text`` into ``dest`` in place; raise ValueError on a mismatch."""
    data = json.loads(text)
    if isinstance(dest, list):
        if not isinstance(data, list):
            raise ValueError("cached value is not a list")
        dest[:] = data
    elif isinstance(dest, dict):
        if not isinstance(data, dict):
            raise ValueError("cached value is not an object")
        dest.update(data)
    elif _is_struct(dest) and hasattr(dest, "__dict__"):
        if not isinstance(data, dict):
            raise ValueError("cached value is not an object")
        for key, value in data.items():
            setattr(dest, key, value)
    else:
        raise ValueError("destination cannot hold cached value")


def _should_invalidate(cache: QueryCache, statement: Statement) -> bool:
    return (
        statement.error is None
        and cache.config.invalidate_when_update
        and should_cache(statement.table_name(), cache.config.tables)
    )


def _invalidate_search(cache: QueryCache, table: str, tag: str) -> None:
    cache.logger.info("[%s] now start to invalidate search cache for table: %s", tag, table)
    try:
        cache.invalidate_search_cache(table)
    except Exception as exc:
        cache.logger.error("[%s] invalidating search cache for table %s error: %s", tag, table, exc)
        return
    cache.logger.info("[%s] invalidating search cache for table: %s finished.", tag, table)


def _invalidate_primary(cache: QueryCache, statement: Statement, tag: str) -> None:
    table = statement.table_name()
    keys = primary_keys_from_where(statement)
    cache.logger.info("[%s] parse primary keys = %s", tag, keys)
    try:
        if keys:
            cache.logger.info("[%s] now start to invalidate cache for primary keys: %s", tag, keys)
            cache.batch_invalidate_primary_cache(table, keys)
            cache.logger.info("[%s] invalidating cache for primary keys: %s finished.", tag, keys)
        else:
            cache.logger.info("[%s] now start to invalidate all primary cache for table: %s", tag, table)
            cache.invalidate_all_primary_cache(table)
            cache.logger.info("[%s] invalidating all primary cache for table: %s finished.", tag, table)
    except Exception as exc:
        cache.logger.error("[%s] invalidating primary cache for table %s error: %s", tag, table, exc)


def _after_write(cache: QueryCache, statement: Statement, tag: str) -> None:
    if not _should_invalidate(cache, statement):
        return
    level = cache.config.cache_level
    if level in _PRIMARY_LEVELS:
        _invalidate_primary(cache, statement, tag)
    if level in _SEARCH_LEVELS:
        _invalidate_search(cache, statement.table_name(), tag)


def after_create(cache: QueryCache, statement: Statement) -> None:
    """Drop search results of the table, since new rows may change them."""
    if _should_invalidate(cache, statement) and cache.config.cache_level in _SEARCH_LEVELS:
        _invalidate_search(cache, statement.table_name(), "AfterCreate")


def after_delete(cache: QueryCache, statement: Statement) -> None:
    """Drop cached rows and search results touched by a delete."""
    _after_write(cache, statement, "AfterDelete")


def after_update(cache: QueryCache, statement: Statement) -> None:
    """Drop cached rows and search results touched by an update."""
    _after_write(cache, statement, "AfterUpdate")


def _read_search_cache(cache: QueryCache, statement: Statement, table: str, sql: str) -> None:
    try:
        cached = cache.get_search_cache(table, sql, *statement.vars)
    except KeyError:
        statement.error = None
        return
    except Exception as exc:
        cache.logger.error("[BeforeQuery] get cache value for sql %s error: %s", sql, exc)
        statement.error = None
        return
    cache.logger.info("[BeforeQuery] get value: %s", cached)
    count, sep, payload = cached.partition("|")
    if not sep or not _ROWS_PATTERN.fullmatch(count):
        cache.logger.error("[BeforeQuery] unmarshal rows affected cache error: %s", count)
        statement.error = None
        return
    statement.rows_affected = int(count)
    try:
        _load_into(statement.dest, payload)
    except (ValueError, TypeError) as exc:
        cache.logger.error("[BeforeQuery] unmarshal search cache error: %s", exc)
        statement.error = None
        return
    cache.incr_hit_count()
    statement.error = SearchCacheHit()


def _read_primary_cache(cache: QueryCache, statement: Statement, table: str) -> None:
    keys = primary_keys_from_where(statement)
    cache.logger.info("[BeforeQuery] parse primary keys = %s", keys)
    if not keys or has_other_clause_except_primary(statement):
        return
    try:
        values = cache.batch_get_primary_cache(table, keys)
    except Exception as exc:
        cache.logger.error("[BeforeQuery] get primary cache value for key %s error: %s", keys, exc)
        statement.error = None
        return
    if len(values) != len(keys):
        statement.error = None
        return

    final = ""
    dest = statement.dest
    if _is_struct(dest) and len(values) == 1:
        final = values[0]
    elif _is_sequence(dest) and values:
        final = "[" + ",".join(values) + "]"
    if not final:
        cache.logger.error("[BeforeQuery] length of cache values and dest not matched")
        statement.error = CacheUnmarshalError()
        return
    try:
        _load_into(dest, final)
    except (ValueError, TypeError) as exc:
        cache.logger.error("[BeforeQuery] unmarshal final value error: %s", exc)
        statement.error = CacheUnmarshalError()
        return
    cache.incr_hit_count()
    statement.error = PrimaryCacheHit()


def before_query(cache: QueryCache, statement: Statement) -> None:
    """Try to answer the query from the cache.

    On a hit the destination is filled and ``statement.error`` is set to a
    hit marker, telling the caller to skip the database.
    """
    table = statement.table_name()
    sql = statement.sql
    statement.settings[SQL_SETTING] = sql
    statement.settings[VARS_SETTING] = list(statement.vars)

    config = cache.config
    if not should_cache(table, config.tables):
        return
    if config.cache_level in _SEARCH_LEVELS:
        _read_search_cache(cache, statement, table, sql)
        return
    if config.cache_level in _PRIMARY_LEVELS:
        _read_primary_cache(cache, statement, table)


def _write_search_cache(cache: QueryCache, statement: Statement, table: str, sql: str,
                        sql_vars: list, object_count: int) -> None:
    max_items = cache.config.cache_max_item_cnt
    if max_items > 0 and object_count > max_items:
        return
    cache.logger.info("[AfterQuery] start to set search cache for sql: %s", sql)
    try:
        payload = _encode(statement.dest)
    except (TypeError, ValueError):
        cache.logger.error("[AfterQuery] cannot marshal cache for sql: %s, not cached", sql)
        return
    cache.logger.info("[AfterQuery] set cache: %s", payload)
    try:
        cache.set_search_cache(f"{statement.rows_affected}|{payload}", table, sql, *sql_vars)
    except Exception as exc:
        cache.logger.error("[AfterQuery] set search cache for sql: %s error: %s", sql, exc)
        return
    cache.logger.info("[AfterQuery] sql %s cached", sql)


def _write_primary_cache(cache: QueryCache, table: str, keys: list[str], objects: list) -> None:
    if len(keys) != len(objects):
        return
    max_items = cache.config.cache_max_item_cnt
    if max_items > 0 and len(objects) > max_items:
        return
    kvs = []
    for key, obj in zip(keys, objects):
        try:
            kvs.append(Kv(key, _encode(obj)))
        except (TypeError, ValueError):
            cache.logger.error("[AfterQuery] object %s cannot marshal, not cached", obj)
    cache.logger.info("[AfterQuery] start to set primary cache for kvs: %s", kvs)
    try:
        cache.batch_set_primary_key_cache(table, kvs)
    except Exception as exc:
        cache.logger.error("[AfterQuery] batch set primary key cache for key %s error: %s", keys, exc)


def after_query(cache: QueryCache, statement: Statement) -> None:
    """Cache freshly loaded results, or clear the hit marker after a cache hit."""
    table = statement.table_name()
    sql = statement.settings.get(SQL_SETTING, statement.sql)
    sql_vars = list(statement.settings.get(VARS_SETTING, statement.vars))

    if should_cache(table, cache.config.tables) and statement.error is None:
        keys, objects = objects_after_load(statement)
        level = cache.config.cache_level
        if level in _SEARCH_LEVELS:
            _write_search_cache(cache, statement, table, sql, sql_vars, len(objects))
        if level in _PRIMARY_LEVELS:
            _write_primary_cache(cache, table, keys, objects)
        return

    if isinstance(statement.error, (SearchCacheHit, PrimaryCacheHit)):
        statement.error = None