# ormcache

A caching layer for ORM queries. It keeps two kinds of cache:

- **primary cache**: one entry per row, keyed by primary key. A query whose
  `WHERE` clause holds only conditions on the primary-key column (`id = ?`,
  `id = 5`, `id IN (?)`, `id IN (1,2)`, or the `Eq` / `In` forms) can be
  served from it.
- **search cache**: one entry per query, keyed by an MD5 of the SQL text and
  its bound values. Any repeated query can be served from it.

Entries live in process memory or in Redis. When `invalidate_when_update` is
on, creates, updates and deletes clear the entries they may have made stale.

## Installation

```
pip install ormcache
```

## Configuration

```python
from ormcache.config import CacheConfig, CacheLevel, CacheStorage
from ormcache.cache import new_cache

config = CacheConfig(
    cache_level=CacheLevel.ALL,           # OFF, ONLY_PRIMARY, ONLY_SEARCH, ALL
    cache_storage=CacheStorage.MEMORY,    # MEMORY or REDIS
    tables=["orders"],                    # empty means every table
    invalidate_when_update=True,
    cache_ttl=5000,                       # milliseconds, see below
    cache_max_item_cnt=100,               # skip caching bigger results; 0 means no limit
    cache_size=10000,                     # memory storage only
    debug_mode=False,
)
cache = new_cache(config)
```

`new_cache` raises `ValueError` when given `None`, and when Redis storage is
chosen without a `redis_config`.

Notes on the options:

- `cache_ttl`: each entry lives for the TTL scaled by a random factor between
  0.9 and 1.1. With `0`, memory entries live about 24 hours and Redis entries
  do not expire.
- `cache_size`: when the memory store grows past this number, up to 500 of
  the least recently used entries are dropped. The default is `0`, so set it
  when using memory storage.
- `cache_level`: with `ALL` both caches are written, but lookups go to the
  search cache; the primary cache is read only with `ONLY_PRIMARY`.

To use Redis, give the configuration a `RedisConfig`:

```python
import redis
from ormcache.cache import redis_config_with_client, redis_config_with_options

config.cache_storage = CacheStorage.REDIS
config.redis_config = redis_config_with_options({"host": "localhost", "port": 6379})
# or
config.redis_config = redis_config_with_client(redis.Redis())
```

The options are passed as keyword arguments to `redis.Redis`.

Each cache gets a random five-character `instance_id`, and every key it
writes starts with `gormcache:<instance_id>:`, so two caches never share
entries, and `reset_cache` on Redis clears only this instance's keys.

## Describing a query

A query is described by a `Statement` from `ormcache.statement`:

```python
from ormcache.statement import Eq, Expr, Field, In, Schema, Statement

schema = Schema(table="orders", fields=[Field("id", primary_key=True), Field("total")])
rows = []
statement = Statement(
    schema=schema,
    where=[Expr("id IN (?)", [[1, 2]])],
    sql="SELECT * FROM orders WHERE id IN (?)",
    vars=[[1, 2]],
    dest=rows,
)
```

`where` is a list of `Eq`, `In` and `Expr` conditions, or `None` when there is
no `WHERE` clause. `dest` is where results go: a list, a dict, or an object
whose attributes are set. Cached values are JSON; dataclasses, mappings and
objects' public attributes are encoded, and decoded values are written back as
plain lists and dicts (or as attributes on an object destination).

## Hooking it into queries

The functions in `ormcache.hooks` run around each database call:

```python
from ormcache import hooks

hooks.before_query(cache, statement)    # may fill statement.dest from cache
if statement.error is None:
    ...                                 # run the query, fill statement.dest
hooks.after_query(cache, statement)     # stores new results, clears the hit marker

hooks.after_create(cache, statement)
hooks.after_update(cache, statement)
hooks.after_delete(cache, statement)
```

On a hit `before_query` sets `statement.error` to `PrimaryCacheHit` or
`SearchCacheHit` from `ormcache.util` (a search hit also restores
`rows_affected`), and `after_query` clears the marker. If cached primary rows
cannot be decoded into `dest`, `statement.error` is set to
`CacheUnmarshalError`.

`after_create` clears the table's search cache. `after_update` and
`after_delete` clear the cached rows whose primary keys appear in the `WHERE`
clause (or every cached row of the table when none do) and the table's search
cache.

## Working with the cache directly

```python
cache.hit_count()                       # number of queries served from cache
cache.reset_cache()                     # drop this instance's entries, zero the count
cache.invalidate_search_cache("orders")
cache.invalidate_primary_cache("orders", "1")
cache.batch_invalidate_primary_cache("orders", ["1", "2"])
cache.invalidate_all_primary_cache("orders")
cache.batch_primary_key_exists("orders", ["1", "2"])
cache.get_search_cache("orders", sql, *params)   # raises KeyError when absent
```

Logging goes through `config.debug_logger`; the default `DefaultLogger`
prints to standard output only when `debug_mode` is on. A replacement needs
`info(message, *args)`, `error(message, *args)` and a `debug` attribute.

## What it does not do

The package is not tied to any ORM and does not run SQL. It does not build
the SQL text or parse it into conditions: the caller fills in the `Statement`
and calls the hooks around its own database access.

## Running the tests

```
pip install -e ".[test]"
pytest
```