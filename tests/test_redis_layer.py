import pytest
import redis

from ormcache.config import CacheConfig, CacheStorage, DefaultLogger, RedisConfig, RedisConfigMode
from ormcache.memory_layer import DataLayer
from ormcache.redis_layer import RedisLayer
from ormcache.util import Kv

PREFIX = "gormcache:abc"


@pytest.fixture
def client(mocker):
    client = mocker.MagicMock()
    client.script_load.side_effect = ["exist-sha", "clean-sha"]
    return client


def make_layer(client, ttl=0, logger=None, debug=False):
    config = CacheConfig(
        cache_storage=CacheStorage.REDIS,
        redis_config=RedisConfig(mode=RedisConfigMode.RAW, client=client),
        cache_ttl=ttl,
        debug_logger=logger,
        debug_mode=debug,
    )
    layer = RedisLayer()
    layer.init(config, PREFIX)
    return layer


def test_init_loads_both_scripts(client):
    layer = make_layer(client)
    assert isinstance(layer, DataLayer)
    assert client.script_load.call_count == 2
    assert "EXISTS" in client.script_load.call_args_list[0].args[0]
    assert "keys" in client.script_load.call_args_list[1].args[0]


def test_init_sets_logger_debug_flag(client):
    logger = DefaultLogger()
    make_layer(client, logger=logger, debug=True)
    assert logger.debug is True


def test_init_script_error_propagates(mocker):
    client = mocker.MagicMock()
    client.script_load.side_effect = redis.RedisError("down")
    with pytest.raises(redis.RedisError):
        make_layer(client)


def test_init_with_options_builds_client(mocker):
    factory = mocker.patch("redis.Redis")
    built = factory.return_value
    built.script_load.side_effect = ["s1", "s2"]
    built.exists.return_value = 1
    config = CacheConfig(
        cache_storage=CacheStorage.REDIS,
        redis_config=RedisConfig(mode=RedisConfigMode.OPTIONS, options={"host": "localhost"}),
    )
    layer = RedisLayer()
    layer.init(config, PREFIX)
    assert factory.call_count == 1
    assert factory.call_args.kwargs == {"host": "localhost"}
    assert layer.key_exists("a") is True
    assert built.exists.call_args.args == ("a",)


def test_clean_cache_uses_prefix_pattern(client):
    layer = make_layer(client)
    layer.clean_cache()
    client.evalsha.assert_called_once_with("clean-sha", 1, "0", PREFIX + ":*")


def test_delete_keys_with_prefix(client):
    layer = make_layer(client)
    layer.delete_keys_with_prefix("gormcache:abc:s:users")
    client.evalsha.assert_called_once_with("clean-sha", 1, "0", "gormcache:abc:s:users:*")


def test_batch_key_exist(client):
    layer = make_layer(client)
    client.evalsha.return_value = 1
    assert layer.batch_key_exist(["a", "b"]) is True
    client.evalsha.assert_called_with("exist-sha", 2, "a", "b")
    client.evalsha.return_value = 0
    assert layer.batch_key_exist(["a"]) is False


def test_key_exists(client):
    layer = make_layer(client)
    client.exists.return_value = 1
    assert layer.key_exists("a") is True
    client.exists.return_value = 0
    assert layer.key_exists("a") is False


def test_get_value(client):
    layer = make_layer(client)
    client.get.return_value = b"payload"
    assert layer.get_value("a") == "payload"
    client.get.return_value = None
    with pytest.raises(KeyError):
        layer.get_value("a")


def test_batch_get_values_skips_missing(client):
    layer = make_layer(client)
    client.mget.return_value = [b"x", None, "z"]
    assert layer.batch_get_values(["a", "b", "c"]) == ["x", "z"]


def test_batch_get_values_error(client):
    layer = make_layer(client)
    client.mget.side_effect = redis.RedisError("fail")
    with pytest.raises(redis.RedisError):
        layer.batch_get_values(["a"])


def test_delete_keys(client):
    layer = make_layer(client)
    layer.delete_key("a")
    layer.batch_delete_keys(["b", "c"])
    assert client.delete.call_args_list[0].args == ("a",)
    assert client.delete.call_args_list[1].args == ("b", "c")


def test_batch_set_keys_without_ttl_uses_mset(client):
    layer = make_layer(client, ttl=0)
    layer.batch_set_keys([Kv("a", "1"), Kv("b", "2")])
    client.mset.assert_called_once_with({"a": "1", "b": "2"})
    client.pipeline.assert_not_called()


def test_batch_set_keys_with_ttl_uses_pipeline(client):
    layer = make_layer(client, ttl=1000)
    pipe = client.pipeline.return_value
    layer.batch_set_keys([Kv("a", "1"), Kv("b", "2")])
    assert pipe.set.call_count == 2
    for call, (key, value) in zip(pipe.set.call_args_list, [("a", "1"), ("b", "2")]):
        assert call.args == (key, value)
        assert 900 <= call.kwargs["px"] <= 1100
    pipe.execute.assert_called_once_with()


def test_set_key_ttl(client):
    layer = make_layer(client, ttl=1000)
    layer.set_key(Kv("a", "1"))
    call = client.set.call_args
    assert call.args == ("a", "1")
    assert 900 <= call.kwargs["px"] <= 1100


def test_set_key_without_ttl_has_no_expiry(client):
    layer = make_layer(client, ttl=0)
    layer.set_key(Kv("a", "1"))
    assert client.set.call_args.kwargs == {}
    assert client.set.call_args.args == ("a", "1")