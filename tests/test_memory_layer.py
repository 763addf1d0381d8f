import pytest

from ormcache.config import CacheConfig
from ormcache.memory_layer import DataLayer, MemoryLayer
from ormcache.util import Kv


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


def make_layer(clock, size=100, ttl=0):
    layer = MemoryLayer(clock=clock)
    layer.init(CacheConfig(cache_size=size, cache_ttl=ttl), "gormcache:abc")
    return layer


def test_fresh_layer_is_empty_data_layer(clock):
    layer = make_layer(clock)
    assert isinstance(layer, DataLayer) is True
    assert layer.key_exists("anything") is False
    assert layer.batch_key_exist(["anything"]) is False


def test_set_and_get(clock):
    layer = make_layer(clock)
    layer.set_key(Kv("a", "1"))
    assert layer.get_value("a") == "1"
    assert layer.key_exists("a") is True


def test_missing_key_raises(clock):
    layer = make_layer(clock)
    with pytest.raises(KeyError):
        layer.get_value("missing")
    assert layer.key_exists("missing") is False


def test_ttl_expiry(clock):
    layer = make_layer(clock, ttl=1000)
    layer.set_key(Kv("a", "1"))
    clock.now = 0.8
    assert layer.get_value("a") == "1"
    clock.now = 1.2
    with pytest.raises(KeyError):
        layer.get_value("a")


def test_default_lifetime_is_about_a_day(clock):
    layer = make_layer(clock, ttl=0)
    layer.batch_set_keys([Kv("a", "1")])
    clock.now = 20 * 3600
    assert layer.key_exists("a") is True
    clock.now = 27 * 3600
    assert layer.key_exists("a") is False


def test_batch_key_exist(clock):
    layer = make_layer(clock)
    layer.batch_set_keys([Kv("a", "1"), Kv("b", "2")])
    assert layer.batch_key_exist(["a", "b"]) is True
    assert layer.batch_key_exist(["a", "c"]) is False
    assert layer.batch_key_exist([]) is True


def test_batch_get_values(clock):
    layer = make_layer(clock)
    layer.batch_set_keys([Kv("a", "1"), Kv("b", "2")])
    assert layer.batch_get_values(["b", "a"]) == ["2", "1"]
    with pytest.raises(KeyError):
        layer.batch_get_values(["a", "c"])


def test_delete_key_and_batch(clock):
    layer = make_layer(clock)
    layer.batch_set_keys([Kv("a", "1"), Kv("b", "2"), Kv("c", "3")])
    layer.delete_key("a")
    layer.batch_delete_keys(["b", "zzz"])
    assert layer.key_exists("a") is False
    assert layer.key_exists("b") is False
    assert layer.get_value("c") == "3"


def test_delete_keys_with_prefix(clock):
    layer = make_layer(clock)
    layer.batch_set_keys([Kv("p:t:1", "1"), Kv("p:t:2", "2"), Kv("s:t:x", "3")])
    layer.delete_keys_with_prefix("p:t")
    assert layer.batch_key_exist(["p:t:1"]) is False
    assert layer.batch_key_exist(["p:t:2"]) is False
    assert layer.get_value("s:t:x") == "3"


def test_clean_cache(clock):
    layer = make_layer(clock)
    layer.batch_set_keys([Kv("a", "1"), Kv("b", "2")])
    layer.clean_cache()
    assert layer.batch_key_exist(["a"]) is False
    assert layer.batch_key_exist(["b"]) is False


def test_overflow_evicts_oldest_first(clock):
    layer = make_layer(clock, size=1000)
    layer.batch_set_keys([Kv(f"k{i}", str(i)) for i in range(1001)])
    assert layer.key_exists("k0") is False
    assert layer.get_value("k1000") == "1000"


def test_recently_read_item_survives_eviction(clock):
    layer = make_layer(clock, size=1000)
    layer.batch_set_keys([Kv(f"k{i}", str(i)) for i in range(1000)])
    assert layer.get_value("k0") == "0"
    layer.set_key(Kv("new", "n"))
    assert layer.get_value("k0") == "0"
    assert layer.key_exists("k1") is False


def test_replacing_key_keeps_latest_value(clock):
    layer = make_layer(clock)
    layer.set_key(Kv("a", "1"))
    layer.set_key(Kv("a", "2"))
    assert layer.get_value("a") == "2"