from datetime import datetime

from ormcache.config import (
    CacheConfig,
    CacheLevel,
    CacheStorage,
    DefaultLogger,
    RedisConfig,
    RedisConfigMode,
)


def test_logger_silent_when_not_debug(capsys):
    logger = DefaultLogger()
    logger.info("hello %s", "world")
    logger.error("boom")
    assert capsys.readouterr().out == ""


def test_logger_info_line(capsys):
    logger = DefaultLogger(debug=True)
    logger.info("hello %s %d", "world", 3)
    out = capsys.readouterr().out
    assert out.endswith(" [INFO] hello world 3\n")
    assert out.count("\n") == 1
    stamp = datetime.strptime(out[:19], "%Y-%m-%d %H:%M:%S")
    assert abs((datetime.now() - stamp).total_seconds()) < 60


def test_logger_error_line(capsys):
    logger = DefaultLogger(debug=True)
    logger.error("failed: %s", "reason")
    out = capsys.readouterr().out
    assert out.rstrip("\n").endswith("[ERROR] failed: reason")


def test_logger_message_without_args_kept_verbatim(capsys):
    logger = DefaultLogger(debug=True)
    logger.info("100% done")
    assert capsys.readouterr().out.rstrip("\n").endswith("[INFO] 100% done")


def test_redis_config_raw_returns_given_client(mocker):
    client = mocker.MagicMock()
    config = RedisConfig(mode=RedisConfigMode.RAW, client=client)
    assert config.init_client() is client


def test_redis_config_options_creates_client_once(mocker):
    factory = mocker.patch("redis.Redis")
    config = RedisConfig(mode=RedisConfigMode.OPTIONS, options={"host": "localhost", "port": 6379})
    first = config.init_client()
    second = config.init_client()
    assert first is second
    assert factory.call_count == 1
    assert factory.call_args.kwargs == {"host": "localhost", "port": 6379}


def test_cache_config_defaults_are_independent():
    a = CacheConfig()
    b = CacheConfig()
    a.tables.append("users")
    assert b.tables == []
    assert a.cache_level == CacheLevel.OFF
    assert a.cache_storage == CacheStorage.MEMORY