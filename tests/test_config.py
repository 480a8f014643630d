import dataclasses

import pytest

from frontierlib.config import CrawlConfig, Delay, Throttle, parse_duration
from frontierlib.errors import ConfigError


@pytest.mark.parametrize(
    "value,expected",
    [
        (250, 250),
        ("250", 250),
        ("500ms", 500),
        ("1s", 1000),
        ("s", 1000),
        ("1.5 seconds", 1500),
        ("2m", 120_000),
        ("1h", 3_600_000),
    ],
)
def test_parse_duration(value, expected):
    assert parse_duration(value) == expected


@pytest.mark.parametrize("value", ["", "soon", "5 fortnights", -1, True])
def test_parse_duration_rejects(value):
    with pytest.raises(ConfigError):
        parse_duration(value)


def test_throttle_parse_forms():
    assert Throttle.parse(5, "1s") == Throttle(requests=5, window_ms=1000)
    assert Throttle.parse("2s") == Throttle(requests=1, window_ms=2000)
    with pytest.raises(ConfigError):
        Throttle.parse(0, "1s")


def test_delay_parse_and_validation():
    assert Delay.parse("100ms") == Delay(min_ms=100, max_ms=None)
    assert Delay.parse(100, "1s") == Delay(min_ms=100, max_ms=1000)
    with pytest.raises(ConfigError):
        Delay(min_ms=200, max_ms=100)


def test_config_is_frozen():
    cfg = CrawlConfig(url="http://a")
    with pytest.raises(dataclasses.FrozenInstanceError):
        cfg.concurrency = 4  # type: ignore[misc]


def test_effective_limit_without_paginate_is_one():
    assert CrawlConfig(url="http://a", limit=50).effective_limit == 1
    assert CrawlConfig(url="http://a", paginate="a@href").effective_limit is None
    assert CrawlConfig(url="http://a", paginate="a@href", limit=7).effective_limit == 7


@pytest.mark.parametrize(
    "kwargs",
    [
        {"url": ""},
        {"url": "http://a", "concurrency": 0},
        {"url": "http://a", "limit": -1},
        {"url": "http://a", "timeout_ms": 0},
        {"url": "http://a", "metrics_interval": -1.0},
    ],
)
def test_config_validation(kwargs):
    with pytest.raises(ConfigError):
        CrawlConfig(**kwargs)
