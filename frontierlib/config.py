import re
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Union

from .errors import ConfigError


_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)?\s*([a-z]*)\s*$", re.IGNORECASE)
_UNITS_MS = {
    "": 1,
    "ms": 1,
    "msec": 1,
    "msecs": 1,
    "millisecond": 1,
    "milliseconds": 1,
    "s": 1000,
    "sec": 1000,
    "secs": 1000,
    "second": 1000,
    "seconds": 1000,
    "m": 60_000,
    "min": 60_000,
    "mins": 60_000,
    "minute": 60_000,
    "minutes": 60_000,
    "h": 3_600_000,
    "hr": 3_600_000,
    "hrs": 3_600_000,
    "hour": 3_600_000,
    "hours": 3_600_000,
    "d": 86_400_000,
    "day": 86_400_000,
    "days": 86_400_000,
}

Duration = Union[int, float, str]


def parse_duration(value: Duration) -> int:
    """Convert a duration to milliseconds.

    Numbers are taken as milliseconds. Strings carry a unit ("500ms", "1s",
    "2 minutes"); a bare unit such as "s" means one of that unit.
    """
    if isinstance(value, bool):
        raise ConfigError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ConfigError(f"duration must be >= 0: {value!r}")
        return int(value)
    match = _DURATION_RE.match(value)
    if not match or (match.group(1) is None and not match.group(2)):
        raise ConfigError(f"invalid duration: {value!r}")
    amount, unit = match.group(1), match.group(2).lower()
    if unit not in _UNITS_MS:
        raise ConfigError(f"unknown duration unit {unit!r} in {value!r}")
    return int(float(amount if amount is not None else 1) * _UNITS_MS[unit])


@dataclass(frozen=True)
class Throttle:
    # None means no rate limit
    requests: Optional[int] = None
    window_ms: int = 0

    @classmethod
    def parse(cls, requests: Union[int, Duration], window: Optional[Duration] = None) -> "Throttle":
        if window is None:
            requests, window = 1, requests
        if not isinstance(requests, int) or requests < 1:
            raise ConfigError(f"throttle requests must be a positive integer: {requests!r}")
        return cls(requests=requests, window_ms=parse_duration(window))


@dataclass(frozen=True)
class Delay:
    min_ms: int = 0
    max_ms: Optional[int] = None

    def __post_init__(self) -> None:
        if self.min_ms < 0:
            raise ConfigError(f"delay min must be >= 0, got {self.min_ms}")
        if self.max_ms is not None and self.max_ms < self.min_ms:
            raise ConfigError(f"delay max ({self.max_ms}) must be >= min ({self.min_ms})")

    @classmethod
    def parse(cls, low: Duration, high: Optional[Duration] = None) -> "Delay":
        return cls(
            min_ms=parse_duration(low),
            max_ms=parse_duration(high) if high is not None else None,
        )


Hook = Callable[[Any], None]


@dataclass(frozen=True)
class CrawlConfig:
    url: str
    concurrency: int = 1
    limit: Optional[int] = None
    timeout_ms: Optional[int] = None
    throttle: Throttle = field(default_factory=Throttle)
    delay: Delay = field(default_factory=Delay)
    throws: bool = False
    request: Optional[Hook] = None
    response: Optional[Hook] = None
    driver: Optional[Callable[..., Any]] = None
    paginate: Optional[Union[str, list, Callable[..., Any]]] = None
    dedupe: bool = False
    replay: Optional[Mapping[str, Any]] = None
    metrics_interval: float = 0.0

    def __post_init__(self) -> None:
        if not self.url:
            raise ConfigError("a seed url is required")
        if self.concurrency < 1:
            raise ConfigError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.limit is not None and self.limit < 0:
            raise ConfigError(f"limit must be >= 0, got {self.limit}")
        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise ConfigError(f"timeout_ms must be > 0, got {self.timeout_ms}")
        if self.throttle.requests is not None and self.throttle.requests < 1:
            raise ConfigError(f"throttle requests must be >= 1, got {self.throttle.requests}")
        if self.throttle.window_ms < 0:
            raise ConfigError(f"throttle window must be >= 0, got {self.throttle.window_ms}")
        if self.metrics_interval < 0:
            raise ConfigError(f"metrics_interval must be >= 0, got {self.metrics_interval}")

    @property
    def effective_limit(self) -> Optional[int]:
        # Without a paginate function the crawl is a single fetch.
        if self.paginate is None:
            return 1
        return self.limit
