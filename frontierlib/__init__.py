from .config import CrawlConfig, Delay, Throttle, parse_duration
from .engine import Crawler
from .errors import ConfigError, CrawlError, DiscoveryError, DriverError, JobTimeoutError
from .types import RequestContext

__all__ = [
    "ConfigError",
    "CrawlConfig",
    "CrawlError",
    "Crawler",
    "Delay",
    "DiscoveryError",
    "DriverError",
    "JobTimeoutError",
    "RequestContext",
    "Throttle",
    "parse_duration",
]
