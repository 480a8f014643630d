from typing import Optional


class CrawlError(Exception):
    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class DriverError(CrawlError):
    pass


class JobTimeoutError(CrawlError, TimeoutError):
    def __init__(self, url: Optional[str], timeout_ms: int):
        super().__init__(f"job timed out after {timeout_ms}ms: {url}", url)
        self.timeout_ms = timeout_ms


class DiscoveryError(CrawlError):
    pass


class ConfigError(ValueError):
    pass
