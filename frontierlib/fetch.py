import inspect
import logging
import time
from typing import Any, Callable, Mapping, Optional

from .errors import CrawlError, DriverError
from .types import DriverProtocol, RequestContext


logger = logging.getLogger(__name__)


class FetchAdapter:
    """One fetch cycle: request hook, driver, response hook.

    A context that already carries a body (see ``replay``) short-circuits
    the driver.
    """

    def __init__(
        self,
        driver: DriverProtocol,
        request_hook: Optional[Callable[[Any], None]] = None,
        response_hook: Optional[Callable[[Any], None]] = None,
        replay: Optional[Mapping[str, Any]] = None,
    ):
        self.driver = driver
        self.request_hook = request_hook
        self.response_hook = response_hook
        self.replay = replay or {}

    def new_context(self, url: str) -> RequestContext:
        ctx = RequestContext(url)
        if url in self.replay:
            ctx.body = self.replay[url]
        return ctx

    async def fetch(self, url: str) -> RequestContext:
        ctx = self.new_context(url)
        if self.request_hook is not None:
            self.request_hook(ctx.request)

        if ctx.body is not None:
            logger.debug("replaying %s without calling the driver", url)
        else:
            logger.debug("request %s via %s", url, getattr(self.driver, "__name__", type(self.driver).__name__))
            t0 = time.perf_counter()
            try:
                result = self.driver(ctx)
                if inspect.isawaitable(result):
                    result = await result
            except CrawlError as exc:
                if exc.url is None:
                    exc.url = url
                raise
            except Exception as exc:
                raise DriverError(f"driver failed for {url}: {exc}", url) from exc
            if result is not None and result is not ctx and result is not ctx.body:
                ctx.body = result
            ctx.elapsed_ms = (time.perf_counter() - t0) * 1000.0

        if self.response_hook is not None:
            self.response_hook(ctx.response)
        return ctx
