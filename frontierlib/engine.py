import asyncio
import enum
import functools
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from .bloom_filter import DEFAULT_EXPECTED_URLS, dedupe
from .config import CrawlConfig
from .errors import DiscoveryError, JobTimeoutError
from .fetch import FetchAdapter
from .metrics import Metrics, StatsLogger, Totals
from .net import HttpDriver
from .parsing import UrlTools, as_candidates, compile_selector, load
from .queue import JobQueue
from .rate import DelayRange, RateLimiter
from .types import RequestContext


logger = logging.getLogger(__name__)

EVENTS = ("response", "error")


class RunState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    FINISHED = "finished"


def _body_size(body: Any) -> int:
    if isinstance(body, str):
        return len(body.encode("utf-8", errors="ignore"))
    if isinstance(body, (bytes, bytearray)):
        return len(body)
    return 0


class Crawler:
    """Runs a crawl described by a :class:`CrawlConfig`.

    The seed is fetched first; every successful response is parsed, handed to
    ``response`` listeners and to the paginate function, and the URLs it
    returns are scheduled through the rate limiter and delay range onto a
    bounded :class:`JobQueue`. The run ends when nothing is in flight.

    ``in_flight`` counts units of work that exist but whose outcome has not
    been processed yet: it goes up when the seed is submitted or when a
    discovered URL enters its scheduling delay, and down once per unit after
    its completion (or rejection) is handled. Children are scheduled before
    their parent is released, so the count cannot touch zero early.
    """

    def __init__(self, config: CrawlConfig, metrics: Optional[Metrics] = None):
        self.config = config
        self.metrics = metrics or Metrics()
        self.state = RunState.IDLE
        self.in_flight = 0
        self.remaining: Optional[int] = None
        self._listeners: Dict[str, List[Callable[..., Any]]] = {event: [] for event in EVENTS}
        self._timers: Set[asyncio.TimerHandle] = set()
        self._done: Optional[asyncio.Future] = None
        self._fatal: Optional[BaseException] = None
        self._halted = False
        self._fetched = 0

    def on(self, event: str, listener: Callable[..., Any]) -> "Crawler":
        if event not in self._listeners:
            raise ValueError(f"unknown event {event!r}, expected one of {EVENTS}")
        self._listeners[event].append(listener)
        return self

    def _emit(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners[event]):
            listener(*args)

    def _build_paginate(self) -> Optional[Callable[..., Any]]:
        paginate = self.config.paginate
        if paginate is None:
            return None
        if isinstance(paginate, (str, list)):
            paginate = compile_selector(paginate)
        if self.config.dedupe:
            limit = self.config.limit
            paginate = dedupe(paginate, expected_urls=max(limit or DEFAULT_EXPECTED_URLS, 1))
        return paginate

    async def crawl(self) -> Totals:
        if self.state is RunState.RUNNING:
            raise RuntimeError("crawl already running")
        config = self.config
        loop = asyncio.get_running_loop()

        limit = config.effective_limit
        self.remaining = None if limit is None else max(limit - 1, 0)
        self.in_flight = 0
        self._fetched = 0
        self._fatal = None
        self._halted = False
        self._timers = set()
        self._done = loop.create_future()
        self._paginate = self._build_paginate()
        self._rate = RateLimiter(config.throttle.requests, config.throttle.window_ms)
        self._delay = DelayRange(config.delay.min_ms, config.delay.max_ms)
        fetcher = FetchAdapter(config.driver or HttpDriver(), config.request, config.response, config.replay)
        self._queue = JobQueue(fetcher.fetch, concurrency=config.concurrency, timeout_ms=config.timeout_ms, limit=limit)

        logger.info(
            "Starting crawl: %s (concurrency=%d, limit=%s, timeout=%s)",
            config.url,
            config.concurrency,
            "unbounded" if limit is None else limit,
            f"{config.timeout_ms}ms" if config.timeout_ms else "off",
        )
        stats_thread = None
        if config.metrics_interval and config.metrics_interval > 0:
            stats_thread = StatsLogger(self.metrics, config.metrics_interval, logger.info)
            stats_thread.start()

        self.state = RunState.RUNNING
        try:
            self._acquire()
            self._submit(config.url)
            await self._done
        finally:
            if stats_thread:
                stats_thread.stop()
            self._cancel_timers()
            self.state = RunState.FINISHED

        logger.info("Finished. Pages fetched: %d", self._fetched)
        if self._fatal is not None:
            raise self._fatal
        totals, _ = self.metrics.snapshot()
        return totals

    def run(self) -> Totals:
        return asyncio.run(self.crawl())

    # in-flight bookkeeping

    def _acquire(self) -> None:
        self.in_flight += 1
        self.metrics.set_in_flight(self.in_flight)

    def _release(self) -> None:
        self.in_flight -= 1
        self.metrics.set_in_flight(self.in_flight)
        if self.in_flight <= 0:
            self._finish()

    def _finish(self) -> None:
        if self.state is not RunState.RUNNING:
            return
        self.state = RunState.FINISHED
        self._cancel_timers()
        if self._done is not None and not self._done.done():
            self._done.set_result(None)

    def _cancel_timers(self) -> None:
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()

    # scheduling

    def _submit(self, url: str) -> None:
        accepted = self._queue.submit(url, functools.partial(self._on_job_finish, url))
        if not accepted:
            logger.debug("job (%s) rejected by the queue limit", url)
            self.metrics.record_rejected()
            self._release()

    def _schedule_all(self, urls: Iterable[str]) -> None:
        for url in urls:
            if self._halted:
                logger.debug("scheduling halted after a fatal error, skipping %s", url)
                return
            if self.remaining is not None:
                if self.remaining <= 0:
                    logger.debug("limit reached, not scheduling %s", url)
                    return
                self.remaining -= 1
            self._schedule(url)

    def _schedule(self, url: str) -> None:
        self._acquire()
        wait = self._rate.consume() + self._delay.next()
        logger.debug('queued "%s", waiting %dms', url, wait)
        self.metrics.record_scheduled()

        handle: Optional[asyncio.TimerHandle] = None

        def fire() -> None:
            self._timers.discard(handle)
            self._on_delay_elapsed(url)

        handle = asyncio.get_running_loop().call_later(wait / 1000.0, fire)
        self._timers.add(handle)

    def _on_delay_elapsed(self, url: str) -> None:
        if self.state is not RunState.RUNNING:
            return
        self._submit(url)

    # completion

    def _on_job_finish(self, url: str, err: Optional[BaseException], ctx: Optional[RequestContext]) -> None:
        try:
            if err is not None:
                self.metrics.record_fetch(False, 0, 0.0, timed_out=isinstance(err, JobTimeoutError))
                self._report(url, err)
            elif ctx is not None:
                self.metrics.record_fetch(True, _body_size(ctx.body), ctx.elapsed_ms)
                self._fetched += 1
                if self._fetched % 10 == 0:
                    logger.info("Fetched %d pages", self._fetched)
                try:
                    urls = self._discover(ctx)
                except Exception as exc:
                    discovery_error = DiscoveryError(f"processing {url} failed: {exc}", url)
                    discovery_error.__cause__ = exc
                    self._report(url, discovery_error)
                else:
                    self._schedule_all(urls)
                logger.debug("job finished: %s", url)
        finally:
            self._release()

    def _discover(self, ctx: RequestContext) -> List[str]:
        logger.debug("response: url=%s status=%s kind=%s", ctx.url, ctx.status, ctx.kind)
        parsed = load(ctx)
        self._emit("response", parsed, ctx)
        if self._paginate is None:
            return []
        urls = []
        for candidate in as_candidates(self._paginate(parsed, ctx)):
            if UrlTools.is_valid_candidate(candidate):
                urls.append(candidate)
            else:
                logger.debug("dropping invalid url %r", candidate)
        if urls:
            logger.debug("next page(s): %s", urls)
        else:
            logger.debug("no next page from %s", ctx.url)
        return urls

    def _report(self, url: str, err: BaseException) -> None:
        if getattr(err, "url", None) is None:
            try:
                err.url = url  # type: ignore[attr-defined]
            except AttributeError:
                pass
        logger.warning("job (%s) error: %s", url, err)
        if self.config.throws and self._fatal is None:
            self._fatal = err
            self._halted = True
        self._emit("error", err)
