#!/usr/bin/env python3
import argparse
import logging
import sys

from frontierlib.config import CrawlConfig, Delay, Throttle, parse_duration
from frontierlib.engine import Crawler
from frontierlib.errors import ConfigError, CrawlError
from frontierlib.net import DEFAULT_USER_AGENT, HttpDriver
from frontierlib.prometheus_exporter import PrometheusExporter
from frontierlib.storage import JsonlWriter


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Rate-limited, concurrency-bounded paginating crawler.")
    parser.add_argument("url", help="Seed URL.")
    parser.add_argument(
        "--paginate",
        default=None,
        help='Selector for the next page(s), e.g. "a.next@href". Wrap in [] to follow every match.',
    )
    parser.add_argument("--limit", type=int, default=None, help="Maximum number of fetches (default: unbounded).")
    parser.add_argument("--concurrency", type=int, default=1, help="Maximum number of concurrent fetches.")
    parser.add_argument(
        "--throttle",
        nargs="+",
        default=None,
        metavar="ARG",
        help='Rate limit as REQUESTS WINDOW (e.g. "5 1s") or just WINDOW for one request per window.',
    )
    parser.add_argument("--delay", nargs="+", default=None, metavar="DUR", help="Random delay range MIN [MAX].")
    parser.add_argument("--timeout", default=None, help='Per-job timeout (e.g. "10s").')
    parser.add_argument("--throws", action="store_true", help="Abort the crawl on the first error.")
    parser.add_argument("--dedupe", action="store_true", help="Skip URLs that were already discovered.")
    parser.add_argument("--user-agent", default=DEFAULT_USER_AGENT, help="User-Agent header to send.")
    parser.add_argument("--max-connections", type=int, default=16, help="Max connections per pool for HTTP client.")
    parser.add_argument("--out", dest="output_path", default="crawl.jsonl", help="Path to JSONL output file.")
    parser.add_argument("--metrics-interval", type=float, default=10.0, help="Seconds between perf logs (0 to disable).")
    parser.add_argument("--prometheus-port", type=int, default=None, help="Serve Prometheus metrics on this port.")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase logging verbosity.")
    return parser.parse_args(argv)


def _paginate_arg(value):
    if value and value.startswith("[") and value.endswith("]"):
        return [value[1:-1]]
    return value


def _throttle_arg(values) -> Throttle:
    if not values:
        return Throttle()
    if len(values) == 1:
        return Throttle.parse(values[0])
    return Throttle.parse(int(values[0]), values[1])


def _delay_arg(values) -> Delay:
    if not values:
        return Delay()
    return Delay.parse(*values[:2])


def _duration_arg(value):
    # plain numbers on the command line are milliseconds
    return int(value) if value.isdigit() else value


def build_config(args: argparse.Namespace) -> CrawlConfig:
    throttle = [_duration_arg(v) for v in args.throttle] if args.throttle else None
    delay = [_duration_arg(v) for v in args.delay] if args.delay else None
    return CrawlConfig(
        url=args.url,
        paginate=_paginate_arg(args.paginate),
        limit=args.limit,
        concurrency=max(1, args.concurrency),
        throttle=_throttle_arg(throttle),
        delay=_delay_arg(delay),
        timeout_ms=parse_duration(_duration_arg(args.timeout)) if args.timeout else None,
        throws=args.throws,
        dedupe=args.dedupe,
        driver=HttpDriver(args.user_agent, max_connections=max(1, args.max_connections)),
        metrics_interval=max(0.0, args.metrics_interval),
    )


def main(argv=None) -> int:
    args = parse_args(argv)
    log_level = logging.WARNING
    if args.verbose == 1:
        log_level = logging.INFO
    elif args.verbose >= 2:
        log_level = logging.DEBUG
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    try:
        config = build_config(args)
    except (ConfigError, ValueError) as exc:
        logging.error("invalid configuration: %s", exc)
        return 2

    crawler = Crawler(config)
    exporter = None
    if args.prometheus_port:
        exporter = PrometheusExporter(crawler.metrics, port=args.prometheus_port)
        exporter.start()
        logging.info("Prometheus metrics available at http://0.0.0.0:%d/metrics", args.prometheus_port)

    try:
        with JsonlWriter(args.output_path) as writer:
            crawler.on("response", writer.write_response)
            crawler.run()
    except CrawlError as exc:
        logging.error("crawl aborted: %s (%s)", exc, exc.url)
        return 1
    finally:
        if exporter:
            exporter.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
