from prometheus_client import CollectorRegistry

from frontierlib.config import CrawlConfig
from frontierlib.engine import Crawler
from frontierlib.metrics import Metrics
from frontierlib.prometheus_exporter import PrometheusExporter


def test_metrics_records_fetches():
    m = Metrics()

    m.record_fetch(ok=True, bytes_read=1024, fetch_ms=50.0)
    totals, elapsed = m.snapshot()
    assert totals.fetches == 1
    assert totals.bytes == 1024
    assert totals.errors == 0
    assert totals.fetch_ms_sum == 50.0
    assert elapsed > 0

    m.record_fetch(ok=False, bytes_read=0, fetch_ms=100.0, timed_out=True)
    m.record_scheduled()
    m.record_rejected()
    m.set_in_flight(3)
    totals, _ = m.snapshot()
    assert totals.fetches == 2
    assert totals.errors == 1
    assert totals.timeouts == 1
    assert totals.scheduled == 1
    assert totals.rejected == 1
    assert totals.in_flight == 3


def test_snapshot_is_a_copy():
    m = Metrics()
    totals, _ = m.snapshot()
    m.record_fetch(ok=True, bytes_read=1, fetch_ms=1.0)
    assert totals.fetches == 0


def test_engine_collects_metrics():
    def driver(ctx):
        ctx.response.content_type = "text/html"
        return "<html>hello</html>"

    cfg = CrawlConfig(
        url="http://a",
        driver=driver,
        paginate=lambda doc, ctx: "http://b" if ctx.url == "http://a" else None,
    )
    crawler = Crawler(cfg)
    crawler.run()

    totals, elapsed = crawler.metrics.snapshot()
    assert totals.fetches == 2
    assert totals.scheduled == 1
    assert totals.bytes == 2 * len("<html>hello</html>")
    assert totals.errors == 0
    assert totals.in_flight == 0


def test_prometheus_exporter_publishes_deltas():
    registry = CollectorRegistry()
    m = Metrics()
    exporter = PrometheusExporter(m, port=0, registry=registry)

    m.record_fetch(ok=True, bytes_read=10, fetch_ms=200.0)
    m.record_fetch(ok=False, bytes_read=0, fetch_ms=0.0, timed_out=True)
    m.set_in_flight(2)
    exporter._update_metrics()
    assert registry.get_sample_value("crawler_fetches_total") == 2
    assert registry.get_sample_value("crawler_errors_total") == 1
    assert registry.get_sample_value("crawler_timeouts_total") == 1
    assert registry.get_sample_value("crawler_in_flight") == 2
    assert registry.get_sample_value("crawler_avg_fetch_duration_seconds") == 0.1

    m.record_fetch(ok=True, bytes_read=5, fetch_ms=100.0)
    exporter._update_metrics()
    assert registry.get_sample_value("crawler_fetches_total") == 3
    assert registry.get_sample_value("crawler_bytes_total") == 15
