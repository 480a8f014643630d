import logging
import threading
from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, start_http_server

from .metrics import Metrics


logger = logging.getLogger(__name__)


class PrometheusExporter:
    def __init__(self, metrics: Metrics, port: int = 8000, registry: Optional[CollectorRegistry] = None) -> None:
        self.metrics = metrics
        self.port = port
        self.registry = registry or REGISTRY
        self._server_thread: threading.Thread | None = None
        self._stop_event = threading.Event()

        self.fetches_total = Counter('crawler_fetches_total', 'Total number of fetch jobs completed', registry=self.registry)
        self.errors_total = Counter('crawler_errors_total', 'Total number of failed fetch jobs', registry=self.registry)
        self.timeouts_total = Counter('crawler_timeouts_total', 'Total number of fetch jobs that timed out', registry=self.registry)
        self.bytes_total = Counter('crawler_bytes_total', 'Total number of body bytes received', registry=self.registry)
        self.scheduled_total = Counter('crawler_scheduled_total', 'Total number of discovered URLs scheduled', registry=self.registry)
        self.in_flight = Gauge('crawler_in_flight', 'Units of work created but not yet processed', registry=self.registry)
        self.avg_fetch_duration_seconds = Gauge(
            'crawler_avg_fetch_duration_seconds', 'Average fetch duration in seconds', registry=self.registry
        )

        self._last = {"fetches": 0, "errors": 0, "timeouts": 0, "bytes": 0, "scheduled": 0}

    def start(self) -> None:
        start_http_server(self.port, registry=self.registry)
        logger.info("Prometheus metrics server started on port %d", self.port)

        self._server_thread = threading.Thread(
            target=self._update_metrics_loop,
            name="prometheus-updater",
            daemon=True
        )
        self._server_thread.start()

    def _update_metrics_loop(self) -> None:
        while not self._stop_event.is_set():
            self._update_metrics()
            self._stop_event.wait(5.0)

    def _update_metrics(self) -> None:
        totals, _ = self.metrics.snapshot()
        counters = {
            "fetches": self.fetches_total,
            "errors": self.errors_total,
            "timeouts": self.timeouts_total,
            "bytes": self.bytes_total,
            "scheduled": self.scheduled_total,
        }
        for name, counter in counters.items():
            value = getattr(totals, name)
            delta = value - self._last[name]
            if delta > 0:
                counter.inc(delta)
            self._last[name] = value

        self.in_flight.set(totals.in_flight)
        if totals.fetches > 0:
            self.avg_fetch_duration_seconds.set(totals.fetch_ms_sum / totals.fetches / 1000.0)

    def stop(self) -> None:
        self._stop_event.set()
        if self._server_thread:
            self._server_thread.join(timeout=2.0)
        self._update_metrics()
