"""Process-wide request metrics.

Counters are updated once per completed request and never reset while the
process lives. Rendering goes through a private prometheus registry so the
/metrics output is standard exposition text.
"""

import logging
import threading
import time

from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily

logger = logging.getLogger(__name__)


class RequestMetrics:
    def __init__(self):
        self.total_requests = 0
        self.total_errors = 0
        self.total_latency_ms = 0.0
        self._lock = threading.Lock()
        self.registry = CollectorRegistry()
        self.registry.register(_SnapshotCollector(self))

    def enter(self, exchange) -> None:
        exchange.started = time.perf_counter()

    def exit(self, exchange) -> None:
        if exchange.recorded:
            return
        exchange.recorded = True
        duration_ms = (time.perf_counter() - exchange.started) * 1000.0
        status = exchange.status_code or 500
        self.record(duration_ms, status)
        logger.info(
            '%s %s %d %.1fms',
            exchange.method, exchange.path, status, duration_ms,
        )

    def record(self, duration_ms: float, status: int) -> None:
        with self._lock:
            self.total_requests += 1
            self.total_latency_ms += duration_ms
            if status >= 500:
                self.total_errors += 1

    def snapshot(self) -> dict:
        with self._lock:
            requests = self.total_requests
            errors = self.total_errors
            latency = self.total_latency_ms
        return {
            'requests_total': requests,
            'errors_total': errors,
            'avg_latency_ms': latency / requests if requests else 0.0,
            'error_rate': errors / requests if requests else 0.0,
        }

    def render(self) -> bytes:
        return generate_latest(self.registry)


class _SnapshotCollector:
    def __init__(self, metrics):
        self.metrics = metrics

    def collect(self):
        snap = self.metrics.snapshot()
        yield CounterMetricFamily(
            'requests', 'Completed HTTP requests', value=snap['requests_total'],
        )
        yield CounterMetricFamily(
            'errors', 'Completed requests with a 5xx status', value=snap['errors_total'],
        )
        yield GaugeMetricFamily(
            'avg_latency_ms', 'Mean request latency in milliseconds', value=snap['avg_latency_ms'],
        )
        yield GaugeMetricFamily(
            'error_rate', 'Share of requests that ended in a 5xx status', value=snap['error_rate'],
        )
