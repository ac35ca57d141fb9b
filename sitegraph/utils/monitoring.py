"""
Monitoring and metrics collection for crawl runs.
"""

import time
import logging
from typing import Dict, Optional, Any, List
from dataclasses import dataclass, field

from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry, generate_latest
from prometheus_client import start_http_server


@dataclass
class MetricPoint:
    """Individual metric data point."""
    timestamp: float
    value: float
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass
class Metric:
    """Metric container with recent history."""
    name: str
    description: str
    metric_type: str  # counter, gauge, histogram
    points: List[MetricPoint] = field(default_factory=list)
    current_value: float = 0.0


class MetricsCollector:
    """Collects crawl metrics in memory and mirrors them into a Prometheus registry."""

    MAX_POINTS = 1000

    def __init__(self, enable_http: bool = False, prometheus_port: int = 8000):
        self.logger = logging.getLogger(__name__)
        self.metrics: Dict[str, Metric] = {}
        self.enable_http = enable_http
        self.prometheus_port = prometheus_port

        # One registry per collector so tests and parallel runs do not collide
        self.registry = CollectorRegistry()
        self.prometheus_metrics = {
            'pages_fetched_total': Counter(
                'sitegraph_pages_fetched_total',
                'Settled fetch attempts by outcome',
                ['status'],
                registry=self.registry
            ),
            'documents_stored_total': Counter(
                'sitegraph_documents_stored_total',
                'Documents written to the record store',
                registry=self.registry
            ),
            'entities_extracted_total': Counter(
                'sitegraph_entities_extracted_total',
                'Entities tagged in stored documents',
                registry=self.registry
            ),
            'errors_total': Counter(
                'sitegraph_errors_total',
                'Errors by type',
                ['error_type'],
                registry=self.registry
            ),
            'fetch_duration_seconds': Histogram(
                'sitegraph_fetch_duration_seconds',
                'Wall time of a single fetch including parse',
                registry=self.registry
            ),
            'frontier_size': Gauge(
                'sitegraph_frontier_size',
                'Targets waiting in the frontier',
                registry=self.registry
            ),
            'in_flight_fetches': Gauge(
                'sitegraph_in_flight_fetches',
                'Fetches currently in flight',
                registry=self.registry
            ),
        }

    async def start_prometheus_server(self):
        """Start the Prometheus metrics HTTP server when enabled."""
        if not self.enable_http:
            return

        try:
            start_http_server(self.prometheus_port, registry=self.registry)
            self.logger.info(f"Prometheus metrics server started on port {self.prometheus_port}")
        except OSError as e:
            self.logger.error(f"Failed to start Prometheus server: {e}")

    def record_metric(self, name: str, value: float, labels: Optional[Dict[str, str]] = None,
                      description: str = "", metric_type: str = "gauge", delta: float = 0.0):
        """Record a metric value."""
        labels = labels or {}
        key = self._key(name, labels)

        if key not in self.metrics:
            self.metrics[key] = Metric(
                name=key,
                description=description,
                metric_type=metric_type
            )

        metric = self.metrics[key]
        metric.points.append(MetricPoint(timestamp=time.time(), value=value, labels=labels))
        metric.current_value = value

        if len(metric.points) > self.MAX_POINTS:
            metric.points = metric.points[-self.MAX_POINTS:]

        prom_metric = self.prometheus_metrics.get(name)
        if prom_metric is None:
            return
        if labels:
            prom_metric = prom_metric.labels(**labels)

        if metric_type == "counter":
            prom_metric.inc(delta)
        elif metric_type == "histogram":
            prom_metric.observe(value)
        else:
            prom_metric.set(value)

    def increment_counter(self, name: str, labels: Optional[Dict[str, str]] = None,
                          description: str = "", amount: float = 1):
        """Increment a counter metric."""
        metric = self.metrics.get(self._key(name, labels or {}))
        current_value = metric.current_value if metric else 0
        self.record_metric(name, current_value + amount, labels, description, "counter", delta=amount)

    @staticmethod
    def _key(name: str, labels: Dict[str, str]) -> str:
        if not labels:
            return name
        return f"{name}{{{','.join(f'{k}={v}' for k, v in sorted(labels.items()))}}}"

    def set_gauge(self, name: str, value: float, labels: Optional[Dict[str, str]] = None,
                  description: str = ""):
        """Set a gauge metric value."""
        self.record_metric(name, value, labels, description, "gauge")

    def observe_histogram(self, name: str, value: float, labels: Optional[Dict[str, str]] = None,
                          description: str = ""):
        """Record a histogram observation."""
        self.record_metric(name, value, labels, description, "histogram")

    def get_metric(self, name: str) -> Optional[Metric]:
        """Get a metric by name."""
        return self.metrics.get(name)

    def get_current_values(self) -> Dict[str, float]:
        """Get current values of all metrics."""
        return {name: metric.current_value for name, metric in self.metrics.items()}

    def exposition(self) -> bytes:
        """Render the registry in the Prometheus text format."""
        return generate_latest(self.registry)


class CrawlerMonitor:
    """High-level monitoring interface used by the orchestrator and pipeline."""

    def __init__(self, metrics_collector: Optional[MetricsCollector] = None):
        self.metrics = metrics_collector or MetricsCollector()
        self.start_time = time.time()

    def record_fetch(self, url: str, success: bool, duration: float):
        """Record one settled fetch attempt."""
        status = 'success' if success else 'error'
        self.metrics.increment_counter('pages_fetched_total', {'status': status},
                                       'Settled fetch attempts')
        self.metrics.observe_histogram('fetch_duration_seconds', duration,
                                       description='Fetch duration')

    def record_document_stored(self, url: str, entity_count: int = 0):
        """Record a persisted document and its tagged entities."""
        self.metrics.increment_counter('documents_stored_total', description='Documents stored')
        if entity_count:
            self.metrics.increment_counter('entities_extracted_total',
                                           description='Entities extracted',
                                           amount=entity_count)

    def record_error(self, error_type: str):
        """Record an error event."""
        self.metrics.increment_counter('errors_total', {'error_type': error_type}, 'Errors')

    def update_queue_size(self, size: int):
        """Update the frontier size gauge."""
        self.metrics.set_gauge('frontier_size', size, description='Targets in frontier')

    def update_in_flight(self, count: int):
        """Update the in-flight fetches gauge."""
        self.metrics.set_gauge('in_flight_fetches', count, description='Fetches in flight')

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        current_values = self.metrics.get_current_values()
        runtime = time.time() - self.start_time
        fetched = sum(v for k, v in current_values.items() if k.startswith('pages_fetched_total'))

        return {
            'runtime_seconds': runtime,
            'metrics': current_values,
            'rates': {
                'urls_per_second': fetched / runtime if runtime > 0 else 0,
            }
        }
