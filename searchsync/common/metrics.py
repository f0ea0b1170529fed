"""Metrics collection for searchsync.

Provides a thin convenience wrapper around ``prometheus_client`` so the
orchestrator and the HTTP driver consistently record sync and request
metrics.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- A single registry is kept per service (can be injected if needed)
- A decorator is provided for quick timing instrumentation
"""

import time
from functools import wraps
from typing import Any, Callable, Dict, Optional

import structlog
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

logger = structlog.get_logger("metrics")


class MetricsCollector:
    """Centralized metrics collection for sync services.

    Parameters
    - service_name: Logical name used for scoping/labels if desired
    - registry: Optional custom ``CollectorRegistry`` (e.g. for testing)

    Exposes typed helpers for common events to keep label sets consistent.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        self.request_count = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['method', 'endpoint', 'status'],
            registry=self.registry
        )

        self.request_duration = Histogram(
            'http_request_duration_seconds',
            'HTTP request duration',
            ['method', 'endpoint'],
            registry=self.registry
        )

        # Sync-specific metrics
        self.sync_runs = Counter(
            'sync_runs_total',
            'Full sync runs partitioned by lifecycle event.',
            ['event'],
            registry=self.registry
        )

        self.sync_steps = Counter(
            'sync_steps_total',
            'Sync steps executed partitioned by kind.',
            ['kind'],
            registry=self.registry
        )

        self.sync_step_duration = Histogram(
            'sync_step_duration_seconds',
            'Sync step duration seconds.',
            ['kind'],
            registry=self.registry
        )

        self.documents_indexed = Counter(
            'sync_documents_indexed_total',
            'Documents sent to the search backend.',
            ['indexable'],
            registry=self.registry
        )

        self.documents_failed = Counter(
            'sync_documents_failed_total',
            'Documents rejected by the search backend.',
            ['indexable'],
            registry=self.registry
        )

        self.objects_skipped = Counter(
            'sync_objects_skipped_total',
            'Objects vetoed by a sync hook.',
            ['indexable'],
            registry=self.registry
        )

        self.backend_errors = Counter(
            'sync_backend_errors_total',
            'Failed backend operations.',
            ['indexable', 'operation'],
            registry=self.registry
        )

        self.queue_length = Gauge(
            'sync_queue_length',
            'Work items remaining in the sync queue.',
            registry=self.registry
        )

    def record_http_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration: float
    ) -> None:
        """Record HTTP request metrics.

        duration is expected in seconds to match Prometheus histogram units.
        """
        self.request_count.labels(method=method, endpoint=endpoint, status=status).inc()
        self.request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def record_run(self, event: str) -> None:
        """Record a run lifecycle event (``started``, ``completed``, ``cancelled``)."""
        self.sync_runs.labels(event=event).inc()

    def record_step(self, kind: str, duration: float, queue_length: int = 0) -> None:
        """Record one orchestrator step."""
        self.sync_steps.labels(kind=kind).inc()
        self.sync_step_duration.labels(kind=kind).observe(duration)
        self.queue_length.set(queue_length)

    def record_batch(
        self,
        indexable: str,
        indexed: int,
        failed: int = 0,
        skipped: int = 0
    ) -> None:
        """Record the outcome of one bulk batch."""
        if indexed:
            self.documents_indexed.labels(indexable=indexable).inc(indexed)
        if failed:
            self.documents_failed.labels(indexable=indexable).inc(failed)
        if skipped:
            self.objects_skipped.labels(indexable=indexable).inc(skipped)

    def record_backend_error(self, indexable: str, operation: str) -> None:
        """Record a failed mapping, bulk, or alias operation."""
        self.backend_errors.labels(indexable=indexable, operation=operation).inc()

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')


_metrics_collectors: Dict[str, MetricsCollector] = {}


def get_metrics_collector(service_name: str) -> MetricsCollector:
    """Get or create the metrics collector for a service.

    Returns one collector per service name to avoid duplicate registrations.
    """
    if service_name not in _metrics_collectors:
        _metrics_collectors[service_name] = MetricsCollector(service_name)
    return _metrics_collectors[service_name]


def measure_time(operation: str, **labels: Any) -> Callable:
    """Decorator to measure function execution time.

    Example
    >>> @measure_time("alias", indexable="post")
    ... def create_alias(indexes):
    ...     ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.time()
            try:
                result = func(*args, **kwargs)
                duration = time.time() - start_time
                logger.debug(
                    f"Operation {operation} completed",
                    operation=operation,
                    duration_ms=duration * 1000,
                    **labels
                )
                return result
            except Exception as e:
                duration = time.time() - start_time
                logger.error(
                    f"Operation {operation} failed",
                    operation=operation,
                    duration_ms=duration * 1000,
                    error=str(e),
                    **labels
                )
                raise
        return wrapper
    return decorator
