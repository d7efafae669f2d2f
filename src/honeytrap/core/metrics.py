"""
Prometheus metrics collection.

Each collector owns its registry so an app restarted inside one process
(tests, reloads) registers fresh metrics without colliding.
"""

import time
from typing import Optional

import structlog
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info

logger = structlog.get_logger(__name__)


class MetricsCollector:
    """
    Centralized metrics collection for the honeytrap service.

    Keep metrics simple,
    use in-memory counters, let Prometheus handle storage.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry or CollectorRegistry()

        # Service info
        self.service_info = Info(
            "honeytrap_service",
            "Honeytrap service information",
            registry=self.registry,
        )
        self.service_info.info({
            "version": "0.1.0",
            "service": "honeytrap",
        })

        # Capture metrics
        self.requests_captured_total = Counter(
            "honeytrap_requests_captured_total",
            "Inbound requests submitted for logging",
            ["method"],
            registry=self.registry,
        )

        self.credential_attempts_total = Counter(
            "honeytrap_credential_attempts_total",
            "Submissions to the fake login form",
            registry=self.registry,
        )

        self.trap_delay_seconds = Histogram(
            "honeytrap_trap_delay_seconds",
            "Artificial delay applied to login responses",
            buckets=[0.25, 0.5, 0.75, 1.0, 1.25, 1.5, 2.0],
            registry=self.registry,
        )

        # Admin gate metrics
        self.admin_attempts_total = Counter(
            "honeytrap_admin_attempts_total",
            "PIN submissions to the admin console",
            ["outcome"],
            registry=self.registry,
        )

        self.rate_limited_total = Counter(
            "honeytrap_rate_limited_total",
            "Requests rejected by a rate limiter",
            ["surface"],
            registry=self.registry,
        )

        # Ingestion metrics
        self.ingestion_writes_total = Counter(
            "honeytrap_ingestion_writes_total",
            "Records written by the ingestion pipeline",
            ["kind", "outcome"],
            registry=self.registry,
        )

        self.ingestion_dropped_total = Counter(
            "honeytrap_ingestion_dropped_total",
            "Records dropped because the queue was full",
            ["kind"],
            registry=self.registry,
        )

        self.ingestion_queue_depth = Gauge(
            "honeytrap_ingestion_queue_depth",
            "Records waiting to be written",
            registry=self.registry,
        )

        # Analytics metrics
        self.query_failures_total = Counter(
            "honeytrap_query_failures_total",
            "Analytics queries that fell back to their default",
            ["query"],
            registry=self.registry,
        )

        self.uptime_seconds = Gauge(
            "honeytrap_uptime_seconds",
            "Service uptime in seconds",
            registry=self.registry,
        )

        self._start_time = time.time()

    def record_request(self, method: str) -> None:
        self.requests_captured_total.labels(method=method.upper()).inc()

    def record_credential_attempt(self, delay_seconds: float) -> None:
        self.credential_attempts_total.inc()
        self.trap_delay_seconds.observe(delay_seconds)

    def record_admin_attempt(self, outcome: str) -> None:
        self.admin_attempts_total.labels(outcome=outcome).inc()

    def record_rate_limited(self, surface: str) -> None:
        self.rate_limited_total.labels(surface=surface).inc()

    def record_write(self, kind: str, success: bool) -> None:
        self.ingestion_writes_total.labels(
            kind=kind,
            outcome="success" if success else "failure",
        ).inc()

    def record_dropped(self, kind: str) -> None:
        self.ingestion_dropped_total.labels(kind=kind).inc()

    def update_queue_depth(self, depth: int) -> None:
        self.ingestion_queue_depth.set(depth)

    def record_query_failure(self, query: str) -> None:
        self.query_failures_total.labels(query=query).inc()

    def update_system_metrics(self) -> None:
        self.uptime_seconds.set(time.time() - self._start_time)
