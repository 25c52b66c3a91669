"""
Prometheus metrics for the booking engine.

Service timings come from the @measure_operation decorator; the domain
helpers below count lifecycle transitions, rejections by reason and
capacity-lock outcomes. Everything is registered on a private registry so
embedding processes can expose it alongside their own.
"""

from threading import Lock
from time import monotonic
from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "booking_engine_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "booking_engine_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "booking_engine_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

booking_transitions_total = Counter(
    "booking_engine_transitions_total",
    "Committed booking lifecycle transitions",
    ["event", "from_status", "to_status"],
    registry=REGISTRY,
)

booking_rejections_total = Counter(
    "booking_engine_rejections_total",
    "Operations refused by a business rule",
    ["operation", "error_kind"],
    registry=REGISTRY,
)

booking_overrides_total = Counter(
    "booking_engine_overrides_total",
    "Operator override flags that bypassed a guard",
    ["flag"],
    registry=REGISTRY,
)

capacity_lock_total = Counter(
    "booking_engine_capacity_lock_total",
    "Capacity lock acquire/release outcomes",
    ["backend", "action", "outcome"],
    registry=REGISTRY,
)

capacity_lock_wait_seconds = Histogram(
    "booking_engine_capacity_lock_wait_seconds",
    "Time spent waiting for capacity locks",
    ["backend"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0),
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    _cache_lock: Lock = Lock()
    _cache_payload: Optional[bytes] = None
    _cache_ts: Optional[float] = None
    _cache_ttl_seconds: float = 1.0

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'BookingService')
            operation: Operation/method name (e.g., 'approve_booking')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()

        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_transition(event: str, from_status: str, to_status: str) -> None:
        booking_transitions_total.labels(
            event=event, from_status=from_status, to_status=to_status
        ).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_rejection(operation: str, error_kind: str) -> None:
        booking_rejections_total.labels(operation=operation, error_kind=error_kind).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_override(flag: str) -> None:
        booking_overrides_total.labels(flag=flag).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_capacity_lock(backend: str, action: str, outcome: str) -> None:
        capacity_lock_total.labels(backend=backend, action=action, outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def observe_capacity_lock_wait(backend: str, duration: float) -> None:
        capacity_lock_wait_seconds.labels(backend=backend).observe(max(duration, 0.0))
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def get_metrics() -> bytes:
        """
        Generate Prometheus metrics in exposition format.

        Returns:
            Metrics data in Prometheus text format
        """
        now = monotonic()
        payload = PrometheusMetrics._cache_payload
        ts = PrometheusMetrics._cache_ts

        if payload is not None and ts is not None and (now - ts) <= PrometheusMetrics._cache_ttl_seconds:
            return payload

        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_payload = cast(bytes, generate_latest(REGISTRY))
            PrometheusMetrics._cache_ts = monotonic()
            return PrometheusMetrics._cache_payload

    @staticmethod
    def get_content_type() -> str:
        """Get the content type for Prometheus metrics."""
        return cast(str, CONTENT_TYPE_LATEST)

    @staticmethod
    def _invalidate_cache() -> None:
        """Invalidate cached metrics so next scrape refreshes."""

        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_ts = None
            PrometheusMetrics._cache_payload = None


prometheus_metrics = PrometheusMetrics()
