"""
Prometheus metrics module for Parkzy.

Provides Prometheus-compatible metrics fed by the @measure_operation
decorator and by the booking lifecycle's transition logging.
"""

from typing import Optional

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
    "parkzy_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "parkzy_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "parkzy_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

booking_transitions_total = Counter(
    "parkzy_booking_transitions_total",
    "Booking lifecycle transitions by action and outcome",
    ["action", "outcome"],
    registry=REGISTRY,
)

booking_lock_total = Counter(
    "parkzy_booking_lock_total",
    "Booking mutex operations",
    ["operation", "outcome"],
    registry=REGISTRY,
)

notifications_total = Counter(
    "parkzy_notifications_total",
    "Booking notifications by outcome",
    ["status"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

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

    @staticmethod
    def record_booking_transition(action: str, outcome: str) -> None:
        booking_transitions_total.labels(action=action, outcome=outcome).inc()

    @staticmethod
    def record_booking_lock(operation: str, outcome: str) -> None:
        booking_lock_total.labels(operation=operation, outcome=outcome).inc()

    @staticmethod
    def record_notification(status: str) -> None:
        notifications_total.labels(status=status).inc()

    @staticmethod
    def get_metrics() -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(REGISTRY)

    @staticmethod
    def get_content_type() -> str:
        return CONTENT_TYPE_LATEST


prometheus_metrics = PrometheusMetrics()
