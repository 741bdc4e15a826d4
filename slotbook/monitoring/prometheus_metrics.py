"""
Prometheus metrics for the SlotBook booking core.

Fed by ``BaseService.measure_operation`` plus explicit counters for the
business outcomes worth alerting on: capacity reservations, booking
transitions, payment outcomes and lock contention.
"""

from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Custom registry so embedding applications keep their default registry clean
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "slotbook_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=REGISTRY,
)

service_operations_total = Counter(
    "slotbook_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "slotbook_errors_total",
    "Total number of errors raised by service operations",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

capacity_reservations_total = Counter(
    "slotbook_capacity_reservations_total",
    "Capacity reservation attempts by outcome",
    ["outcome"],
    registry=REGISTRY,
)

booking_transitions_total = Counter(
    "slotbook_booking_transitions_total",
    "Booking status transitions",
    ["from_status", "to_status"],
    registry=REGISTRY,
)

payment_operations_total = Counter(
    "slotbook_payment_operations_total",
    "Payment orchestrator operations by outcome",
    ["operation", "outcome"],
    registry=REGISTRY,
)

booking_lock_total = Counter(
    "slotbook_booking_lock_total",
    "Keyed lock acquire/release outcomes",
    ["action", "outcome"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Static helpers around the module-level collectors."""

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
            operation: Operation/method name (e.g., 'create_booking')
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
    def record_capacity_reservation(outcome: str) -> None:
        capacity_reservations_total.labels(outcome=outcome).inc()

    @staticmethod
    def record_booking_transition(from_status: str, to_status: str) -> None:
        booking_transitions_total.labels(from_status=from_status, to_status=to_status).inc()

    @staticmethod
    def record_payment_operation(operation: str, outcome: str) -> None:
        payment_operations_total.labels(operation=operation, outcome=outcome).inc()

    @staticmethod
    def record_booking_lock(action: str, outcome: str) -> None:
        booking_lock_total.labels(action=action, outcome=outcome).inc()

    @staticmethod
    def get_metrics() -> bytes:
        """Metrics in Prometheus text exposition format."""
        return generate_latest(REGISTRY)

    @staticmethod
    def get_content_type() -> str:
        return CONTENT_TYPE_LATEST


prometheus_metrics = PrometheusMetrics()
