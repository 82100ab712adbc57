"""
Prometheus metrics for the booking core.

Metrics live on a private registry so tests and embedding applications can
import the package without colliding with the default process registry.
"""

from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "pilates_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "pilates_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "pilates_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

reservations_total = Counter(
    "pilates_reservations_total",
    "Reservation attempts by outcome",
    ["reservation_type", "outcome"],  # outcome: created | rejected code
    registry=REGISTRY,
)

cancellations_total = Counter(
    "pilates_cancellations_total",
    "Cancellations by kind",
    ["kind"],  # free | late | admin | confirmation_required
    registry=REGISTRY,
)

waitlist_promotions_total = Counter(
    "pilates_waitlist_promotions_total",
    "Waitlist promotion attempts by outcome",
    ["outcome"],  # promoted | full | empty | skipped | started | lock_busy
    registry=REGISTRY,
)

ticket_movements_total = Counter(
    "pilates_ticket_movements_total",
    "Ticket credit movements",
    ["direction"],  # consume | refund | grant | adjust
    registry=REGISTRY,
)

lesson_lock_total = Counter(
    "pilates_lesson_lock_total",
    "Lesson mutex operations",
    ["action", "status"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Thin facade over the module-level collectors."""

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from the @measure_operation decorator.

        Args:
            service: Service name (e.g., 'ReservationService')
            operation: Operation name (e.g., 'create_reservation')
            duration: Operation duration in seconds
            status: 'success' or 'error'
            error_type: Exception class name if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def record_reservation(reservation_type: str, outcome: str) -> None:
        reservations_total.labels(reservation_type=reservation_type, outcome=outcome).inc()

    @staticmethod
    def record_cancellation(kind: str) -> None:
        cancellations_total.labels(kind=kind).inc()

    @staticmethod
    def record_promotion(outcome: str) -> None:
        waitlist_promotions_total.labels(outcome=outcome).inc()

    @staticmethod
    def record_ticket_movement(direction: str, amount: int = 1) -> None:
        ticket_movements_total.labels(direction=direction).inc(amount)

    @staticmethod
    def record_lesson_lock(action: str, status: str) -> None:
        lesson_lock_total.labels(action=action, status=status).inc()

    @staticmethod
    def get_metrics() -> bytes:
        """Metrics in Prometheus text exposition format."""
        return cast(bytes, generate_latest(REGISTRY))

    @staticmethod
    def get_content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)


prometheus_metrics = PrometheusMetrics()
