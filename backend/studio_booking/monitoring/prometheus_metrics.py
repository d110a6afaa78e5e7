"""
Prometheus metrics for the studio reservation engine.

Service timings come from the @measure_operation decorator; the domain
counters below are recorded by the reservation, waitlist and lock code.
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

# Custom registry so importing the package never collides with host metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "studio_booking_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "studio_booking_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "studio_booking_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

reservations_total = Counter(
    "studio_booking_reservations_total",
    "Reservation attempts by outcome",
    ["outcome"],  # confirmed | waitlisted | existing
    registry=REGISTRY,
)

promotions_total = Counter(
    "studio_booking_waitlist_promotions_total",
    "Promotion cascade results",
    ["result"],  # promoted | empty | lead_time | skipped_entry
    registry=REGISTRY,
)

credit_movements_total = Counter(
    "studio_booking_credit_movements_total",
    "Credit ledger movements",
    ["movement"],  # deduct | deduct_unlimited | refund | refund_fallback | refund_failed
    registry=REGISTRY,
)

class_lock_total = Counter(
    "studio_booking_class_lock_total",
    "Class critical section acquisitions",
    ["backend", "result"],  # local|redis x acquired|timeout|unavailable
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Thin facade so call sites stay one line."""

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
            service: Service name (e.g., 'ReservationService')
            operation: Operation/method name (e.g., 'create_reservation')
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
    def record_reservation(outcome: str) -> None:
        reservations_total.labels(outcome=outcome).inc()

    @staticmethod
    def record_promotion(result: str) -> None:
        promotions_total.labels(result=result).inc()

    @staticmethod
    def record_credit_movement(movement: str) -> None:
        credit_movements_total.labels(movement=movement).inc()

    @staticmethod
    def record_class_lock(backend: str, result: str) -> None:
        class_lock_total.labels(backend=backend, result=result).inc()

    @staticmethod
    def get_metrics() -> bytes:
        """Metrics in Prometheus text exposition format."""
        return generate_latest(REGISTRY)


prometheus_metrics = PrometheusMetrics()
