"""
Prometheus metrics for tutordesk.

Everything lives in a private registry so test runs and embedded apps
never collide with the process-wide default one. Service timings come from
@BaseService.measure_operation; billing and scheduling outcomes have their
own counters.
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

http_request_duration_seconds = Histogram(
    "tutordesk_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

service_operation_duration_seconds = Histogram(
    "tutordesk_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
)

service_operations_total = Counter(
    "tutordesk_service_operations_total",
    "Service operations by outcome",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

service_errors_total = Counter(
    "tutordesk_service_errors_total",
    "Failed service operations by exception type",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

invoices_total = Counter(
    "tutordesk_invoices_total",
    "Invoice generation attempts by outcome",
    ["outcome"],  # created | already_exists | nothing_to_invoice | conflict | failed
    registry=REGISTRY,
)

invoiced_lessons_total = Counter(
    "tutordesk_invoiced_lessons_total",
    "Lessons linked to newly created invoices",
    registry=REGISTRY,
)

billing_integrity_incidents_total = Counter(
    "tutordesk_billing_integrity_incidents_total",
    "Invoice writes whose rollback failed",
    registry=REGISTRY,
)

booking_conflicts_total = Counter(
    "tutordesk_booking_conflicts_total",
    "Scheduling requests rejected because of a busy interval",
    ["operation"],
    registry=REGISTRY,
)

lessons_created_total = Counter(
    "tutordesk_lessons_created_total",
    "Lesson rows created by scheduling",
    ["kind"],  # single | recurring | session
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Thin facade over the registry so callers never touch label plumbing."""

    @staticmethod
    def record_http_request(method: str, endpoint: str, duration: float, status_code: int) -> None:
        http_request_duration_seconds.labels(
            method=method, endpoint=endpoint, status_code=str(status_code)
        ).observe(duration)

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record one measured service call.

        Args:
            service: Service class name, e.g. 'InvoiceService'
            operation: Name given to @measure_operation
            duration: Seconds spent in the call
            status: 'success' or 'error'
            error_type: Exception class name when status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            service_errors_total.labels(
                service=service, operation=operation, error_type=error_type
            ).inc()

    @staticmethod
    def get_metrics() -> bytes:
        """Registry contents in the Prometheus text exposition format."""
        return cast(bytes, generate_latest(REGISTRY))

    @staticmethod
    def get_content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)

    # Domain counters

    @staticmethod
    def inc_invoice_outcome(outcome: str) -> None:
        invoices_total.labels(outcome=outcome).inc()

    @staticmethod
    def inc_invoiced_lessons(count: int) -> None:
        if count > 0:
            invoiced_lessons_total.inc(count)

    @staticmethod
    def inc_billing_integrity_incident() -> None:
        billing_integrity_incidents_total.inc()

    @staticmethod
    def inc_booking_conflict(operation: str) -> None:
        booking_conflicts_total.labels(operation=operation).inc()

    @staticmethod
    def inc_lessons_created(kind: str, count: int) -> None:
        if count > 0:
            lessons_created_total.labels(kind=kind).inc(count)


prometheus_metrics = PrometheusMetrics()
