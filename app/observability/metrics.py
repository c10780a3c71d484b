"""
Metrics Collection with Prometheus.

Exposes auth and system metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from app.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    ROLE = "role"
    OUTCOME = "outcome"
    ERROR_TYPE = "error_type"


class AuthMetrics:
    """
    Centralized metrics for the auth service.

    Minimum viable metrics covering:
    - HTTP requests (rate, duration, errors)
    - Auth operations (join/login/refresh/logout by role and outcome)
    - Session rotations and revocations
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "auth_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "auth_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "auth_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "auth_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Auth Operation Metrics
        # ====================================================================
        self.auth_operations_total = Counter(
            "auth_operations_total",
            "Total auth operations by role and outcome",
            [MetricLabels.OPERATION, MetricLabels.ROLE, MetricLabels.OUTCOME],
        )

        self.auth_operation_duration_seconds = Histogram(
            "auth_operation_duration_seconds",
            "Auth operation duration in seconds (includes password hashing)",
            [MetricLabels.OPERATION],
            buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
        )

        # ====================================================================
        # Session Metrics
        # ====================================================================
        self.sessions_rotated_total = Counter(
            "auth_sessions_rotated_total",
            "Total refresh-token rotations",
            [MetricLabels.ROLE],
        )

        self.sessions_revoked_total = Counter(
            "auth_sessions_revoked_total",
            "Total sessions revoked outside rotation",
            ["reason"],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "auth_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_auth_operation(
        self, operation: str, role: str, outcome: str, duration: float | None = None
    ) -> None:
        """Record an auth operation outcome ("success" or an error class name)."""
        self.auth_operations_total.labels(operation=operation, role=role, outcome=outcome).inc()
        if duration is not None:
            self.auth_operation_duration_seconds.labels(operation=operation).observe(duration)

    def record_rotation(self, role: str) -> None:
        """Record a refresh-token rotation."""
        self.sessions_rotated_total.labels(role=role).inc()

    def record_revocations(self, reason: str, count: int = 1) -> None:
        """Record sessions revoked for a reason."""
        if count > 0:
            self.sessions_revoked_total.labels(reason=reason).inc(count)

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = AuthMetrics()
