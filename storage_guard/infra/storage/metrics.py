"""Storage metrics for Prometheus monitoring.

Tracks:
- Transport operation counters and timing (upload, download, delete, list, acl...)
- Object size distribution
- Errors by exception type
- Presigned URL issuance
- Policy decisions (allow/deny, by failing rule)
- Active in-flight operations

All metrics are registered on the package's shared ``REGISTRY``.

Usage:
    from storage_guard.infra.storage.metrics import record_policy_decision

    record_policy_decision("write", allowed=False, rule="prefix_denied")
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

from storage_guard.infra.metrics.prometheus import REGISTRY

# Covers latency from 10ms to 30s for network operations
STORAGE_LATENCY_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)

# 1KB to 100MB
STORAGE_SIZE_BUCKETS = (1024, 10240, 102400, 1048576, 10485760, 52428800, 104857600)

storage_operations_total = Counter(
    "storage_operations_total",
    "Total storage operations sent to the object store",
    ["operation", "status"],  # status: success/error
    registry=REGISTRY,
)

storage_operation_duration_seconds = Histogram(
    "storage_operation_duration_seconds",
    "Storage operation duration in seconds",
    ["operation"],
    buckets=STORAGE_LATENCY_BUCKETS,
    registry=REGISTRY,
)

storage_file_size_bytes = Histogram(
    "storage_file_size_bytes",
    "Size of objects uploaded/downloaded in bytes",
    ["operation"],
    buckets=STORAGE_SIZE_BUCKETS,
    registry=REGISTRY,
)

storage_connections_active = Gauge(
    "storage_connections_active",
    "Number of in-flight storage operations",
    registry=REGISTRY,
)

storage_errors_total = Counter(
    "storage_errors_total",
    "Storage operation errors by type",
    ["operation", "error_type"],
    registry=REGISTRY,
)

storage_presigned_urls_generated = Counter(
    "storage_presigned_urls_generated",
    "Total presigned URLs issued",
    ["type"],  # upload/upload_post/download/delete/list/acl
    registry=REGISTRY,
)

storage_policy_decisions_total = Counter(
    "storage_policy_decisions_total",
    "Policy decisions taken before storage operations",
    ["operation", "outcome", "rule"],  # outcome: allow/deny, rule: "" on allow
    registry=REGISTRY,
)


def record_operation_success(
    operation: str,
    duration_seconds: float,
    size_bytes: int | None = None,
) -> None:
    """Record a successful storage operation.

    Example:
        >>> record_operation_success("upload", 1.5, size_bytes=1048576)
    """
    storage_operations_total.labels(operation=operation, status="success").inc()
    storage_operation_duration_seconds.labels(operation=operation).observe(duration_seconds)
    if size_bytes is not None:
        storage_file_size_bytes.labels(operation=operation).observe(size_bytes)


def record_operation_error(
    operation: str,
    error_type: str,
    duration_seconds: float,
) -> None:
    """Record a failed storage operation.

    Args:
        operation: The operation type (e.g., 'upload', 'download', 'delete')
        error_type: The error class name (e.g., 'StorageTimeoutError')
        duration_seconds: Operation duration in seconds before failure
    """
    storage_operations_total.labels(operation=operation, status="error").inc()
    storage_operation_duration_seconds.labels(operation=operation).observe(duration_seconds)
    storage_errors_total.labels(operation=operation, error_type=error_type).inc()


def record_policy_decision(operation: str, *, allowed: bool, rule: str | None = None) -> None:
    """Count one policy decision."""
    storage_policy_decisions_total.labels(
        operation=operation,
        outcome="allow" if allowed else "deny",
        rule=rule or "",
    ).inc()


def record_presigned_url(url_type: str) -> None:
    """Count one issued presigned URL."""
    storage_presigned_urls_generated.labels(type=url_type).inc()
