"""Storage operation instrumentation with OpenTelemetry and Prometheus metrics.

Only calls that actually reach the object store are wrapped. Requests denied
by the policy never open a span here; they are counted by
``record_policy_decision`` instead.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from opentelemetry.trace import Status, StatusCode

from storage_guard.infra.tracing.opentelemetry import get_tracer

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

_tracer = get_tracer("storage_guard.storage")


@asynccontextmanager
async def track_storage_operation(
    operation: str,
    key: str | None = None,
    bucket: str | None = None,
    size_bytes: int | None = None,
    content_type: str | None = None,
    role: str | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """Track a storage operation with an OpenTelemetry span and Prometheus metrics.

    The yielded dict can be updated by the caller; its entries are recorded
    as ``storage.result.*`` span attributes when the block exits.

    Args:
        operation: Operation name (upload, download, delete, list, acl_get...)
        key: Object key or list prefix
        bucket: Bucket name
        size_bytes: Object size in bytes (for uploads)
        content_type: MIME content type
        role: Effective policy role

    Example:
        async with track_storage_operation("download", key=key, bucket=bucket) as ctx:
            data = await backend.download_object(key, bucket=bucket)
            ctx["result_size"] = len(data)
    """
    from . import metrics

    start_time = time.perf_counter()
    context: dict[str, Any] = {}

    span_attributes: dict[str, Any] = {"storage.operation": operation}
    if key:
        span_attributes["storage.key"] = key
    if bucket:
        span_attributes["storage.bucket"] = bucket
    if size_bytes is not None:
        span_attributes["storage.size_bytes"] = size_bytes
    if content_type:
        span_attributes["storage.content_type"] = content_type
    if role:
        span_attributes["storage.role"] = role

    metrics.storage_connections_active.inc()

    with _tracer.start_as_current_span(
        f"storage.{operation}",
        attributes=span_attributes,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield context

            duration = time.perf_counter() - start_time
            for k, v in context.items():
                span.set_attribute(f"storage.result.{k}", str(v))

            metrics.record_operation_success(
                operation=operation,
                duration_seconds=duration,
                size_bytes=context.get("result_size", size_bytes),
            )
            span.set_status(Status(StatusCode.OK))

        except Exception as e:
            duration = time.perf_counter() - start_time
            metrics.record_operation_error(
                operation=operation,
                error_type=type(e).__name__,
                duration_seconds=duration,
            )
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise

        finally:
            metrics.storage_connections_active.dec()
