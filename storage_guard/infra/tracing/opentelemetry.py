"""OpenTelemetry tracer access.

Only the OpenTelemetry API is used here. Spans are no-ops until the embedding
application installs a TracerProvider (and exporters) of its own.
"""

from __future__ import annotations

from opentelemetry import trace


def get_tracer(name: str) -> trace.Tracer:
    """Get a tracer instance for creating custom spans.

    Args:
        name: Tracer name, typically __name__ of the module.

    Returns:
        Tracer instance for creating spans.

    Example:
        tracer = get_tracer(__name__)

        with tracer.start_as_current_span("policy.check") as span:
            span.set_attribute("storage.key", key)
    """
    return trace.get_tracer(name)
