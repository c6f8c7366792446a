"""Infrastructure adapters: object storage, logging, metrics and tracing."""
