"""Shared Prometheus registry.

Every metric in the package registers here instead of on the global default
registry, so an embedding application can expose or merge it explicitly::

    from prometheus_client import generate_latest
    from storage_guard.infra.metrics import REGISTRY

    payload = generate_latest(REGISTRY)
"""

from __future__ import annotations

from prometheus_client import CollectorRegistry

REGISTRY = CollectorRegistry()
