"""Prometheus metrics registry."""

from .prometheus import REGISTRY

__all__ = ["REGISTRY"]
