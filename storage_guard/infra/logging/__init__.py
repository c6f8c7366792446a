"""Logging setup for applications embedding storage-guard.

Library code logs through ``logging.getLogger(__name__)`` with structured
``extra`` fields; ``setup_logging()`` installs JSONL (or text) handlers.
"""

from .config import configure_logging, setup_logging, shutdown
from .formatters import JSONFormatter

__all__ = ["JSONFormatter", "configure_logging", "setup_logging", "shutdown"]
