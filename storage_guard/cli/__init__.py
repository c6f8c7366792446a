"""Command line interface for storage-guard."""
