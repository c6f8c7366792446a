"""storage-guard: role-based access policy in front of S3-compatible storage."""

__version__ = "0.1.0"
