"""Object storage commands.

Every command that touches objects goes through ``StorageService``, so the
configured security policy applies exactly as it does for library callers.
"""

from datetime import datetime
import sys

import click

from storage_guard.cli.utils import coro, error, field, info, section, success, warning
from storage_guard.core.settings import get_storage_settings
from storage_guard.infra.storage import (
    PolicyViolationError,
    StorageError,
    StorageService,
)


def _format_bytes(size_bytes: int) -> str:
    """Format bytes to human-readable size (e.g., "1.5 MB")."""
    size = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size < 1024.0:
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024.0
    return f"{size:.1f} PB"


def _fail(e: StorageError) -> None:
    if isinstance(e, PolicyViolationError):
        error(f"Denied by policy ({e.rule}): {e.detail}")
    else:
        error(f"{e.code}: {e.detail}")
    sys.exit(1)


def _require_configured() -> None:
    if not get_storage_settings().is_configured:
        error("Storage is not configured. Run 'storage-guard storage info' for details.")
        sys.exit(1)


@click.group(name="storage")
def storage() -> None:
    """Object storage commands (policy enforced)."""


@storage.command(name="info")
def info_cmd() -> None:
    """Show storage connection configuration."""
    settings = get_storage_settings()

    section("Storage Configuration")
    field("Enabled", settings.enabled)
    field("Backend", settings.backend.value)
    field("Endpoint", settings.endpoint if settings.is_minio else "AWS S3 (default)")
    field("Bucket", settings.bucket)
    field("Region", settings.region)
    field("Path-style addressing", settings.force_path_style)
    field("Use SSL", settings.use_ssl)
    field("Max retries", f"{settings.max_retries} ({settings.retry_mode})")
    field(
        "Presigned max expiry",
        f"{settings.presigned_max_expiry_seconds}s"
        if settings.presigned_max_expiry_seconds
        else "not set (delete/ACL: 3600s)",
    )
    click.echo()

    if settings.access_key is not None:
        success("Credentials: static keys configured")
    else:
        info("Credentials: default AWS credential chain")

    if settings.has_security_policy:
        roles = settings.security.role_based_access  # type: ignore[union-attr]
        role_names = ", ".join(sorted(roles.roles)) if roles else "-"
        success(f"Security policy: enabled (roles: {role_names})")
    else:
        warning("Security policy: none (permissive mode)")

    if not settings.is_configured:
        warning("Storage is disabled. Set STORAGE_ENABLED=true to enable it.")


@storage.command(name="ls")
@click.argument("prefix", default="")
@click.option("--role", default=None, help="Role to list as")
@coro
async def ls(prefix: str, role: str | None) -> None:
    """List objects under PREFIX.

    Examples:
        storage-guard storage ls public/
        storage-guard storage ls uploads/ --role editor
    """
    _require_configured()

    try:
        async with StorageService() as service:
            objects = await service.list_files(prefix, role=role)
    except StorageError as e:
        _fail(e)
        return

    if not objects:
        warning(f"No objects found with prefix: '{prefix}'")
        return

    click.echo(f"\n{'Key':<50} {'Size':<12} {'Last Modified':<25}")
    click.echo("-" * 90)
    total_size = 0
    for obj in objects:
        display_key = obj.key if len(obj.key) <= 48 else "..." + obj.key[-45:]
        modified = obj.last_modified
        modified_str = modified.strftime("%Y-%m-%d %H:%M:%S") if isinstance(modified, datetime) else "-"
        click.echo(f"{display_key:<50} {_format_bytes(obj.size_bytes):<12} {modified_str:<25}")
        total_size += obj.size_bytes
    click.echo("-" * 90)
    click.echo(f"Total: {len(objects)} objects, {_format_bytes(total_size)}")


@storage.group(name="presign")
def presign() -> None:
    """Issue presigned URLs (policy checked at issuance)."""


@presign.command(name="download")
@click.argument("key")
@click.option("--expires-in", type=int, default=3600, show_default=True, help="Lifetime in seconds")
@click.option("--role", default=None, help="Role to issue the URL as")
@coro
async def presign_download(key: str, expires_in: int, role: str | None) -> None:
    """Print a presigned GET URL for KEY."""
    _require_configured()

    try:
        async with StorageService() as service:
            url = await service.get_presigned_download_url(key, expires_in, role=role)
    except StorageError as e:
        _fail(e)
        return

    click.echo(url)


@presign.command(name="upload")
@click.argument("key")
@click.option("--expires-in", type=int, default=3600, show_default=True, help="Lifetime in seconds")
@click.option("--role", default=None, help="Role to issue the URL as")
@click.option("--content-type", default=None, help="Content type signed into the URL")
@click.option("--max-size", type=click.IntRange(min=0), default=None, help="Declared size limit")
@coro
async def presign_upload(
    key: str,
    expires_in: int,
    role: str | None,
    content_type: str | None,
    max_size: int | None,
) -> None:
    """Print a presigned PUT URL for KEY."""
    _require_configured()

    try:
        async with StorageService() as service:
            url = await service.get_presigned_upload_url(
                key,
                expires_in,
                role=role,
                content_type=content_type,
                max_size=max_size,
            )
    except StorageError as e:
        _fail(e)
        return

    click.echo(url)


@presign.command(name="delete")
@click.argument("key")
@click.option(
    "--expires-in",
    type=int,
    default=3600,
    show_default=True,
    help="Lifetime in seconds (at most 3600)",
)
@click.option("--role", default=None, help="Role to issue the URL as")
@coro
async def presign_delete(key: str, expires_in: int, role: str | None) -> None:
    """Print a presigned DELETE URL for KEY."""
    _require_configured()

    try:
        async with StorageService() as service:
            url = await service.get_presigned_delete_url(key, expires_in, role=role)
    except StorageError as e:
        _fail(e)
        return

    click.echo(url)
