"""Security policy inspection commands.

- Print the configured policy
- Dry-run a single operation against it, without touching the store
"""

import json
import sys

import click

from storage_guard.cli.utils import error, info, success, warning
from storage_guard.core.policy import OperationKind, OperationRequest, validate
from storage_guard.core.settings import get_storage_settings
from storage_guard.infra.storage.guard import resolve_role


@click.group(name="policy")
def policy() -> None:
    """Security policy commands.

    Inspect the access policy loaded from STORAGE_SECURITY / conf/storage.yaml
    and check what it allows.
    """


@policy.command(name="show")
def show() -> None:
    """Print the configured security policy as JSON."""
    settings = get_storage_settings()

    if settings.security is None:
        warning("No security policy configured: every operation is allowed")
        return

    document = settings.security.model_dump(mode="json", by_alias=True, exclude_none=True)
    click.echo(json.dumps(document, indent=2, sort_keys=True))


@policy.command(name="check")
@click.argument("operation", type=click.Choice([op.value for op in OperationKind]))
@click.argument("key")
@click.option("--role", default=None, help="Role to check as (default role applies if omitted)")
@click.option("--content-type", default=None, help="Declared content type")
@click.option("--size", type=click.IntRange(min=0), default=None, help="Declared size in bytes")
def check(operation: str, key: str, role: str | None, content_type: str | None, size: int | None) -> None:
    """Check whether OPERATION on KEY would be allowed.

    Exits 0 when allowed and 1 when denied.

    Examples:
        storage-guard policy check read public/report.pdf --role viewer
        storage-guard policy check write uploads/a.png --content-type image/png --size 1024
    """
    security = get_storage_settings().security
    effective_role = resolve_role(security, role)

    if role is None and effective_role is not None:
        info(f"Using default role '{effective_role}'")

    request = OperationRequest(
        operation=OperationKind(operation),
        key=key,
        role=effective_role,
        content_type=content_type,
        content_length=size,
    )
    decision = validate(security, request)

    if decision.allowed:
        success(f"Allowed: {operation} {key}")
        return

    error(f"Denied ({decision.rule}): {decision.reason}")
    sys.exit(1)
