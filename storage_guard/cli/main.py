"""Main CLI entry point for storage-guard."""

import click

from storage_guard import __version__
from storage_guard.cli.commands import policy, storage
from storage_guard.infra.logging.config import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="storage-guard")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """storage-guard: policy-enforced access to S3-compatible storage.

    \b
    Command Groups:
      policy   Inspect and dry-run the security policy
      storage  Storage configuration, listing and presigned URLs

    \b
    Quick Start:
      storage-guard policy show
      storage-guard policy check write uploads/a.png --role editor
      storage-guard storage presign download public/report.pdf --expires-in 600
    """
    ctx.ensure_object(dict)


cli.add_command(policy.policy)
cli.add_command(storage.storage)


def main() -> None:
    """Entry point for CLI."""
    setup_logging()
    cli(obj={})


if __name__ == "__main__":
    main()
