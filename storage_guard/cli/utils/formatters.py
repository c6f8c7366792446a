"""Output formatting utilities for CLI commands."""

import click


def success(message: str) -> None:
    """Print a success message in green."""
    click.secho(f"✓ {message}", fg="green")


def error(message: str) -> None:
    """Print an error message in red on stderr."""
    click.secho(f"✗ {message}", fg="red", err=True)


def warning(message: str) -> None:
    """Print a warning message in yellow."""
    click.secho(f"⚠ {message}", fg="yellow")


def info(message: str) -> None:
    """Print an info message in blue."""
    click.secho(f"ℹ {message}", fg="blue")


def section(title: str, width: int = 60) -> None:
    """Print a section divider."""
    click.secho(f"\n{'=' * width}", fg="white", dim=True)
    click.secho(title, fg="cyan", bold=True)
    click.secho("=" * width, fg="white", dim=True)


def field(label: str, value: object) -> None:
    """Print one ``label: value`` line of a settings listing."""
    click.echo(f"{label + ':':<24} {value}")
