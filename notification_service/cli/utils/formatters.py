"""Terminal output helpers shared by the CLI commands."""

import click

_STATUS_COLORS = {"DELIVERED": "green", "FAILED": "red", "PENDING": "yellow"}
_RULE = "-" * 60


def _emit(symbol: str, message: str, color: str, *, err: bool = False) -> None:
    click.secho(f"{symbol} {message}", fg=color, err=err)


def success(message: str) -> None:
    _emit("✓", message, "green")


def error(message: str) -> None:
    """Print to stderr in red."""
    _emit("✗", message, "red", err=True)


def warning(message: str) -> None:
    _emit("⚠", message, "yellow")


def info(message: str) -> None:
    _emit("ℹ", message, "blue")


def header(title: str) -> None:
    click.secho(f"\n{title}", fg="cyan", bold=True)


def section(title: str) -> None:
    click.secho(f"\n{title}", bold=True)
    click.secho(_RULE, dim=True)


def styled_status(status: str) -> str:
    """Delivery status colored for terminal output."""
    return click.style(status, fg=_STATUS_COLORS.get(status, "white"), bold=True)


def field(label: str, value: object) -> None:
    click.echo(f"  {label}: {value}")
