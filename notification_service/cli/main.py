"""Main CLI entry point for notification-service commands."""

import click

from notification_service.cli.commands import notifications, preferences, templates
from notification_service.infra.logging.config import setup_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="notification-service")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Notification Service CLI - operate the notification delivery engine.

    \b
    Commands:
      templates    Check e-mail templates
      send         Create and deliver one notification
      listen       Print status broadcasts
      preferences  Inspect and update cached preferences

    \b
    Quick Start:
      notification-service templates check
      notification-service send -t SYSTEM -r u1 -c in_app --local
      notification-service preferences show u1
    """
    ctx.ensure_object(dict)


cli.add_command(templates.templates)
cli.add_command(notifications.send)
cli.add_command(notifications.listen)
cli.add_command(preferences.preferences)


def main() -> None:
    """Entry point for CLI."""
    setup_logging()
    cli(obj={})


if __name__ == "__main__":
    main()
