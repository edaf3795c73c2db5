"""E-mail template commands."""

import sys

import click

from notification_service.cli.utils import error, field, header, success, warning


@click.group(name="templates")
def templates() -> None:
    """E-mail template commands."""


@templates.command(name="check")
@click.option(
    "--template-dir",
    type=click.Path(file_okay=False, path_type=str),
    default=None,
    help="Template directory (defaults to EMAIL_TEMPLATE_DIR)",
)
def check_templates(template_dir: str | None) -> None:
    """Compile every template named in the type -> template mapping.

    Exits with status 1 if any mapped template is missing or invalid.

    Examples:
    \b
      notification-service templates check
      notification-service templates check --template-dir ./templates/email
    """
    from notification_service.core.settings import get_email_settings
    from notification_service.infra.email import TemplateCache

    settings = get_email_settings()
    if template_dir is not None:
        cache = TemplateCache.from_directory(
            template_dir,
            list(settings.template_mapping.values()),
            extension=settings.template_extension,
        )
    else:
        cache = TemplateCache.from_settings(settings)

    header("Email Templates")
    for notification_type, name in sorted(settings.template_mapping.items()):
        if name in cache:
            field(notification_type, click.style(f"{name}{settings.template_extension}", fg="green"))
        else:
            field(notification_type, click.style(f"{name}: {cache.errors.get(name, 'missing')}", fg="red"))

    click.echo()
    if cache.errors:
        error(f"{len(cache.errors)} template(s) failed to compile")
        sys.exit(1)
    if not cache.names:
        warning("No templates mapped")
        return
    success(f"{len(cache.names)} template(s) compiled")
