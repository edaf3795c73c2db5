"""Recipient preference commands (Redis preferences cache)."""

import json
import sys

import click

from notification_service.cli.utils import coro, error, header, success


def _parse_changes(pairs: tuple[str, ...]) -> dict[str, object]:
    changes: dict[str, object] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            msg = f"Expected KEY=VALUE, got {pair!r}"
            raise click.BadParameter(msg, param_hint="--set")
        try:
            changes[key] = json.loads(raw)
        except json.JSONDecodeError:
            changes[key] = raw
    return changes


@click.group(name="preferences")
def preferences() -> None:
    """Inspect and update cached notification preferences."""


@preferences.command(name="show")
@click.argument("user_id")
@coro
async def show(user_id: str) -> None:
    """Print the preferences used for USER_ID (defaults on a cache miss)."""
    from notification_service.core.settings import get_notification_settings
    from notification_service.features.notifications import PreferencesCache
    from notification_service.infra.cache import create_redis_client

    redis = create_redis_client()
    try:
        cache = PreferencesCache(redis, ttl=get_notification_settings().preferences_ttl)
        prefs = await cache.get(user_id)
    finally:
        await redis.aclose()

    header(f"Preferences: {user_id}")
    click.echo(json.dumps(prefs.model_dump(mode="json", by_alias=True), indent=2))


@preferences.command(name="update")
@click.argument("user_id")
@click.option(
    "--set",
    "pairs",
    multiple=True,
    required=True,
    help='Field to change as KEY=VALUE (JSON values), e.g. --set emailEnabled=false --set mutedTypes=\'["SYSTEM"]\'',
)
@coro
async def update(user_id: str, pairs: tuple[str, ...]) -> None:
    """Merge changes into the cached preferences for USER_ID."""
    from notification_service.core.exceptions import ValidationException
    from notification_service.core.settings import get_notification_settings
    from notification_service.features.notifications import PreferencesCache
    from notification_service.infra.cache import create_redis_client

    changes = _parse_changes(pairs)
    redis = create_redis_client()
    try:
        cache = PreferencesCache(redis, ttl=get_notification_settings().preferences_ttl)
        prefs = await cache.update(user_id, changes)
    except ValidationException as e:
        error(f"{e.detail}: {e.extra.get('errors')}")
        sys.exit(2)
    finally:
        await redis.aclose()

    success(f"Preferences updated for {user_id}")
    click.echo(json.dumps(prefs.model_dump(mode="json", by_alias=True), indent=2))
