"""Notification commands: send one notification, watch status broadcasts."""

import asyncio
import json
import sys

import click

from notification_service.cli.utils import (
    coro,
    error,
    field,
    header,
    info,
    section,
    styled_status,
    success,
)


def _parse_metadata(pairs: tuple[str, ...]) -> dict[str, str]:
    metadata: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            msg = f"Expected KEY=VALUE, got {pair!r}"
            raise click.BadParameter(msg, param_hint="--meta")
        metadata[key] = value
    return metadata


@click.command(name="send")
@click.option("--type", "-t", "notification_type", required=True, help="Notification type (e.g. TASK_ASSIGNED)")
@click.option("--recipient-id", "-r", required=True, help="Recipient identifier")
@click.option("--title", default="", help="Notification title (also the e-mail subject)")
@click.option("--message", "-m", default="", help="Notification body")
@click.option("--priority", "-p", default="MEDIUM", show_default=True, help="LOW, MEDIUM, HIGH or URGENT")
@click.option("--email", "recipient_email", default=None, help="Recipient e-mail address")
@click.option(
    "--channel",
    "-c",
    "channels",
    multiple=True,
    help="Channel to use (email, in_app, push). Repeat for several; defaults to preferences",
)
@click.option("--meta", "meta", multiple=True, help="Extra metadata as KEY=VALUE")
@click.option("--local", is_flag=True, help="Use in-process counter store and bus instead of Redis")
@click.option("--json", "as_json", is_flag=True, help="Print the notification as JSON")
@coro
async def send(
    notification_type: str,
    recipient_id: str,
    title: str,
    message: str,
    priority: str,
    recipient_email: str | None,
    channels: tuple[str, ...],
    meta: tuple[str, ...],
    local: bool,
    as_json: bool,
) -> None:
    """Create one notification and deliver it through the configured channels.

    Examples:
    \b
      notification-service send -t TASK_ASSIGNED -r u1 --title "Review PR" --email a@b.com
      notification-service send -t SYSTEM -r u1 -c in_app --local
    """
    from notification_service.core.exceptions import RateLimitException, ValidationException
    from notification_service.features.notifications import (
        NotificationEngine,
        NotificationPreferences,
        NotificationRequest,
    )

    metadata = _parse_metadata(meta)
    if recipient_email:
        metadata["recipientEmail"] = recipient_email

    try:
        request = NotificationRequest.model_validate(
            {
                "type": notification_type,
                "recipient_id": recipient_id,
                "title": title,
                "message": message,
                "priority": priority,
                "metadata": metadata,
            },
        )
    except ValueError as e:
        error(f"Invalid request: {e}")
        sys.exit(2)

    preferences = None
    if channels:
        preferences = NotificationPreferences(delivery_channels={request.type: list(channels)})

    async with NotificationEngine.from_settings(use_redis=not local) as engine:
        try:
            notification = await engine.create(request, preferences)
        except RateLimitException as e:
            error(f"Rate limited: {e.detail}")
            sys.exit(1)
        except ValidationException as e:
            error(f"Invalid request: {e.detail}")
            sys.exit(2)

    if as_json:
        payload = notification.to_payload()
        payload["results"] = [result.to_dict() for result in notification.results]
        click.echo(json.dumps(payload, indent=2))
    else:
        header(f"Notification {notification.id}")
        field("Type", notification.type.value)
        field("Recipient", notification.recipient_id)
        field("Status", styled_status(notification.delivery_status.value))
        if notification.results:
            section("Channels")
            for result in notification.results:
                state = click.style("ok", fg="green") if result.success else click.style(result.error or "failed", fg="red")
                field(result.channel.value, f"{state} ({result.attempts} attempt(s))")
        else:
            info("No channel was invoked")

    if notification.delivery_status.value == "FAILED":
        sys.exit(1)
    if not as_json:
        success("Done")


@click.command(name="listen")
@click.option("--recipient-id", "-r", default=None, help="Also print in-app notifications for this recipient")
@click.option("--count", "-n", type=int, default=None, help="Exit after this many messages")
@coro
async def listen(recipient_id: str | None, count: int | None) -> None:
    """Print status broadcasts (and in-app notifications) as they arrive.

    Examples:
    \b
      notification-service listen
      notification-service listen -r u1 -n 10
    """
    from notification_service.core.settings import get_notification_settings
    from notification_service.infra.cache import create_redis_client, ping
    from notification_service.infra.messaging import RedisMessageBus

    settings = get_notification_settings()
    redis = create_redis_client()
    if not await ping(redis):
        error("Redis is not reachable")
        await redis.aclose()
        sys.exit(1)

    bus = RedisMessageBus(redis)
    queue: asyncio.Queue[tuple[str, object]] = asyncio.Queue()

    def enqueue(topic: str):
        async def handler(message: object) -> None:
            await queue.put((topic, message))

        return handler

    topics = [settings.status_topic]
    if recipient_id:
        topics.append(settings.topic_for_recipient(recipient_id))
    for topic in topics:
        await bus.subscribe(topic, enqueue(topic))

    header("Listening on " + ", ".join(topics))
    received = 0
    try:
        while count is None or received < count:
            topic, message = await queue.get()
            received += 1
            click.echo(f"[{topic}] {json.dumps(message, default=str)}")
    finally:
        await bus.close()
        await redis.aclose()
