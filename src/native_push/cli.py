#!/usr/bin/env python3
"""
Native push command line interface.

Commands:
- serve: run the token registration and dispatch HTTP service
- send: dispatch one notification to an owner's registered tokens
"""

from __future__ import annotations

import asyncio
import logging
import sys

import click
from rich import box
from rich.console import Console
from rich.table import Table

from native_push.api import EventLoopThread, create_app
from native_push.config import PushConfig, ServiceConfig
from native_push.exceptions import ConfigurationError
from native_push.initializer import ProviderClients, initialize
from native_push.notification_types import NotificationDescriptor, NotificationPriority
from native_push.push_service import DeliveryResult, PushNotificationService
from native_push.token_store import create_token_store

logger = logging.getLogger(__name__)
console = Console()


def _handle_cli_error(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler."""
    logger.error("CLI error: %s", exc, exc_info=True)
    console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(exit_code)


def _results_table(results: list[DeliveryResult]) -> Table:
    table = Table(title="Delivery Results", box=box.ROUNDED)
    table.add_column("Provider", style="cyan")
    table.add_column("Token")
    table.add_column("Status")
    table.add_column("Error", style="dim")
    for result in results:
        status = "[green]sent[/]" if result.success else "[red]failed[/]"
        table.add_row(
            result.provider.value,
            result.device_token[:10] + "...",
            status,
            result.error or "",
        )
    return table


@click.group("native-push")
@click.option("--log-level", default="INFO", show_default=True,
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
def main(log_level: str):
    """Push notification delivery to APNs, FCM and Web Push."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command("serve")
def serve():
    """
    Run the HTTP service.

    Configuration is read from environment variables (PUSH_SYSTEMS,
    FIREBASE_SERVICE_ACCOUNT_FILE, APNS_*, WEB_PUSH_SUBJECT, VAPID_*, ID_TYPE,
    TOKEN_DB_PATH, AUTHORIZATION_VALIDATION_URL, HOST, PORT).
    """
    try:
        service_config = ServiceConfig.from_env()
        push_config = PushConfig.from_env()
        clients = initialize(push_config)
    except ConfigurationError as e:
        _handle_cli_error(e)
        return

    token_store = create_token_store(service_config.id_type, service_config.db_path)
    runner = EventLoopThread()
    app = create_app(
        PushNotificationService(token_store, clients),
        token_store,
        authorization_validation_url=service_config.authorization_validation_url,
        runner=runner,
    )

    logger.info(
        "Starting native push service",
        extra={"host": service_config.host, "port": service_config.port, "id_type": service_config.id_type},
    )
    try:
        app.run(host=service_config.host, port=service_config.port)
    finally:
        runner.run(clients.aclose())
        runner.stop()
        token_store.close()


async def _send(
    service: PushNotificationService,
    clients: ProviderClients,
    owner_id,
    descriptor: NotificationDescriptor,
) -> list[DeliveryResult]:
    try:
        return await service.send_to_owner(owner_id, descriptor)
    finally:
        await clients.aclose()


@main.command("send")
@click.argument("owner_id")
@click.option("--title", default=None, help="Notification title")
@click.option("--body", default=None, help="Notification body")
@click.option("--image-url", default=None, help="Image shown with the notification")
@click.option("--sound", default=None, help="Sound to play")
@click.option("--collapse-key", default=None, help="Collapse key / thread id")
@click.option("--priority", default="DEFAULT", show_default=True,
              type=click.Choice([p.value for p in NotificationPriority], case_sensitive=False))
@click.option("--data", "data_items", multiple=True, help="Custom data as key=value (repeatable)")
def send(owner_id: str, title: str | None, body: str | None, image_url: str | None,
         sound: str | None, collapse_key: str | None, priority: str, data_items: tuple[str, ...]):
    """
    Send a notification to every token registered for OWNER_ID.

    Example:
        native-push send 42 --title "Hello" --body "World" --data kind=greeting
    """
    data = {}
    for item in data_items:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got {item!r}", param_hint="--data")
        data[key] = value

    try:
        service_config = ServiceConfig.from_env()
        clients = initialize(PushConfig.from_env())
    except ConfigurationError as e:
        _handle_cli_error(e)
        return

    token_store = create_token_store(service_config.id_type, service_config.db_path)
    try:
        owner = token_store.parse_owner_id(owner_id)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="OWNER_ID")

    descriptor = NotificationDescriptor(
        title=title,
        body=body,
        image_url=image_url,
        sound=sound,
        collapse_key=collapse_key,
        priority=NotificationPriority.parse(priority),
        data=data,
    )
    service = PushNotificationService(token_store, clients)
    try:
        results = asyncio.run(_send(service, clients, owner, descriptor))
    finally:
        token_store.close()

    if not results:
        console.print(f"[yellow]No tokens registered for {owner_id}[/]")
        return

    console.print(_results_table(results))
    if not all(result.success for result in results):
        sys.exit(1)


if __name__ == "__main__":
    main()
