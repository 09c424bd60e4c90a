"""
Push notification dispatch.

This module sends one notification to every token registered for an owner:
- Apple Push Notification Service (APNs) for iOS/macOS devices
- Firebase Cloud Messaging (FCM) for Android, web and iOS-via-FCM apps
- Web Push (VAPID) for browser subscriptions

Each token is sent independently. A failure for one token, including a
corrupt stored token, never prevents delivery to the owner's other tokens.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

from native_push.exceptions import DeliveryError, TokenFormatError
from native_push.initializer import ProviderClients
from native_push.notification_types import NotificationDescriptor, Provider

logger = logging.getLogger(__name__)


class TokenLoader(Protocol):
    """The part of a token store the dispatcher reads from."""

    def load(self, owner_id: Any) -> list[tuple[str, Provider]]:
        ...


@dataclass
class DeliveryResult:
    """Result of a notification delivery attempt for one token."""
    success: bool
    device_token: str
    provider: Provider
    error: str | None = None
    error_category: str | None = None


class PushNotificationService:
    """
    Notification dispatch across all of an owner's tokens.

    Sends run concurrently, at most max_concurrency at a time per dispatch.
    Providers that were not initialized report failure for their tokens.
    """

    def __init__(
        self,
        token_store: TokenLoader,
        clients: ProviderClients,
        max_concurrency: int | None = None,
    ):
        """
        Initialize push notification service.

        Args:
            token_store: Store the owner's tokens are loaded from
            clients: Initialized provider clients
            max_concurrency: Concurrent sends per dispatch (default from clients)
        """
        self.token_store = token_store
        self.clients = clients
        self.max_concurrency = max_concurrency or clients.max_concurrency

    async def send_notification(self, owner_id: Any, descriptor: NotificationDescriptor) -> bool:
        """
        Send a notification to all tokens of an owner.

        Returns:
            True if every token was delivered (also when the owner has none)
        """
        results = await self.send_to_owner(owner_id, descriptor)
        return all(result.success for result in results)

    async def send_to_owner(self, owner_id: Any, descriptor: NotificationDescriptor) -> list[DeliveryResult]:
        """
        Send a notification to all tokens of an owner.

        Returns:
            List of DeliveryResult, one per registered token
        """
        # The store is synchronous (sqlite3); keep the event loop free
        tokens = await asyncio.to_thread(self.token_store.load, owner_id)

        if not tokens:
            logger.debug(f"No tokens registered for owner {owner_id}")
            return []

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def bounded(token: str, provider: Provider) -> DeliveryResult:
            async with semaphore:
                return await self.send_to_token(token, provider, descriptor)

        results = await asyncio.gather(*(bounded(token, provider) for token, provider in tokens))

        failed = sum(1 for result in results if not result.success)
        if failed:
            logger.info(
                "Notification partially delivered",
                extra={"owner_id": str(owner_id), "tokens": len(results), "failed": failed},
            )
        return list(results)

    async def send_to_token(
        self,
        token: str,
        provider: Provider,
        descriptor: NotificationDescriptor,
    ) -> DeliveryResult:
        """
        Send a notification to one token.

        Never raises for delivery problems; they are reported in the result.
        """
        client = self.clients.for_provider(provider)
        if client is None:
            logger.warning(f"{provider.value} not configured, skipping notification")
            return DeliveryResult(
                success=False,
                device_token=token,
                provider=provider,
                error=f"{provider.value} not configured",
                error_category="not_configured",
            )

        try:
            success = await client.send(token, descriptor)
        except TokenFormatError as e:
            logger.error(
                "Stored token is malformed",
                extra={
                    "device_token": token[:10] + "...",
                    "provider": provider.value,
                    "error": e.message,
                }
            )
            return DeliveryResult(
                success=False,
                device_token=token,
                provider=provider,
                error=e.message,
                error_category="token_format",
            )
        except DeliveryError as e:
            logger.warning(
                "Notification delivery failed",
                extra={
                    "device_token": token[:10] + "...",
                    "provider": provider.value,
                    "error": e.message,
                }
            )
            return DeliveryResult(
                success=False,
                device_token=token,
                provider=provider,
                error=e.message,
                error_category="delivery",
            )
        except Exception as e:
            logger.error(
                "Notification delivery error",
                exc_info=True,
                extra={
                    "device_token": token[:10] + "...",
                    "provider": provider.value,
                    "error": str(e),
                }
            )
            return DeliveryResult(
                success=False,
                device_token=token,
                provider=provider,
                error=str(e),
                error_category="exception",
            )

        return DeliveryResult(
            success=success,
            device_token=token,
            provider=provider,
            error=None if success else "Rejected by provider",
            error_category=None if success else "rejected",
        )
