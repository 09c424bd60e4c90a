"""
Firebase Cloud Messaging adapter.

One FCM message carries Android, APNs and WebPush configurations at once, so
an FCM token works for whichever platform the client app runs on. Delivery
goes through the Firebase Admin SDK (HTTP v1 API) with service account
credentials.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import firebase_admin
from firebase_admin import credentials, exceptions, messaging

from native_push.exceptions import ConfigurationError, DeliveryError
from native_push.notification_types import NotificationDescriptor
from native_push.priority import to_android

logger = logging.getLogger(__name__)

# Named app so a host application's default Firebase app is left alone
APP_NAME = "native-push"


def build_message(token: str, descriptor: NotificationDescriptor) -> messaging.Message:
    """Build the FCM message for one token."""
    title_args = list(descriptor.title_localization_args) or None
    body_args = list(descriptor.body_localization_args) or None
    data = dict(descriptor.data)

    android = messaging.AndroidConfig(
        collapse_key=descriptor.collapse_key,
        data=data or None,
        notification=messaging.AndroidNotification(
            title=descriptor.title,
            title_loc_key=descriptor.title_localization_key,
            title_loc_args=title_args,
            body=descriptor.body,
            body_loc_key=descriptor.body_localization_key,
            body_loc_args=body_args,
            image=descriptor.image_url,
            channel_id=descriptor.channel_id,
            sound=descriptor.sound,
            icon=descriptor.icon,
            priority=to_android(descriptor.priority),
        ),
    )

    apns = messaging.APNSConfig(
        payload=messaging.APNSPayload(
            aps=messaging.Aps(
                alert=messaging.ApsAlert(
                    title=descriptor.title,
                    title_loc_key=descriptor.title_localization_key,
                    title_loc_args=title_args,
                    body=descriptor.body,
                    loc_key=descriptor.body_localization_key,
                    loc_args=body_args,
                ),
                mutable_content=True if descriptor.image_url is not None else None,
                thread_id=descriptor.collapse_key,
                sound=descriptor.sound,
                custom_data=data or None,
            ),
        ),
        fcm_options=messaging.APNSFCMOptions(image=descriptor.image_url),
    )

    web_data: dict[str, Any] = {
        key: value
        for key, value in descriptor.localization_fields().items()
        if key not in ("title", "body")
    }
    web_data.update(data)
    webpush = messaging.WebpushConfig(
        notification=messaging.WebpushNotification(
            title=descriptor.title,
            body=descriptor.body,
            image=descriptor.image_url,
            data=web_data or None,
        ),
    )

    return messaging.Message(
        token=token,
        android=android,
        apns=apns,
        webpush=webpush,
    )


def initialize_app(service_account_file: str, timeout: float) -> firebase_admin.App:
    """
    Create the Firebase app used for sending.

    Raises:
        ConfigurationError: If the service account file is unreadable or invalid
    """
    try:
        credential = credentials.Certificate(service_account_file)
    except (OSError, ValueError) as e:
        raise ConfigurationError(
            f"Invalid Firebase service account file: {e}",
            missing=["firebase_service_account_file"],
        ) from e

    try:
        return firebase_admin.initialize_app(
            credential,
            options={"httpTimeout": timeout},
            name=APP_NAME,
        )
    except ValueError as e:
        # Raised when an app with APP_NAME is already registered
        raise ConfigurationError(f"Firebase app could not be created: {e}") from e


class FCMClient:
    """Long-lived FCM sender bound to one Firebase app."""

    def __init__(self, app: firebase_admin.App, timeout: float = 10.0):
        self.app = app
        self.timeout = timeout

    async def send(self, token: str, descriptor: NotificationDescriptor) -> bool:
        """
        Send a notification to one FCM token.

        Errors reported by Firebase are logged and returned as False.

        Raises:
            DeliveryError: If the send did not complete within the timeout
        """
        try:
            message = build_message(token, descriptor)
            # The Admin SDK is synchronous; keep the event loop free
            message_id = await asyncio.wait_for(
                asyncio.to_thread(messaging.send, message, app=self.app),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise DeliveryError(
                "FCM request timeout",
                details={"device_token": token[:10] + "..."},
            ) from e
        except (exceptions.FirebaseError, ValueError) as e:
            logger.warning(
                "FCM notification failed",
                extra={
                    "device_token": token[:10] + "...",
                    "error": str(e),
                }
            )
            return False

        logger.debug(
            "FCM notification sent successfully",
            extra={"device_token": token[:10] + "...", "message_id": message_id}
        )
        return True

    async def aclose(self) -> None:
        firebase_admin.delete_app(self.app)
