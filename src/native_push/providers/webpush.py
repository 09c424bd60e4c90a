"""
Web Push adapter.

Tokens are browser push subscriptions stored as JSON objects with the keys
``endpoint``, ``p256dh`` and ``auth``. Payloads are encrypted to the
subscription keys (aes128gcm) and the request is authenticated with a VAPID
signature before being posted to the subscription endpoint.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import time
from typing import Any
from urllib.parse import urlparse

import aiohttp
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from py_vapid import Vapid, VapidException
from pywebpush import WebPusher, WebPushException

from native_push.exceptions import ConfigurationError, DeliveryError, TokenFormatError
from native_push.notification_types import NotificationDescriptor
from native_push.priority import to_webpush_urgency

logger = logging.getLogger(__name__)

# Seconds a push service keeps an undelivered message
DEFAULT_TTL = 24 * 60 * 60
# VAPID signatures may be valid for at most 24 hours
VAPID_EXPIRATION = 12 * 60 * 60

SUBSCRIPTION_KEYS = ("endpoint", "p256dh", "auth")


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode().rstrip("=")


def parse_subscription(token: str) -> dict[str, str]:
    """
    Extract endpoint, p256dh and auth from a stored subscription token.

    Raises:
        TokenFormatError: If the token is not a JSON object with string values
            for all three keys
    """
    try:
        subscription = json.loads(token)
    except (TypeError, ValueError) as e:
        raise TokenFormatError("WebPush token is not valid JSON") from e

    if not isinstance(subscription, dict):
        raise TokenFormatError("WebPush token must be a JSON object")

    missing = [
        key for key in SUBSCRIPTION_KEYS
        if not isinstance(subscription.get(key), str) or not subscription[key]
    ]
    if missing:
        raise TokenFormatError(
            f"WebPush token is missing {', '.join(missing)}",
            details={"missing": missing},
        )
    return {key: subscription[key] for key in SUBSCRIPTION_KEYS}


def build_payload(descriptor: NotificationDescriptor) -> dict[str, Any]:
    """Build the JSON document delivered to the service worker."""
    payload = descriptor.localization_fields()
    if descriptor.image_url is not None:
        payload["imageUrl"] = descriptor.image_url
    payload.update(descriptor.data)
    return payload


def load_vapid(
    keys_file: str | None = None,
    public_key: str | None = None,
    private_key: str | None = None,
) -> Vapid:
    """
    Load the VAPID key pair from a PEM file or explicit base64url keys.

    Raises:
        ConfigurationError: If the keys cannot be loaded or do not match
    """
    if keys_file:
        try:
            return Vapid.from_file(keys_file)
        except Exception as e:
            raise ConfigurationError(f"Failed to load VAPID keys file: {e}", missing=["vapid_keys_file"]) from e

    try:
        vapid = Vapid.from_string(private_key=private_key)
    except Exception as e:
        raise ConfigurationError(f"Invalid VAPID private key: {e}", missing=["vapid_private_key"]) from e

    derived = _b64url(vapid.public_key.public_bytes(Encoding.X962, PublicFormat.UncompressedPoint))
    if derived != public_key.strip().rstrip("="):
        raise ConfigurationError(
            "VAPID public key does not match the private key",
            missing=["vapid_public_key"],
        )
    return vapid


def check_subject(vapid: Vapid, subject: str) -> None:
    """
    Sign a sample claim set so an unusable subject fails at startup.

    Raises:
        ConfigurationError: If py_vapid rejects the subject
    """
    try:
        vapid.sign({
            "sub": subject,
            "aud": "https://localhost",
            "exp": int(time.time()) + VAPID_EXPIRATION,
        })
    except VapidException as e:
        raise ConfigurationError(f"Invalid web_push_subject: {e}", missing=["web_push_subject"]) from e


class WebPushClient:
    """
    Long-lived Web Push sender.

    The aiohttp session is opened on first use so it belongs to the event
    loop that performs the sends.
    """

    def __init__(
        self,
        subject: str,
        vapid: Vapid,
        timeout: float = 10.0,
        ttl: int = DEFAULT_TTL,
        session: aiohttp.ClientSession | None = None,
    ):
        self.subject = subject
        self.vapid = vapid
        self.timeout = timeout
        self.ttl = ttl
        self._session = session
        self._session_lock = asyncio.Lock()

    async def _get_session(self) -> aiohttp.ClientSession:
        async with self._session_lock:
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession(
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                )
            return self._session

    def _vapid_headers(self, endpoint: str) -> dict[str, str]:
        url = urlparse(endpoint)
        claims = {
            "sub": self.subject,
            "aud": f"{url.scheme}://{url.netloc}",
            "exp": int(time.time()) + VAPID_EXPIRATION,
        }
        return self.vapid.sign(claims)

    def encrypt(self, subscription: dict[str, str], payload: dict[str, Any]) -> bytes:
        """
        Encrypt a payload for one subscription.

        Raises:
            TokenFormatError: If the subscription keys are not usable
        """
        try:
            pusher = WebPusher({
                "endpoint": subscription["endpoint"],
                "keys": {"p256dh": subscription["p256dh"], "auth": subscription["auth"]},
            })
            encoded = pusher.encode(json.dumps(payload).encode(), content_encoding="aes128gcm")
        except (WebPushException, ValueError) as e:
            raise TokenFormatError(f"WebPush subscription keys are invalid: {e}") from e
        return encoded["body"]

    async def send(self, token: str, descriptor: NotificationDescriptor) -> bool:
        """
        Send a notification to one browser subscription.

        Returns:
            True if the push service answered with a 2xx status

        Raises:
            TokenFormatError: If the stored token is not a valid subscription
            DeliveryError: If the push service could not be reached
        """
        subscription = parse_subscription(token)
        endpoint = subscription["endpoint"]
        body = self.encrypt(subscription, build_payload(descriptor))

        headers = self._vapid_headers(endpoint)
        headers.update({
            "Content-Type": "application/octet-stream",
            "Content-Encoding": "aes128gcm",
            "TTL": str(self.ttl),
            "Urgency": to_webpush_urgency(descriptor.priority).value,
        })

        session = await self._get_session()
        try:
            async with session.post(endpoint, data=body, headers=headers) as response:
                status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DeliveryError(
                f"WebPush request failed: {e}",
                details={"endpoint": endpoint},
            ) from e

        if 200 <= status < 300:
            logger.debug("WebPush notification sent successfully", extra={"endpoint": endpoint})
            return True

        logger.warning(
            "WebPush notification failed",
            extra={"endpoint": endpoint, "status_code": status},
        )
        return False

    async def aclose(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
