"""
Apple Push Notification Service adapter.

Notifications are posted over HTTP/2 to the APNs provider API. Clients
authenticate either with a P12 client certificate (TLS) or with a P8 signing
key (ES256 JWT in the authorization header).
"""

from __future__ import annotations

import logging
import os
import ssl
import tempfile
import time
from dataclasses import dataclass
from typing import Any

import httpx
import jwt
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    pkcs12,
)

from native_push.exceptions import ConfigurationError, DeliveryError
from native_push.notification_types import NotificationDescriptor
from native_push.priority import to_apns

logger = logging.getLogger(__name__)

APNS_SANDBOX_URL = "https://api.sandbox.push.apple.com"
APNS_PRODUCTION_URL = "https://api.push.apple.com"

# Custom payload key carrying the image for the notification service extension
IMAGE_FIELD = "native_push_image"


@dataclass
class APNsJWTCache:
    """Cache for APNs JWT tokens with expiration tracking."""

    token: str | None = None
    issued_at: float = 0.0
    # APNs tokens are valid for 1 hour, but we refresh at 55 minutes
    ttl_seconds: int = 55 * 60

    def is_valid(self) -> bool:
        """Check if the cached token is still valid."""
        if not self.token:
            return False
        return (time.time() - self.issued_at) < self.ttl_seconds

    def clear(self) -> None:
        """Clear the cached token."""
        self.token = None
        self.issued_at = 0.0


class APNsTokenAuth:
    """ES256 provider token authentication from a P8 key."""

    def __init__(self, auth_key: str, key_id: str, team_id: str):
        self.auth_key = auth_key
        self.key_id = key_id
        self.team_id = team_id
        self._cache = APNsJWTCache()

    def bearer(self) -> str:
        """
        Return a JWT for the authorization header.

        The token is cached and reused until it expires (55 minutes).

        Raises:
            jwt.PyJWTError: If the key cannot sign the token
        """
        if self._cache.is_valid():
            return self._cache.token

        now = int(time.time())
        token = jwt.encode(
            {
                "iss": self.team_id,
                "iat": now,
            },
            self.auth_key,
            algorithm="ES256",
            headers={
                "kid": self.key_id,
            },
        )

        self._cache.token = token
        self._cache.issued_at = now

        logger.debug("Generated new APNs JWT token")
        return token

    def clear(self) -> None:
        self._cache.clear()


def build_payload(descriptor: NotificationDescriptor) -> dict[str, Any]:
    """Build the APNs JSON payload for a notification."""
    alert: dict[str, Any] = {}
    if descriptor.title is not None:
        alert["title"] = descriptor.title
    if descriptor.title_localization_key is not None:
        alert["title-loc-key"] = descriptor.title_localization_key
    if descriptor.title_localization_args:
        alert["title-loc-args"] = list(descriptor.title_localization_args)
    if descriptor.body is not None:
        alert["body"] = descriptor.body
    if descriptor.body_localization_key is not None:
        alert["loc-key"] = descriptor.body_localization_key
    if descriptor.body_localization_args:
        alert["loc-args"] = list(descriptor.body_localization_args)

    aps: dict[str, Any] = {}
    if alert:
        aps["alert"] = alert
    if descriptor.sound is not None:
        aps["sound"] = descriptor.sound

    payload: dict[str, Any] = {"aps": aps}
    if descriptor.image_url is not None:
        aps["mutable-content"] = 1
        payload[IMAGE_FIELD] = descriptor.image_url

    payload.update(descriptor.data)
    return payload


def build_headers(descriptor: NotificationDescriptor, topic: str) -> dict[str, str]:
    """Build the APNs request headers (without authorization)."""
    headers = {
        "apns-topic": topic,
        "apns-push-type": "alert",
        "apns-priority": str(to_apns(descriptor.priority).value),
    }
    if descriptor.collapse_key is not None:
        headers["apns-collapse-id"] = descriptor.collapse_key
    return headers


def load_p12_ssl_context(p12_file: str, password: str) -> ssl.SSLContext:
    """
    Create a TLS client context from a P12 certificate bundle.

    Raises:
        ConfigurationError: If the file cannot be read or decrypted
    """
    try:
        with open(p12_file, "rb") as f:
            private_key, certificate, chain = pkcs12.load_key_and_certificates(
                f.read(), password.encode()
            )
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Failed to load APNs P12 certificate: {e}", missing=["apns_p12_file"]) from e

    if private_key is None or certificate is None:
        raise ConfigurationError("APNs P12 file must contain a key and a certificate", missing=["apns_p12_file"])

    context = ssl.create_default_context()
    # load_cert_chain only accepts paths
    with tempfile.TemporaryDirectory() as tmp:
        cert_path = os.path.join(tmp, "cert.pem")
        key_path = os.path.join(tmp, "key.pem")
        with open(cert_path, "wb") as f:
            f.write(certificate.public_bytes(Encoding.PEM))
            for extra in chain or ():
                f.write(extra.public_bytes(Encoding.PEM))
        with open(key_path, "wb") as f:
            f.write(private_key.private_bytes(Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()))
        context.load_cert_chain(cert_path, key_path)
    return context


def load_p8_auth(p8_file: str, key_id: str, team_id: str) -> APNsTokenAuth:
    """
    Load a P8 signing key and check that it can sign provider tokens.

    Raises:
        ConfigurationError: If the key file is unreadable or invalid
    """
    try:
        with open(p8_file, "r") as f:
            auth_key = f.read()
    except OSError as e:
        raise ConfigurationError(f"Failed to read APNs key file: {e}", missing=["apns_p8_file"]) from e

    auth = APNsTokenAuth(auth_key=auth_key, key_id=key_id, team_id=team_id)
    try:
        auth.bearer()
    except (jwt.PyJWTError, ValueError, TypeError) as e:
        raise ConfigurationError(f"Invalid APNs P8 key: {e}", missing=["apns_p8_file"]) from e
    return auth


class APNsClient:
    """
    Long-lived APNs sender.

    Holds one HTTP/2 connection pool for all sends. Either ssl_context (P12)
    or token_auth (P8) authenticates the provider.
    """

    def __init__(
        self,
        topic: str,
        development: bool = False,
        timeout: float = 10.0,
        token_auth: APNsTokenAuth | None = None,
        ssl_context: ssl.SSLContext | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.topic = topic
        self.base_url = APNS_SANDBOX_URL if development else APNS_PRODUCTION_URL
        self.token_auth = token_auth
        self._client = http_client or httpx.AsyncClient(
            http2=True,
            timeout=timeout,
            verify=ssl_context if ssl_context is not None else True,
        )

    async def send(self, token: str, descriptor: NotificationDescriptor) -> bool:
        """
        Send a notification to one device.

        Returns:
            True if APNs accepted the notification

        Raises:
            DeliveryError: If APNs could not be reached or the provider token
                could not be generated
        """
        headers = build_headers(descriptor, self.topic)
        if self.token_auth is not None:
            try:
                headers["authorization"] = f"bearer {self.token_auth.bearer()}"
            except jwt.PyJWTError as e:
                raise DeliveryError(f"Failed to generate APNs JWT: {e}") from e

        url = f"{self.base_url}/3/device/{token}"
        try:
            response = await self._client.post(url, json=build_payload(descriptor), headers=headers)
        except httpx.HTTPError as e:
            raise DeliveryError(
                f"APNs request failed: {e}",
                details={"device_token": token[:10] + "..."},
            ) from e

        if response.status_code == 200:
            logger.debug(
                "APNs notification sent successfully",
                extra={"device_token": token[:10] + "..."}
            )
            return True

        try:
            reason = response.json().get("reason", "Unknown")
        except ValueError:
            reason = f"HTTP {response.status_code}"

        if response.status_code == 403 and self.token_auth is not None:
            # Provider token rejected, sign a fresh one next time
            self.token_auth.clear()

        logger.warning(
            "APNs notification failed",
            extra={
                "device_token": token[:10] + "...",
                "status_code": response.status_code,
                "reason": reason,
            }
        )
        return False

    async def aclose(self) -> None:
        await self._client.aclose()
