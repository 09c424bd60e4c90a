"""
Shared fixtures for native push tests.
"""

import base64
import os

import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

from native_push.notification_types import NotificationDescriptor, NotificationPriority


def b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode().rstrip("=")


@pytest.fixture
def p8_key_file(tmp_path):
    """Write an ES256 signing key in APNs .p8 (PKCS8 PEM) format."""
    key = ec.generate_private_key(ec.SECP256R1())
    path = tmp_path / "AuthKey_TEST.p8"
    path.write_bytes(key.private_bytes(Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()))
    return str(path)


@pytest.fixture
def vapid_keys():
    """VAPID key pair as base64url (public, private) strings."""
    key = ec.generate_private_key(ec.SECP256R1())
    private_raw = key.private_numbers().private_value.to_bytes(32, "big")
    public_raw = key.public_key().public_bytes(Encoding.X962, PublicFormat.UncompressedPoint)
    return b64url(public_raw), b64url(private_raw)


@pytest.fixture
def subscription_token():
    """A browser push subscription token with valid encryption keys."""
    key = ec.generate_private_key(ec.SECP256R1())
    p256dh = b64url(key.public_key().public_bytes(Encoding.X962, PublicFormat.UncompressedPoint))
    auth = b64url(os.urandom(16))
    return (
        '{"endpoint": "https://push.example.com/send/abc123", '
        f'"p256dh": "{p256dh}", "auth": "{auth}"}}'
    )


@pytest.fixture
def descriptor():
    """A notification using every descriptor field."""
    return NotificationDescriptor(
        title="New message",
        title_localization_key="msg_title",
        title_localization_args=["Alice"],
        body="Hello there",
        body_localization_key="msg_body",
        body_localization_args=["Alice", "3"],
        image_url="https://cdn.example.com/image.png",
        channel_id="messages",
        sound="default",
        icon="ic_message",
        collapse_key="thread-1",
        priority=NotificationPriority.HIGH,
        data={"conversation_id": "c42"},
    )
