"""
Notification type definitions shared by every push provider.

This module defines the supported delivery networks, the abstract priority
levels and the normalized notification descriptor that each provider adapter
translates into its own wire format.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Provider(Enum):
    """Push delivery networks a token can belong to."""

    APNS = "APNS"  # Apple Push Notification Service
    FCM = "FCM"  # Firebase Cloud Messaging
    WEBPUSH = "WEBPUSH"  # W3C Push API with VAPID

    @classmethod
    def parse(cls, value: str | Provider) -> Provider:
        """Look up a provider by name, case-insensitively."""
        if isinstance(value, cls):
            return value
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise ValueError(f"Invalid provider: {value}") from None


class NotificationPriority(Enum):
    """Abstract priority levels, mapped per provider at send time."""

    MIN = "MIN"
    LOW = "LOW"
    DEFAULT = "DEFAULT"
    HIGH = "HIGH"
    MAX = "MAX"

    @classmethod
    def parse(cls, value: str | NotificationPriority | None) -> NotificationPriority:
        """Look up a priority by name; None means DEFAULT."""
        if value is None:
            return cls.DEFAULT
        if isinstance(value, cls):
            return value
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise ValueError(f"Invalid priority: {value}") from None


# Request keys accepted by NotificationDescriptor.from_dict
_REQUEST_FIELDS = {
    "title": "title",
    "titleLocalizationKey": "title_localization_key",
    "titleLocalizationArgs": "title_localization_args",
    "body": "body",
    "bodyLocalizationKey": "body_localization_key",
    "bodyLocalizationArgs": "body_localization_args",
    "imageUrl": "image_url",
    "channelId": "channel_id",
    "sound": "sound",
    "icon": "icon",
    "collapseKey": "collapse_key",
}


@dataclass(frozen=True)
class NotificationDescriptor:
    """
    Provider-independent description of one notification.

    Every field except priority is optional. Providers omit absent fields
    from their payloads instead of sending empty values.

    Attributes:
        title: Notification title
        title_localization_key: Client-side localization key for the title
        title_localization_args: Format arguments for the title key
        body: Notification body text
        body_localization_key: Client-side localization key for the body
        body_localization_args: Format arguments for the body key
        image_url: Image shown with the notification
        channel_id: Android notification channel
        sound: Sound to play
        icon: Android notification icon
        collapse_key: Collapse key (Android) / collapse or thread id (Apple)
        priority: Abstract delivery priority
        data: Custom string key-value data for the client app
    """

    title: str | None = None
    title_localization_key: str | None = None
    title_localization_args: tuple[str, ...] = ()
    body: str | None = None
    body_localization_key: str | None = None
    body_localization_args: tuple[str, ...] = ()
    image_url: str | None = None
    channel_id: str | None = None
    sound: str | None = None
    icon: str | None = None
    collapse_key: str | None = None
    priority: NotificationPriority = NotificationPriority.DEFAULT
    data: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in ("title_localization_args", "body_localization_args"):
            if not isinstance(getattr(self, name) or (), (list, tuple)):
                raise ValueError(f"{name} must be a list of strings")

        # Normalize sequences so lists from JSON bodies are accepted.
        object.__setattr__(self, "title_localization_args", tuple(self.title_localization_args or ()))
        object.__setattr__(self, "body_localization_args", tuple(self.body_localization_args or ()))
        object.__setattr__(self, "data", dict(self.data or {}))
        object.__setattr__(self, "priority", NotificationPriority.parse(self.priority))

        for name in ("title_localization_args", "body_localization_args"):
            if not all(isinstance(arg, str) for arg in getattr(self, name)):
                raise ValueError(f"{name} must contain only strings")
        for key, value in self.data.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise ValueError("data must map strings to strings")

    def localization_fields(self) -> dict[str, Any]:
        """Title/body text and localization entries that are present.

        Keys use the camelCase names shared by the WebPush payload and the
        FCM web data object.
        """
        fields: dict[str, Any] = {
            "title": self.title,
            "titleLocalizationKey": self.title_localization_key,
            "titleLocalizationArgs": list(self.title_localization_args) or None,
            "body": self.body,
            "bodyLocalizationKey": self.body_localization_key,
            "bodyLocalizationArgs": list(self.body_localization_args) or None,
        }
        return {key: value for key, value in fields.items() if value is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NotificationDescriptor:
        """Create a descriptor from a camelCase request body."""
        kwargs: dict[str, Any] = {}
        for request_key, attr in _REQUEST_FIELDS.items():
            value = data.get(request_key)
            if value is not None:
                kwargs[attr] = value
        kwargs["priority"] = NotificationPriority.parse(data.get("priority"))
        kwargs["data"] = data.get("data") or {}
        return cls(**kwargs)
