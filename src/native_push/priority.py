"""
Mapping tables from abstract priorities to each provider's vocabulary.

APNs only distinguishes two levels and WebPush four, so several abstract
priorities collapse onto the same native value.
"""

from __future__ import annotations

from enum import Enum

from native_push.notification_types import NotificationPriority


class ApnsPriority(Enum):
    """Values of the apns-priority header."""

    POWER_CONSIDERATION = 5
    IMMEDIATE = 10


class WebPushUrgency(Enum):
    """Values of the WebPush Urgency header (RFC 8030)."""

    VERY_LOW = "very-low"
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


# Values accepted by firebase_admin.messaging.AndroidNotification(priority=...)
ANDROID_PRIORITY: dict[NotificationPriority, str] = {
    NotificationPriority.MIN: "min",
    NotificationPriority.LOW: "low",
    NotificationPriority.DEFAULT: "default",
    NotificationPriority.HIGH: "high",
    NotificationPriority.MAX: "max",
}

APNS_PRIORITY: dict[NotificationPriority, ApnsPriority] = {
    NotificationPriority.MIN: ApnsPriority.POWER_CONSIDERATION,
    NotificationPriority.LOW: ApnsPriority.POWER_CONSIDERATION,
    NotificationPriority.DEFAULT: ApnsPriority.IMMEDIATE,
    NotificationPriority.HIGH: ApnsPriority.IMMEDIATE,
    NotificationPriority.MAX: ApnsPriority.IMMEDIATE,
}

WEBPUSH_URGENCY: dict[NotificationPriority, WebPushUrgency] = {
    NotificationPriority.MIN: WebPushUrgency.VERY_LOW,
    NotificationPriority.LOW: WebPushUrgency.LOW,
    NotificationPriority.DEFAULT: WebPushUrgency.NORMAL,
    NotificationPriority.HIGH: WebPushUrgency.HIGH,
    NotificationPriority.MAX: WebPushUrgency.HIGH,
}


def to_android(priority: NotificationPriority) -> str:
    return ANDROID_PRIORITY[priority]


def to_apns(priority: NotificationPriority) -> ApnsPriority:
    return APNS_PRIORITY[priority]


def to_webpush_urgency(priority: NotificationPriority) -> WebPushUrgency:
    return WEBPUSH_URGENCY[priority]
