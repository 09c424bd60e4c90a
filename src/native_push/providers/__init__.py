"""Provider adapters translating notifications into APNs, FCM and Web Push requests."""

from native_push.providers.apns import APNsClient
from native_push.providers.fcm import FCMClient
from native_push.providers.webpush import WebPushClient

__all__ = [
    "APNsClient",
    "FCMClient",
    "WebPushClient",
]
