"""
Push notification delivery to APNs, FCM and Web Push.

This package registers per-owner push tokens and dispatches one notification
to all of an owner's tokens:
- Apple Push Notification Service (APNs) for iOS/macOS
- Firebase Cloud Messaging (FCM) for Android, web and iOS-via-FCM
- Web Push with VAPID for browsers

Components:
- notification_types: Providers, priorities and the notification descriptor
- priority: Per-provider priority mapping tables
- initializer: One-time validation and construction of provider clients
- providers: APNs, FCM and Web Push adapters
- push_service: Fan-out dispatch and result aggregation
- token_store: Token registration and storage
"""

from native_push.config import PushConfig, ServiceConfig
from native_push.exceptions import (
    ConfigurationError,
    DeliveryError,
    DuplicateTokenError,
    InitializationError,
    NativePushError,
    TokenFormatError,
)
from native_push.initializer import ProviderClients, ProviderInitializer, initialize
from native_push.notification_types import (
    NotificationDescriptor,
    NotificationPriority,
    Provider,
)
from native_push.push_service import DeliveryResult, PushNotificationService
from native_push.token_store import TokenStore, create_token_store

__all__ = [
    "PushConfig",
    "ServiceConfig",
    "NativePushError",
    "ConfigurationError",
    "InitializationError",
    "TokenFormatError",
    "DeliveryError",
    "DuplicateTokenError",
    "ProviderClients",
    "ProviderInitializer",
    "initialize",
    "NotificationDescriptor",
    "NotificationPriority",
    "Provider",
    "DeliveryResult",
    "PushNotificationService",
    "TokenStore",
    "create_token_store",
]
