"""
One-time provider initialization.

Credentials for every enabled provider are validated before any client is
built, so a misconfigured deployment fails at startup instead of on the
first send. The uninitialized -> initialized transition is claimed under a
lock; a second attempt fails even if the first one raised.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from native_push.config import PushConfig
from native_push.exceptions import ConfigurationError, InitializationError
from native_push.notification_types import Provider
from native_push.providers.apns import APNsClient, load_p12_ssl_context, load_p8_auth
from native_push.providers.fcm import FCMClient, initialize_app
from native_push.providers.webpush import WebPushClient, check_subject, load_vapid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderClients:
    """Initialized provider clients; None for providers that are not enabled."""

    apns: APNsClient | None = None
    fcm: FCMClient | None = None
    webpush: WebPushClient | None = None
    request_timeout: float = 10.0
    max_concurrency: int = 10

    def for_provider(self, provider: Provider) -> APNsClient | FCMClient | WebPushClient | None:
        return {
            Provider.APNS: self.apns,
            Provider.FCM: self.fcm,
            Provider.WEBPUSH: self.webpush,
        }[provider]

    async def aclose(self) -> None:
        """Release connections held by the clients."""
        for client in (self.apns, self.fcm, self.webpush):
            if client is not None:
                await client.aclose()


def validate_config(config: PushConfig) -> None:
    """
    Check that every enabled provider has a complete credential set.

    Raises:
        ConfigurationError: Naming the missing fields
    """
    missing: list[str] = []
    problems: list[str] = []
    enabled = config.enabled_providers

    if Provider.FCM in enabled and not config.firebase_service_account_file:
        missing.append("firebase_service_account_file")
        problems.append("firebase_service_account_file must be specified when using FCM")

    if Provider.APNS in enabled:
        if not config.apns_topic:
            missing.append("apns_topic")
            problems.append("apns_topic must be specified when using APNS")
        has_p12 = bool(config.apns_p12_file and config.apns_p12_password)
        has_p8 = bool(config.apns_p8_file and config.apns_key_id and config.apns_team_id)
        if not (has_p12 or has_p8):
            if config.apns_p12_file or config.apns_p12_password:
                fields = {"apns_p12_file": config.apns_p12_file, "apns_p12_password": config.apns_p12_password}
            else:
                fields = {
                    "apns_p8_file": config.apns_p8_file,
                    "apns_key_id": config.apns_key_id,
                    "apns_team_id": config.apns_team_id,
                }
            missing.extend(name for name, value in fields.items() if not value)
            problems.append(
                "Either apns_p12_file and apns_p12_password or apns_p8_file, "
                "apns_key_id and apns_team_id must be specified when using APNS"
            )

    if Provider.WEBPUSH in enabled:
        if not config.web_push_subject:
            missing.append("web_push_subject")
            problems.append("web_push_subject must be specified when using web push")
        elif not config.web_push_subject.startswith(("mailto:", "https://")):
            missing.append("web_push_subject")
            problems.append("web_push_subject must be a mailto: or https:// contact URL")
        if not (config.vapid_keys_file or (config.vapid_public_key and config.vapid_private_key)):
            if config.vapid_public_key or config.vapid_private_key:
                missing.extend(
                    name for name, value in (
                        ("vapid_public_key", config.vapid_public_key),
                        ("vapid_private_key", config.vapid_private_key),
                    ) if not value
                )
            else:
                missing.append("vapid_keys_file")
            problems.append(
                "vapid_keys_file or vapid_public_key and vapid_private_key "
                "must be specified when using web push"
            )

    if problems:
        raise ConfigurationError("; ".join(problems), missing=missing)


def build_clients(config: PushConfig) -> ProviderClients:
    """Validate the configuration and build clients for enabled providers.

    All credential files are loaded before the Firebase app is registered,
    so a bad APNs or VAPID credential leaves nothing behind.
    """
    validate_config(config)
    enabled = config.enabled_providers
    timeout = config.request_timeout

    ssl_context = token_auth = None
    if Provider.APNS in enabled:
        if config.apns_p12_file and config.apns_p12_password:
            ssl_context = load_p12_ssl_context(config.apns_p12_file, config.apns_p12_password)
        else:
            token_auth = load_p8_auth(config.apns_p8_file, config.apns_key_id, config.apns_team_id)

    vapid = None
    if Provider.WEBPUSH in enabled:
        vapid = load_vapid(
            keys_file=config.vapid_keys_file,
            public_key=config.vapid_public_key,
            private_key=config.vapid_private_key,
        )
        check_subject(vapid, config.web_push_subject)

    fcm = None
    if Provider.FCM in enabled:
        fcm = FCMClient(initialize_app(config.firebase_service_account_file, timeout), timeout=timeout)
        logger.info("FCM initialized")

    apns = None
    if Provider.APNS in enabled:
        apns = APNsClient(
            topic=config.apns_topic,
            development=config.development,
            timeout=timeout,
            token_auth=token_auth,
            ssl_context=ssl_context,
        )
        logger.info(
            "APNs initialized",
            extra={"gateway": "sandbox" if config.development else "production"},
        )

    webpush = None
    if Provider.WEBPUSH in enabled:
        webpush = WebPushClient(subject=config.web_push_subject, vapid=vapid, timeout=timeout)
        logger.info("WebPush initialized")

    return ProviderClients(
        apns=apns,
        fcm=fcm,
        webpush=webpush,
        request_timeout=timeout,
        max_concurrency=config.max_concurrency,
    )


class ProviderInitializer:
    """Guards the one-time initialization of provider clients."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._claimed = False
        self._clients: ProviderClients | None = None

    @property
    def clients(self) -> ProviderClients | None:
        """Clients built by a successful initialize(), else None."""
        return self._clients

    def initialize(self, config: PushConfig | None = None) -> ProviderClients:
        """
        Initialize provider clients.

        Args:
            config: Provider configuration (default: all providers, no credentials)

        Returns:
            ProviderClients for the enabled providers

        Raises:
            InitializationError: If initialize was already called
            ConfigurationError: If credentials are missing or invalid
        """
        with self._lock:
            if self._claimed:
                raise InitializationError("Already initialized")
            self._claimed = True

        config = config or PushConfig()
        clients = build_clients(config)
        self._clients = clients
        logger.info(
            "Push providers initialized",
            extra={"providers": sorted(p.value for p in config.enabled_providers)},
        )
        return clients


_default_initializer = ProviderInitializer()


def initialize(config: PushConfig | None = None) -> ProviderClients:
    """Initialize provider clients once for this process."""
    return _default_initializer.initialize(config)
