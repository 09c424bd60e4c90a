"""
Native push configuration.

Provider credentials and service options are read from environment
variables. Secret values may instead be supplied through ``<NAME>_FILE``
pointing at a file whose first line holds the value (Docker secrets style).

SECURITY NOTICE:
- Credentials MUST be provided via environment variables or secret files
- Never commit service account files, APNs keys or VAPID keys
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from native_push.exceptions import ConfigurationError
from native_push.notification_types import Provider

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_MAX_CONCURRENCY = 10

ID_TYPES = ("string", "long", "uuid")


def _get_env(key: str, check_for_file: bool = True) -> str | None:
    """Get a value from the environment, falling back to ``<key>_FILE``.

    Blank values count as unset. Paths to credential files are read with
    ``check_for_file=False`` because the value itself is the path.
    """
    value = os.getenv(key, "").strip()
    if value:
        return value
    if not check_for_file:
        return None

    file_path = os.getenv(f"{key}_FILE", "").strip()
    if not file_path:
        return None
    try:
        with open(file_path, "r") as f:
            line = f.readline().strip()
    except OSError as e:
        logger.warning(
            "Failed to read %s_FILE: %s",
            key,
            e,
            extra={"event": "config.secret_file_unreadable", "env_var": key},
        )
        return None
    return line or None


def _get_bool(key: str, default: bool = False) -> bool:
    value = _get_env(key)
    if value is None:
        return default
    lowered = value.lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError(f"{key} must be a boolean, got {value!r}", missing=[key])


def _get_number(key: str, default: float, cast: type) -> float:
    value = _get_env(key)
    if value is None:
        return default
    try:
        number = cast(value)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got {value!r}", missing=[key]) from None
    if number <= 0:
        raise ConfigurationError(f"{key} must be positive, got {value!r}", missing=[key])
    return number


def parse_providers(value: str | None) -> frozenset[Provider]:
    """Parse a comma separated provider list; empty means all providers."""
    if not value:
        return frozenset(Provider)
    try:
        return frozenset(Provider.parse(item) for item in value.split(",") if item.strip())
    except ValueError as e:
        raise ConfigurationError(str(e), missing=["PUSH_SYSTEMS"]) from e


@dataclass(frozen=True)
class PushConfig:
    """
    Provider credentials and delivery options.

    Attributes:
        enabled_providers: Providers to initialize (default: all)
        development: Use the APNs sandbox gateway
        firebase_service_account_file: Path to the FCM service account JSON
        apns_topic: Default APNs topic (usually the app bundle id)
        apns_p12_file: Path to an APNs P12 certificate
        apns_p12_password: Password of the P12 certificate
        apns_p8_file: Path to an APNs P8 auth key
        apns_key_id: Key id of the P8 auth key
        apns_team_id: Apple developer team id
        web_push_subject: VAPID subject (mailto: or https: contact)
        vapid_keys_file: PEM file holding the VAPID private key
        vapid_public_key: Base64url uncompressed VAPID public key
        vapid_private_key: Base64url raw VAPID private key
        request_timeout: Seconds allowed for each outbound provider call
        max_concurrency: Concurrent per-token sends within one dispatch
    """

    enabled_providers: frozenset[Provider] = field(default_factory=lambda: frozenset(Provider))
    development: bool = False
    firebase_service_account_file: str | None = None
    apns_topic: str | None = None
    apns_p12_file: str | None = None
    apns_p12_password: str | None = None
    apns_p8_file: str | None = None
    apns_key_id: str | None = None
    apns_team_id: str | None = None
    web_push_subject: str | None = None
    vapid_keys_file: str | None = None
    vapid_public_key: str | None = None
    vapid_private_key: str | None = None
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "enabled_providers",
            frozenset(Provider.parse(p) for p in self.enabled_providers),
        )

    @classmethod
    def from_env(cls) -> PushConfig:
        """Load provider configuration from environment variables."""
        return cls(
            enabled_providers=parse_providers(_get_env("PUSH_SYSTEMS")),
            development=_get_bool("DEVELOPMENT"),
            firebase_service_account_file=_get_env("FIREBASE_SERVICE_ACCOUNT_FILE", check_for_file=False),
            apns_topic=_get_env("APNS_TOPIC"),
            apns_p12_file=_get_env("APNS_P12_FILE", check_for_file=False),
            apns_p12_password=_get_env("APNS_P12_PASSWORD"),
            apns_p8_file=_get_env("APNS_P8_FILE", check_for_file=False),
            apns_key_id=_get_env("APNS_KEY_ID"),
            apns_team_id=_get_env("APNS_TEAM_ID"),
            web_push_subject=_get_env("WEB_PUSH_SUBJECT"),
            vapid_keys_file=_get_env("VAPID_KEYS_FILE", check_for_file=False),
            vapid_public_key=_get_env("VAPID_PUBLIC_KEY"),
            vapid_private_key=_get_env("VAPID_PRIVATE_KEY"),
            request_timeout=_get_number("PUSH_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT, float),
            max_concurrency=int(_get_number("PUSH_MAX_CONCURRENCY", DEFAULT_MAX_CONCURRENCY, int)),
        )


@dataclass(frozen=True)
class ServiceConfig:
    """HTTP service and token storage options."""

    id_type: str = "string"
    db_path: str | None = None
    authorization_validation_url: str | None = None
    host: str = "0.0.0.0"
    port: int = 80

    @classmethod
    def from_env(cls) -> ServiceConfig:
        id_type = (_get_env("ID_TYPE") or "string").lower()
        if id_type not in ID_TYPES:
            raise ConfigurationError(
                f"ID_TYPE must be one of {', '.join(ID_TYPES)}, got {id_type!r}",
                missing=["ID_TYPE"],
            )

        db_path = _get_env("TOKEN_DB_PATH", check_for_file=False)
        if not db_path:
            logger.warning(
                "TOKEN_DB_PATH not set, registered tokens are kept in memory only.",
                extra={"event": "config.in_memory_store"},
            )

        return cls(
            id_type=id_type,
            db_path=db_path,
            authorization_validation_url=_get_env("AUTHORIZATION_VALIDATION_URL"),
            host=_get_env("HOST") or "0.0.0.0",
            port=int(_get_number("PORT", 80, int)),
        )
