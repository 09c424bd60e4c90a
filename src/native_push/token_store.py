"""
Notification token registration and storage.

Tokens are stored in SQLite as (owner_id, token_id, token, system) rows. The
pair (token, system) is unique across all owners and (owner_id, token_id) is
the primary key, so updates and deletes are always scoped to the owner.

Owner ids come in one representation per deployment (integer, UUID or free
text). Each representation has its own store class, chosen once at startup by
create_token_store().
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import uuid
from pathlib import Path
from typing import Generic, TypeVar

from native_push.exceptions import DuplicateTokenError
from native_push.notification_types import Provider

logger = logging.getLogger(__name__)

OwnerId = TypeVar("OwnerId")


class TokenStore(Generic[OwnerId]):
    """
    Token persistence for one owner id representation.

    Subclasses define the SQL column type of owner_id and how ids are parsed
    from request paths and converted for storage.

    Thread-safe for concurrent access from multiple API requests.
    """

    owner_column_type = "TEXT"

    def __init__(self, db_path: Path | str | None = None):
        """
        Initialize token store.

        Args:
            db_path: Path to SQLite database. If None, uses in-memory database.
        """
        self.db_path = str(db_path) if db_path else ":memory:"
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._init_database()

    def _init_database(self) -> None:
        """Initialize database schema."""
        with self._lock, self._conn:
            self._conn.execute(f"""
                CREATE TABLE IF NOT EXISTS notification_token (
                    owner_id {self.owner_column_type} NOT NULL,
                    token_id TEXT NOT NULL,
                    token TEXT NOT NULL,
                    system TEXT NOT NULL,
                    PRIMARY KEY (owner_id, token_id),
                    UNIQUE (token, system)
                )
            """)

    def parse_owner_id(self, raw: str) -> OwnerId:
        """Parse an owner id from its textual form.

        Raises:
            ValueError: If raw is not a valid id for this store
        """
        raise NotImplementedError

    def _to_db(self, owner_id: OwnerId):
        return owner_id

    def load(self, owner_id: OwnerId) -> list[tuple[str, Provider]]:
        """
        Get all tokens registered to an owner.

        Args:
            owner_id: Owner of the tokens

        Returns:
            List of (token, provider) pairs
        """
        with self._lock:
            rows = self._conn.execute(
                "SELECT token, system FROM notification_token WHERE owner_id = ?",
                (self._to_db(owner_id),),
            ).fetchall()

        return [(token, Provider(system)) for token, system in rows]

    def insert(self, provider: Provider, token: str, owner_id: OwnerId) -> uuid.UUID:
        """
        Register a token for an owner.

        Args:
            provider: Push provider the token belongs to
            token: Provider token (or WebPush subscription JSON)
            owner_id: Owner of the token

        Returns:
            Id of the new token record

        Raises:
            ValueError: If token is empty
            DuplicateTokenError: If the (token, provider) pair is already registered
        """
        if not token:
            raise ValueError("token is required")
        provider = Provider.parse(provider)
        token_id = uuid.uuid4()

        try:
            with self._lock, self._conn:
                self._conn.execute(
                    """
                    INSERT INTO notification_token (owner_id, token_id, token, system)
                    VALUES (?, ?, ?, ?)
                    """,
                    (self._to_db(owner_id), str(token_id), token, provider.value),
                )
        except sqlite3.IntegrityError as e:
            raise DuplicateTokenError(
                "Token already registered",
                details={"provider": provider.value},
            ) from e

        logger.info(
            "Token registered",
            extra={
                "token_id": str(token_id),
                "provider": provider.value,
                "token": token[:10] + "...",
            }
        )
        return token_id

    def update(self, token_id: uuid.UUID, owner_id: OwnerId, provider: Provider, token: str) -> bool:
        """
        Replace the token value of an existing record.

        Args:
            token_id: Id of the token record
            owner_id: Owner of the token record
            provider: New provider
            token: New token value

        Returns:
            True if a record was updated, False if not found for this owner

        Raises:
            DuplicateTokenError: If the new (token, provider) pair is already registered
        """
        if not token:
            raise ValueError("token is required")
        provider = Provider.parse(provider)

        try:
            with self._lock, self._conn:
                cursor = self._conn.execute(
                    """
                    UPDATE notification_token
                    SET token = ?, system = ?
                    WHERE owner_id = ? AND token_id = ?
                    """,
                    (token, provider.value, self._to_db(owner_id), str(token_id)),
                )
        except sqlite3.IntegrityError as e:
            raise DuplicateTokenError(
                "Token already registered",
                details={"provider": provider.value},
            ) from e

        updated = cursor.rowcount > 0
        if updated:
            logger.info("Token updated", extra={"token_id": str(token_id), "provider": provider.value})
        return updated

    def delete(self, token_id: uuid.UUID, owner_id: OwnerId) -> bool:
        """
        Remove a token record.

        Returns:
            True if the record was removed, False if not found for this owner
        """
        with self._lock, self._conn:
            cursor = self._conn.execute(
                "DELETE FROM notification_token WHERE owner_id = ? AND token_id = ?",
                (self._to_db(owner_id), str(token_id)),
            )
        deleted = cursor.rowcount > 0

        if deleted:
            logger.info("Token unregistered", extra={"token_id": str(token_id)})

        return deleted

    def close(self) -> None:
        with self._lock:
            self._conn.close()


class StringTokenStore(TokenStore[str]):
    """Store for opaque text owner ids."""

    def parse_owner_id(self, raw: str) -> str:
        if not raw:
            raise ValueError("Invalid user id")
        return raw


class LongTokenStore(TokenStore[int]):
    """Store for 64-bit integer owner ids."""

    owner_column_type = "INTEGER"

    def parse_owner_id(self, raw: str) -> int:
        try:
            value = int(raw)
        except (TypeError, ValueError):
            raise ValueError("Invalid user id") from None
        if not -(2 ** 63) <= value < 2 ** 63:
            raise ValueError("Invalid user id")
        return value


class UUIDTokenStore(TokenStore[uuid.UUID]):
    """Store for UUID owner ids."""

    def parse_owner_id(self, raw: str) -> uuid.UUID:
        try:
            return uuid.UUID(raw)
        except (TypeError, ValueError, AttributeError):
            raise ValueError("Invalid user id") from None

    def _to_db(self, owner_id: uuid.UUID) -> str:
        return str(owner_id)


_STORES: dict[str, type[TokenStore]] = {
    "string": StringTokenStore,
    "long": LongTokenStore,
    "uuid": UUIDTokenStore,
}


def create_token_store(id_type: str = "string", db_path: Path | str | None = None) -> TokenStore:
    """
    Create the token store for the configured owner id representation.

    Args:
        id_type: One of "string", "long" or "uuid"
        db_path: Path to SQLite database. If None, uses in-memory database.

    Raises:
        ValueError: If id_type is unknown
    """
    try:
        store_cls = _STORES[id_type.lower()]
    except KeyError:
        raise ValueError(f"Invalid id type: {id_type}. Must be string, long, or uuid") from None
    return store_cls(db_path=db_path)
