"""Summary: SQLite storage implementation for ShopLink.

Importance: Provides a local-first persistence layer for shop connection records.
Alternatives: Use an ORM or a hosted database immediately.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from shoplink.errors import PersistenceError
from shoplink.models import ConnectionRecord, STATUS_PENDING


_SHOP_COLUMNS = (
    "id, provider_domain, client_id, client_secret, encrypted_access_token, "
    "auth_type, connection_status"
)


class SqliteStore:
    """Summary: SQLite-backed storage for shop connection records.

    Importance: Enables local-first persistence with minimal dependencies.
    Alternatives: Use Postgres and SQLAlchemy from day one.
    """

    def __init__(self, db_path: str) -> None:
        """Summary: Initialize the storage with a database path.

        Importance: Allows configurable database location per environment.
        Alternatives: Hardcode a default path in the class.
        """

        self._db_path = Path(db_path)

    def initialize(self) -> None:
        """Summary: Create tables if they do not exist.

        Importance: Ensures the database is ready before the first callback.
        Alternatives: Run migrations using a dedicated migration tool.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS shops (
                    id TEXT PRIMARY KEY,
                    provider_domain TEXT,
                    client_id TEXT,
                    client_secret TEXT,
                    encrypted_access_token TEXT,
                    auth_type TEXT,
                    connection_status TEXT
                )
                """
            )
            connection.commit()

    def upsert_shop(
        self,
        shop_id: str,
        provider_domain: str | None,
        client_id: str | None,
        client_secret: str | None,
    ) -> None:
        """Summary: Provision or update a shop's client credentials.

        Importance: Credentials are provisioned out-of-band before any OAuth flow.
        Alternatives: Collect credentials inside the OAuth initiation request.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                INSERT INTO shops (id, provider_domain, client_id, client_secret, connection_status)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    provider_domain = excluded.provider_domain,
                    client_id = excluded.client_id,
                    client_secret = excluded.client_secret
                """,
                (shop_id, provider_domain, client_id, client_secret, STATUS_PENDING),
            )
            connection.commit()

    def get_shop(self, shop_id: str) -> ConnectionRecord | None:
        """Summary: Retrieve a shop record by identifier.

        Importance: Resolves the subject named in a verified state.
        Alternatives: Look shops up by provider domain instead.
        """

        try:
            with self._connection() as connection:
                cursor = connection.cursor()
                cursor.execute(f"SELECT {_SHOP_COLUMNS} FROM shops WHERE id = ?", (shop_id,))
                row = cursor.fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to load shop {shop_id}") from exc
        return ConnectionRecord(*row) if row else None

    def list_shops(self) -> list[ConnectionRecord]:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(f"SELECT {_SHOP_COLUMNS} FROM shops ORDER BY id")
            rows = cursor.fetchall()
        return [ConnectionRecord(*row) for row in rows]

    def save_access_token(
        self,
        shop_id: str,
        encrypted_access_token: str,
        auth_type: str,
        connection_status: str,
    ) -> None:
        """Summary: Store an encrypted access token on a shop record.

        Importance: A single unconditional write, so duplicate callbacks simply overwrite.
        Alternatives: Use optimistic locking on a version column.
        """

        try:
            with self._connection() as connection:
                cursor = connection.cursor()
                cursor.execute(
                    """
                    UPDATE shops
                    SET encrypted_access_token = ?, auth_type = ?, connection_status = ?
                    WHERE id = ?
                    """,
                    (encrypted_access_token, auth_type, connection_status, shop_id),
                )
                updated = cursor.rowcount
                connection.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to store access token for shop {shop_id}") from exc
        if updated == 0:
            raise PersistenceError(f"Shop {shop_id} no longer exists")

    def mark_status(self, shop_id: str, connection_status: str) -> None:
        """Summary: Update only the connection status of a shop.

        Importance: Records the outcome of connection tests without touching the token.
        Alternatives: Keep connection health in a separate table.
        """

        try:
            with self._connection() as connection:
                cursor = connection.cursor()
                cursor.execute(
                    "UPDATE shops SET connection_status = ? WHERE id = ?",
                    (connection_status, shop_id),
                )
                connection.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to update status for shop {shop_id}") from exc

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Summary: Context manager for SQLite connections.

        Importance: Ensures connections are closed cleanly after use.
        Alternatives: Keep a single long-lived connection.
        """

        connection = sqlite3.connect(self._db_path)
        try:
            yield connection
        finally:
            connection.close()
