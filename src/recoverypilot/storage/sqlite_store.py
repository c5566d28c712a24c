"""Summary: SQLite storage implementation for RecoveryPilot.

Importance: Persists the single OAuth credential record and pending OAuth states.
Alternatives: Use an ORM or an external database.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterator

from recoverypilot.errors import ValidationError
from recoverypilot.expiry import as_utc, utc_now


@dataclass(frozen=True)
class StoredCredential:
    """Summary: OAuth credential record keyed by provider and user.

    Importance: Holds the rotating refresh token and the current access token.
    Alternatives: Keep tokens in a spreadsheet or secrets manager.
    """

    id: int
    provider: str
    user_email: str
    refresh_token: str
    access_token: str
    scope: str | None
    expires_at: datetime | None
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class StoredOAuthState:
    """Summary: Pending OAuth state nonce.

    Importance: Lets the callback prove it answers a request this server issued.
    Alternatives: Carry state in a signed cookie.
    """

    state: str
    provider: str
    created_at: datetime


class SqliteStore:
    """Summary: SQLite-backed storage for RecoveryPilot.

    Importance: Enables local persistence with no database server.
    Alternatives: Use Postgres and SQLAlchemy.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)

    def initialize(self) -> None:
        """Summary: Create tables if they do not exist.

        Importance: Ensures the database is ready before the first upsert.
        Alternatives: Run migrations using a dedicated migration tool.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS oauth_tokens (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    provider TEXT NOT NULL,
                    user_email TEXT NOT NULL,
                    refresh_token TEXT NOT NULL,
                    access_token TEXT NOT NULL,
                    scope TEXT,
                    expires_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE(provider, user_email)
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS oauth_states (
                    state TEXT PRIMARY KEY,
                    provider TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            connection.commit()

    def upsert_oauth_token(
        self,
        provider: str,
        user_email: str,
        refresh_token: str,
        access_token: str,
        expires_at: datetime | None = None,
        scope: str | None = None,
    ) -> None:
        """Summary: Insert or update the credential for a provider and user.

        Importance: Keeps exactly one record per account while tokens rotate.
        Alternatives: Append a row per refresh and read the newest.
        """

        for field_name, value in (
            ("provider", provider),
            ("user_email", user_email),
            ("refresh_token", refresh_token),
            ("access_token", access_token),
        ):
            if not value:
                raise ValidationError(f"Credential field {field_name} is required")
        now = utc_now().isoformat()
        expires_value = as_utc(expires_at).isoformat() if expires_at else None
        with self._connection() as connection:
            connection.execute(
                """
                INSERT INTO oauth_tokens (
                    provider, user_email, refresh_token, access_token, scope, expires_at,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(provider, user_email) DO UPDATE SET
                    refresh_token = excluded.refresh_token,
                    access_token = excluded.access_token,
                    scope = excluded.scope,
                    expires_at = excluded.expires_at,
                    updated_at = excluded.updated_at
                """,
                (
                    provider,
                    user_email.lower(),
                    refresh_token,
                    access_token,
                    scope,
                    expires_value,
                    now,
                    now,
                ),
            )
            connection.commit()

    def get_oauth_token(self, provider: str, user_email: str) -> StoredCredential | None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT id, provider, user_email, refresh_token, access_token, scope, expires_at,
                       created_at, updated_at
                FROM oauth_tokens
                WHERE provider = ? AND user_email = ?
                """,
                (provider, user_email.lower()),
            )
            row = cursor.fetchone()
        return _credential_from_row(row) if row else None

    def list_oauth_tokens(self) -> list[StoredCredential]:
        """Summary: Return every stored credential.

        Importance: Backs the operator export of the token table.
        Alternatives: Query the SQLite file by hand.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT id, provider, user_email, refresh_token, access_token, scope, expires_at,
                       created_at, updated_at
                FROM oauth_tokens
                ORDER BY id
                """
            )
            rows = cursor.fetchall()
        return [_credential_from_row(row) for row in rows]

    def save_oauth_state(self, state: str, provider: str) -> None:
        with self._connection() as connection:
            connection.execute(
                "INSERT INTO oauth_states (state, provider, created_at) VALUES (?, ?, ?)",
                (state, provider, utc_now().isoformat()),
            )
            connection.commit()

    def consume_oauth_state(self, state: str) -> StoredOAuthState | None:
        """Summary: Remove and return a pending OAuth state.

        Importance: A state can be redeemed once; replays find nothing.
        Alternatives: Mark states as used and keep them for auditing.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                "SELECT state, provider, created_at FROM oauth_states WHERE state = ?",
                (state,),
            )
            row = cursor.fetchone()
            if not row:
                return None
            cursor.execute("DELETE FROM oauth_states WHERE state = ?", (state,))
            connection.commit()
        return StoredOAuthState(
            state=row[0], provider=row[1], created_at=datetime.fromisoformat(row[2])
        )

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


def _credential_from_row(row: tuple) -> StoredCredential:
    return StoredCredential(
        id=int(row[0]),
        provider=row[1],
        user_email=row[2],
        refresh_token=row[3],
        access_token=row[4],
        scope=row[5],
        expires_at=datetime.fromisoformat(row[6]) if row[6] else None,
        created_at=datetime.fromisoformat(row[7]),
        updated_at=datetime.fromisoformat(row[8]),
    )