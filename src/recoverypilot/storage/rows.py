"""Summary: Positional row mapping for credential records.

Importance: Keeps spreadsheet-style column order out of the typed token store.
Alternatives: Serialize records with their dataclass field order.
"""

from __future__ import annotations

import csv
import io
from datetime import datetime
from typing import Iterable, Sequence

from recoverypilot.storage.sqlite_store import StoredCredential


CREDENTIAL_COLUMNS = [
    "ID",
    "Provider",
    "User Email",
    "Refresh Token",
    "Access Token",
    "Scope",
    "Expires At",
    "Created At",
    "Updated At",
]


def credential_to_row(record: StoredCredential) -> list[str]:
    """Summary: Flatten a credential into export columns.

    Importance: Defines the single place where column positions are decided.
    Alternatives: Let each exporter pick its own order.
    """

    return [
        str(record.id),
        record.provider,
        record.user_email,
        record.refresh_token,
        record.access_token,
        record.scope or "",
        record.expires_at.isoformat() if record.expires_at else "",
        record.created_at.isoformat(),
        record.updated_at.isoformat(),
    ]


def row_to_credential(row: Sequence[str]) -> StoredCredential:
    """Summary: Rebuild a credential from export columns.

    Importance: Lets an operator restore a dump into a fresh database.
    Alternatives: Require re-authorization after data loss.
    """

    if len(row) != len(CREDENTIAL_COLUMNS):
        raise ValueError(
            f"Expected {len(CREDENTIAL_COLUMNS)} columns, got {len(row)}"
        )
    return StoredCredential(
        id=int(row[0]),
        provider=row[1],
        user_email=row[2],
        refresh_token=row[3],
        access_token=row[4],
        scope=row[5] or None,
        expires_at=datetime.fromisoformat(row[6]) if row[6] else None,
        created_at=datetime.fromisoformat(row[7]),
        updated_at=datetime.fromisoformat(row[8]),
    )


def credentials_to_csv(records: Iterable[StoredCredential]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CREDENTIAL_COLUMNS)
    for record in records:
        writer.writerow(credential_to_row(record))
    return buffer.getvalue()


def credentials_from_csv(text: str) -> list[StoredCredential]:
    """Summary: Parse a CSV dump written by ``credentials_to_csv``.

    Importance: Feeds the restore path that re-seeds a fresh database.
    Alternatives: Accept only the SQLite file as a backup format.
    """

    rows = [row for row in csv.reader(io.StringIO(text)) if row]
    if not rows or rows[0] != CREDENTIAL_COLUMNS:
        raise ValueError("CSV header does not match the credential export columns")
    return [row_to_credential(row) for row in rows[1:]]
