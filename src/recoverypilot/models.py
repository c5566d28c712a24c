"""Summary: Domain model dataclasses for RecoveryPilot.

Importance: Defines the entities shared by the token pipeline, mailbox reader, and classifier.
Alternatives: Use Pydantic models or ORM classes directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class Message:
    """Summary: Represents a mailbox message fetched for introspection.

    Importance: Core unit the classifier filters and extracts payloads from.
    Alternatives: Pass raw provider payloads through the pipeline.
    """

    provider_message_id: str
    subject: str
    sender: str
    timestamp: datetime
    body: str
    snippet: str = ""


@dataclass(frozen=True)
class ClassificationCategory:
    """Summary: Names a kind of provider message and how to extract its payload.

    Importance: Lets deployments pin which templates count as a recovery signal.
    Alternatives: Hardcode subject checks and regexes in the classifier.
    """

    name: str
    subject_marker: str
    pattern: str
    expiry_pattern: str | None = None


@dataclass(frozen=True)
class ExtractionResult:
    """Summary: Captured value from the representative message of a category.

    Importance: Carries the code or link with its send time and the lifetime stated in the email.
    Alternatives: Return only the captured string.
    """

    value: str
    received_at: datetime
    expires_in_minutes: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": self.value,
            "received_at": self.received_at.isoformat(),
            "expires_in_minutes": self.expires_in_minutes,
        }


@dataclass(frozen=True)
class TokenPair:
    """Summary: Access and refresh token pair returned by a refresh.

    Importance: Callers swap in the new access token without re-reading storage.
    Alternatives: Return the full provider response.
    """

    access_token: str
    refresh_token: str
