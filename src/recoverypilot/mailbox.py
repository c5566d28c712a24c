"""Summary: Mailbox reader interfaces and the Microsoft Graph implementation.

Importance: Fetches a bounded window of recent inbox messages for introspection.
Alternatives: Read the mailbox over IMAP with XOAUTH2.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Sequence

import httpx

from recoverypilot.errors import TransportError
from recoverypilot.expiry import as_utc
from recoverypilot.models import Message


logger = logging.getLogger(__name__)

DEFAULT_FIELDS = ("id", "subject", "from", "receivedDateTime", "body", "bodyPreview")
# Messages without a usable timestamp sort last and never pass the freshness filter.
UNKNOWN_TIME = datetime.min.replace(tzinfo=timezone.utc)


class MailboxReader(ABC):
    """Summary: Abstract interface for reading recent inbox messages.

    Importance: Lets the introspection pipeline run against fakes in tests.
    Alternatives: Call the Graph client directly from the service.
    """

    @abstractmethod
    async def list_recent_messages(self, access_token: str, count: int) -> list[Message]:
        """Summary: Fetch the most recent inbox messages, newest first.

        Importance: Bounds the payload to what the classifier needs.
        Alternatives: Page through the whole folder.
        """


class OutlookMailboxReader(MailboxReader):
    """Summary: Reads inbox messages via Microsoft Graph using a delegated token.

    Importance: Provides OAuth-based read-only access without IMAP passwords.
    Alternatives: Use the Graph SDK.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        fields: Sequence[str] = DEFAULT_FIELDS,
        folder: str = "Inbox",
        prefer_text_body: bool = True,
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._fields = tuple(fields)
        self._folder = folder
        self._prefer_text_body = prefer_text_body

    async def list_recent_messages(self, access_token: str, count: int) -> list[Message]:
        url = f"{self._base_url}/me/mailFolders/{self._folder}/messages"
        params = {
            "$top": str(count),
            "$select": ",".join(self._fields),
            "$orderby": "receivedDateTime desc",
        }
        headers = {"Authorization": f"Bearer {access_token}"}
        if self._prefer_text_body:
            headers["Prefer"] = 'outlook.body-content-type="text"'
        try:
            response = await self._client.get(url, params=params, headers=headers)
        except httpx.HTTPError as exc:
            raise TransportError(f"Microsoft Graph request failed: {exc}") from exc
        if response.status_code >= 400:
            raise TransportError(
                f"Microsoft Graph request failed: {response.status_code} {response.text}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise TransportError("Microsoft Graph returned a non-JSON body") from exc
        items = payload.get("value") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            raise TransportError("Microsoft Graph response has no message list")
        messages = [_parse_outlook_message(item) for item in items]
        logger.info("Fetched %s inbox messages.", len(messages))
        return messages


def _parse_outlook_message(message: dict[str, Any]) -> Message:
    """Summary: Parse a Microsoft Graph message payload into a Message.

    Importance: Normalizes structured bodies and sender objects into plain fields.
    Alternatives: Store raw Outlook payloads and parse later.
    """

    sender = ((message.get("from") or {}).get("emailAddress") or {}).get("address") or ""
    body_preview = message.get("bodyPreview") or ""
    body = _extract_body(message.get("body")) or body_preview
    return Message(
        provider_message_id=message.get("id") or "",
        subject=message.get("subject") or "",
        sender=sender,
        timestamp=_parse_iso_datetime(message.get("receivedDateTime")),
        body=body,
        snippet=body_preview,
    )


def _extract_body(body: Any) -> str:
    # Graph returns {"contentType": ..., "content": ...}; plain strings pass through.
    if isinstance(body, str):
        return body
    if isinstance(body, dict):
        return body.get("content") or ""
    return ""


def _parse_iso_datetime(value: str | None) -> datetime:
    """Summary: Parse ISO datetime strings from Graph payloads.

    Importance: Normalizes timestamps for the freshness filter and recency ordering.
    Alternatives: Store raw timestamp strings.
    """

    if not value:
        return UNKNOWN_TIME
    cleaned = value.replace("Z", "+00:00")
    try:
        return as_utc(datetime.fromisoformat(cleaned))
    except ValueError:
        logger.warning("Unparseable receivedDateTime %s.", value)
        return UNKNOWN_TIME
