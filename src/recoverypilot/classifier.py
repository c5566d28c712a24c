"""Summary: Category classification and payload extraction for provider emails.

Importance: Turns a window of inbox messages into one code or link per category.
Alternatives: Use an LLM-based extractor.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from recoverypilot.errors import NoRelevantMessages
from recoverypilot.expiry import as_utc
from recoverypilot.models import ClassificationCategory, ExtractionResult, Message


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MessageClassifier:
    """Summary: Subject, sender, and freshness based classifier.

    Importance: Deterministic matching against the configured category table.
    Alternatives: Match on message body keywords.
    """

    categories: list[ClassificationCategory]
    sender_marker: str
    freshness_minutes: int
    _patterns: dict[str, re.Pattern[str]] = field(init=False, repr=False, compare=False)
    _expiry_patterns: dict[str, re.Pattern[str]] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        patterns = {
            category.name: re.compile(category.pattern, re.IGNORECASE | re.DOTALL)
            for category in self.categories
        }
        expiry_patterns = {
            category.name: re.compile(category.expiry_pattern, re.IGNORECASE)
            for category in self.categories
            if category.expiry_pattern
        }
        object.__setattr__(self, "_patterns", patterns)
        object.__setattr__(self, "_expiry_patterns", expiry_patterns)

    def classify(
        self, messages: list[Message], now: datetime
    ) -> dict[str, ExtractionResult | None]:
        """Summary: Extract one result per category from the newest matching message.

        Importance: Newer codes supersede older unconsumed ones from repeated requests.
        Alternatives: Use the oldest match or return every match.
        """

        results: dict[str, ExtractionResult | None] = {}
        matched_any = False
        for category in self.categories:
            candidates = self.filter_messages(category, messages, now)
            if not candidates:
                results[category.name] = None
                continue
            matched_any = True
            representative = max(candidates, key=lambda message: as_utc(message.timestamp))
            results[category.name] = self._extract(category, representative)
        if not matched_any:
            raise NoRelevantMessages(
                f"No messages from {self.sender_marker} matched any category in the last "
                f"{self.freshness_minutes} minutes"
            )
        return results

    def filter_messages(
        self, category: ClassificationCategory, messages: list[Message], now: datetime
    ) -> list[Message]:
        subject_marker = category.subject_marker.lower()
        sender_marker = self.sender_marker.lower()
        window = timedelta(minutes=self.freshness_minutes)
        current = as_utc(now)
        return [
            message
            for message in messages
            if subject_marker in message.subject.lower()
            and sender_marker in message.sender.lower()
            and current - as_utc(message.timestamp) <= window
        ]

    def _extract(
        self, category: ClassificationCategory, message: Message
    ) -> ExtractionResult | None:
        match = self._patterns[category.name].search(message.body or "")
        if not match or not match.group(1):
            logger.warning(
                "Message %s matched %s but its body did not parse.",
                message.provider_message_id,
                category.name,
            )
            return None
        logger.info("Extracted %s from message %s.", category.name, message.provider_message_id)
        return ExtractionResult(
            value=match.group(1),
            received_at=message.timestamp,
            expires_in_minutes=self._expires_in(category, message.body or ""),
        )

    def _expires_in(self, category: ClassificationCategory, body: str) -> int | None:
        pattern = self._expiry_patterns.get(category.name)
        if pattern is None:
            return None
        match = pattern.search(body)
        return int(match.group(1)) if match else None
