"""Summary: Message category tables for recovery introspection.

Importance: Keeps the recognized provider templates configurable per deployment.
Alternatives: Hardcode subject and pattern literals in the classifier.
"""

from __future__ import annotations

import re
from typing import Any, Iterable

from recoverypilot.models import ClassificationCategory


SIGN_IN_CODE = "sign_in_code"
TEMPORARY_SIGN_IN_LINK = "temporary_sign_in_link"
CONFIRM_HOME_UPDATE = "confirm_home_update"

LINK_PATTERN = r"(https?://[^\s<>\"'\]\)]+)"
EXPIRY_PATTERN = r"expira en (\d+) minutos"


def default_categories() -> list[ClassificationCategory]:
    """Summary: Return the built-in category table.

    Importance: Covers the sign-in code, temporary access, and household update emails.
    Alternatives: Require every deployment to declare its own table.
    """

    return [
        ClassificationCategory(
            name=SIGN_IN_CODE,
            subject_marker="código de inicio de sesión",
            pattern=r"c[óo]digo\D{0,40}?(\d{4,8})",
        ),
        ClassificationCategory(
            name=TEMPORARY_SIGN_IN_LINK,
            subject_marker="acceso temporal",
            pattern=LINK_PATTERN,
            expiry_pattern=EXPIRY_PATTERN,
        ),
        ClassificationCategory(
            name=CONFIRM_HOME_UPDATE,
            subject_marker="actualizar tu hogar",
            pattern=LINK_PATTERN,
        ),
    ]


def parse_categories(items: Iterable[dict[str, Any]]) -> list[ClassificationCategory]:
    """Summary: Build categories from config entries.

    Importance: Rejects patterns that would not yield exactly one captured value.
    Alternatives: Validate patterns lazily at classification time.
    """

    categories: list[ClassificationCategory] = []
    seen: set[str] = set()
    for item in items:
        name = str(item.get("name", "")).strip()
        subject_marker = str(item.get("subject_marker", "")).strip()
        pattern = str(item.get("pattern", ""))
        expiry_pattern = str(item["expiry_pattern"]) if item.get("expiry_pattern") else None
        if not name or not subject_marker or not pattern:
            raise ValueError(f"Incomplete category definition: {item}")
        if name in seen:
            raise ValueError(f"Duplicate category: {name}")
        if re.compile(pattern).groups != 1:
            raise ValueError(f"Category {name} pattern must have exactly one capture group")
        if expiry_pattern is not None and re.compile(expiry_pattern).groups != 1:
            raise ValueError(f"Category {name} expiry_pattern must have exactly one capture group")
        seen.add(name)
        categories.append(
            ClassificationCategory(
                name=name,
                subject_marker=subject_marker,
                pattern=pattern,
                expiry_pattern=expiry_pattern,
            )
        )
    return categories
