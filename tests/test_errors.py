"""Summary: Tests for the error taxonomy.

Importance: Clients branch on error codes, so each failure kind needs its own.
Alternatives: Compare exception messages in clients.
"""

from __future__ import annotations

from recoverypilot import errors


def test_error_codes_are_unique() -> None:
    kinds = [
        value
        for value in vars(errors).values()
        if isinstance(value, type) and issubclass(value, errors.RecoveryError)
    ]
    codes = [kind.error_code for kind in kinds]
    assert len(codes) == len(set(codes))


def test_to_dict_carries_code_and_suggestion() -> None:
    payload = errors.ValidationError("refresh_token is required").to_dict()
    assert payload == {
        "error_code": "STATUS 5008",
        "detail": "refresh_token is required",
        "suggestion": errors.ValidationError.suggestion,
    }
