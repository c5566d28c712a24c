"""Summary: Error taxonomy for the recovery pipeline.

Importance: Gives the web layer and CLI one place to map failures to codes and guidance.
Alternatives: Raise framework HTTP exceptions from inside the services.
"""

from __future__ import annotations


class RecoveryError(Exception):
    """Summary: Base class for failures surfaced to callers.

    Importance: Carries a stable error code, an HTTP status, and a user-facing suggestion.
    Alternatives: Encode status codes in exception messages.
    """

    error_code = "STATUS 005"
    status_code = 500
    suggestion = "Try again in 5 minutes; if the problem persists contact support with the error code."

    def __init__(self, message: str, suggestion: str | None = None) -> None:
        super().__init__(message)
        if suggestion is not None:
            self.suggestion = suggestion

    def to_dict(self) -> dict[str, str]:
        return {
            "error_code": self.error_code,
            "detail": str(self),
            "suggestion": self.suggestion,
        }


class ValidationError(RecoveryError):
    error_code = "STATUS 5008"
    status_code = 400
    suggestion = "A required credential field is missing; re-authorize the mailbox."


class CredentialMissing(RecoveryError):
    error_code = "STATUS 5005"
    status_code = 412
    suggestion = "No stored credential for this account; re-authorize the mailbox."


class CredentialExpired(RecoveryError):
    error_code = "STATUS 5006"
    status_code = 412
    suggestion = "The stored access token has expired; re-authorize the mailbox."


class RefreshFailure(RecoveryError):
    error_code = "STATUS 3011"
    status_code = 502
    suggestion = "The refresh token was rejected; re-authorize the mailbox."


class TransportError(RecoveryError):
    error_code = "STATUS 3012"
    status_code = 502
    suggestion = "The mail provider could not be reached; try again."


class BackendUnavailable(RecoveryError):
    error_code = "STATUS 5007"
    status_code = 502
    suggestion = "The mail provider kept failing; wait a few minutes and try again."


class NoRelevantMessages(RecoveryError):
    error_code = "STATUS 3013"
    status_code = 404
    suggestion = (
        "Make sure the code or link was requested, then try again in a few minutes."
    )


class ConfirmationFailed(RecoveryError):
    error_code = "STATUS 3014"
    status_code = 502
    suggestion = "Wait 3 minutes and try again."


class InvalidOAuthState(RecoveryError):
    error_code = "STATUS 001"
    status_code = 400
    suggestion = "Start the authorization again from the beginning."


class ConfigurationError(RecoveryError):
    error_code = "STATUS 5009"
    status_code = 500
    suggestion = "Set MICROSOFT_CLIENT_ID and MICROSOFT_CLIENT_SECRET, then restart the service."
