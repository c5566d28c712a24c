"""Summary: End-to-end tests for the token, introspection, confirmation, and authorization services.

Importance: Exercises the full request path against a mock provider.
Alternatives: Run against a live mailbox.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, TypeVar
import urllib.parse

import pytest

from recoverypilot.app import AppServices, build_services
from recoverypilot.category_templates import CONFIRM_HOME_UPDATE, SIGN_IN_CODE, TEMPORARY_SIGN_IN_LINK
from recoverypilot.errors import (
    BackendUnavailable,
    ConfirmationFailed,
    CredentialExpired,
    CredentialMissing,
    InvalidOAuthState,
    NoRelevantMessages,
)


T = TypeVar("T")

NOW = datetime.now(timezone.utc).replace(microsecond=0)
ACCOUNT = "owner@example.com"


def _graph_message(subject: str, body: str, minutes_ago: int = 1, message_id: str = "m1") -> dict[str, Any]:
    return {
        "id": message_id,
        "subject": subject,
        "from": {"emailAddress": {"name": "Netflix", "address": "info@account.netflix.com"}},
        "receivedDateTime": (NOW - timedelta(minutes=minutes_ago)).isoformat().replace("+00:00", "Z"),
        "bodyPreview": body[:40],
        "body": {"contentType": "text", "content": body},
    }


def _run(services: AppServices, work: Callable[[AppServices], Awaitable[T]]) -> T:
    async def run() -> T:
        try:
            return await work(services)
        finally:
            await services.aclose()

    return asyncio.run(run())


def _seed(services: AppServices, expires_in: timedelta | None) -> None:
    services.tokens.upsert_token(
        ACCOUNT,
        refresh_token="stored-refresh",
        access_token="stored-access",
        expires_at=NOW + expires_in if expires_in is not None else None,
    )


def test_introspect_extracts_sign_in_code(make_config, provider) -> None:
    """Summary: A valid token and one fresh code email yield the code.

    Importance: Covers the common path with no refresh and no retry.
    Alternatives: Test the classifier in isolation only.
    """

    provider.messages = [
        _graph_message("Tu código de inicio de sesión", "Ingresa este código 4821 para iniciar sesión")
    ]
    services = build_services(make_config(), transport=provider.transport())
    _seed(services, timedelta(hours=2))

    results = _run(services, lambda s: s.introspection.introspect(now=NOW))

    assert results[SIGN_IN_CODE] is not None
    assert results[SIGN_IN_CODE].value == "4821"
    assert results[TEMPORARY_SIGN_IN_LINK] is None
    assert results[CONFIRM_HOME_UPDATE] is None
    assert provider.count("/oauth2/v2.0/token") == 0
    assert provider.requests[0].headers["Authorization"] == "Bearer stored-access"


def test_token_near_expiry_is_refreshed_before_reading(make_config, provider) -> None:
    """Summary: A token inside the warning window is refreshed once before the mailbox read.

    Importance: The rotated refresh token must be persisted or the next refresh fails.
    Alternatives: Refresh only after the mailbox rejects the token.
    """

    provider.messages = [_graph_message("Tu código de inicio de sesión", "código 4821")]
    services = build_services(make_config(), transport=provider.transport())
    _seed(services, timedelta(minutes=5))

    _run(services, lambda s: s.introspection.introspect(now=NOW))

    assert provider.count("/oauth2/v2.0/token") == 1
    assert provider.requests[0].url.path.endswith("/token")
    assert provider.requests[1].url.path.endswith("/messages")
    assert provider.requests[1].headers["Authorization"] == "Bearer refreshed-access"
    record = services.tokens.get_token(ACCOUNT)
    assert record is not None
    assert record.access_token == "refreshed-access"
    assert record.refresh_token == "rotated-refresh"


def test_mailbox_failure_recovers_with_refreshed_token(make_config, provider) -> None:
    provider.messages = [
        _graph_message(
            "Tu acceso temporal de Netflix",
            "Obtener código: https://www.netflix.com/account/travel/verify?nftoken=abc",
        )
    ]
    provider.mailbox_failures = 1
    services = build_services(make_config(), transport=provider.transport())
    _seed(services, timedelta(hours=2))

    results = _run(services, lambda s: s.introspection.introspect(now=NOW))

    assert results[TEMPORARY_SIGN_IN_LINK] is not None
    assert results[TEMPORARY_SIGN_IN_LINK].value.endswith("nftoken=abc")
    assert provider.count("/messages") == 2
    assert provider.count("/oauth2/v2.0/token") == 1


def test_persistent_mailbox_failure_is_bounded(make_config, provider) -> None:
    provider.mailbox_failures = 100
    services = build_services(make_config(), transport=provider.transport())
    _seed(services, timedelta(hours=2))

    with pytest.raises(BackendUnavailable):
        _run(services, lambda s: s.introspection.introspect(now=NOW))
    assert provider.count("/messages") == 2


def test_no_fresh_messages_raises(make_config, provider) -> None:
    provider.messages = [
        _graph_message("Tu código de inicio de sesión", "código 4821", minutes_ago=40)
    ]
    services = build_services(make_config(), transport=provider.transport())
    _seed(services, timedelta(hours=2))

    with pytest.raises(NoRelevantMessages):
        _run(services, lambda s: s.introspection.introspect(now=NOW))


def test_missing_credential_raises(make_config, provider) -> None:
    services = build_services(make_config(), transport=provider.transport())
    with pytest.raises(CredentialMissing):
        _run(services, lambda s: s.introspection.introspect(now=NOW))
    assert provider.requests == []


@pytest.mark.parametrize("expires_in", [None, timedelta(minutes=-1)])
def test_expired_credential_raises(make_config, provider, expires_in) -> None:
    services = build_services(make_config(), transport=provider.transport())
    _seed(services, expires_in)
    with pytest.raises(CredentialExpired):
        _run(services, lambda s: s.tokens.ensure_access_token(ACCOUNT, NOW))
    assert provider.requests == []


def test_try_refresh_returns_none_on_rejection(make_config, provider) -> None:
    provider.token_status = 400
    services = build_services(make_config(), transport=provider.transport())
    _seed(services, timedelta(hours=2))

    assert _run(services, lambda s: s.tokens.try_refresh(ACCOUNT)) is None
    record = services.tokens.get_token(ACCOUNT)
    assert record is not None
    assert record.refresh_token == "stored-refresh"


def test_confirmation_failure_is_not_retried(make_config, provider) -> None:
    """Summary: A rejected confirmation raises after exactly one POST.

    Importance: Confirmation links are single use and must never be replayed.
    Alternatives: Retry the POST on server errors.
    """

    provider.confirm_status = 500
    services = build_services(make_config(), transport=provider.transport())
    link = "https://www.netflix.com/account/update-primary-location?nftoken=xyz"

    with pytest.raises(ConfirmationFailed) as excinfo:
        _run(services, lambda s: s.confirmation.confirm_recovery(link))

    assert excinfo.value.suggestion == "Wait 3 minutes and try again."
    assert len(provider.requests) == 1
    assert provider.requests[0].method == "POST"
    assert provider.requests[0].content == b"{}"


def test_confirmation_success(make_config, provider) -> None:
    services = build_services(make_config(), transport=provider.transport())
    _run(services, lambda s: s.confirmation.confirm_recovery("https://www.netflix.com/confirm"))
    assert len(provider.requests) == 1


def _state_from(url: str) -> str:
    return urllib.parse.parse_qs(urllib.parse.urlparse(url).query)["state"][0]


def test_authorization_flow_stores_credential(make_config, provider) -> None:
    provider.profile_email = "mailbox@example.com"
    services = build_services(make_config(), transport=provider.transport())
    state = _state_from(services.authorization.start_authorization())

    account = _run(services, lambda s: s.authorization.complete_authorization("auth-code", state))

    assert account == "mailbox@example.com"
    record = services.tokens.get_token("mailbox@example.com")
    assert record is not None
    assert record.refresh_token == "rotated-refresh"
    assert record.expires_at is not None


def test_authorization_state_is_single_use(make_config, provider) -> None:
    services = build_services(make_config(), transport=provider.transport())
    state = _state_from(services.authorization.start_authorization())

    async def work(s: AppServices) -> None:
        await s.authorization.complete_authorization("auth-code", state)
        await s.authorization.complete_authorization("auth-code", state)

    with pytest.raises(InvalidOAuthState):
        _run(services, work)
    assert provider.count("/oauth2/v2.0/token") == 1


def test_authorization_state_expires(make_config, provider) -> None:
    services = build_services(make_config(oauth_state_ttl_minutes=10), transport=provider.transport())
    state = _state_from(services.authorization.start_authorization())
    later = datetime.now(timezone.utc) + timedelta(minutes=11)

    with pytest.raises(InvalidOAuthState):
        _run(services, lambda s: s.authorization.complete_authorization("auth-code", state, later))
    assert provider.requests == []


def test_unknown_state_is_rejected(make_config, provider) -> None:
    services = build_services(make_config(), transport=provider.transport())
    with pytest.raises(InvalidOAuthState):
        _run(services, lambda s: s.authorization.complete_authorization("auth-code", "forged"))


@pytest.mark.parametrize("status", [302, 303])
def test_confirmation_redirect_counts_as_delivered(make_config, provider, status: int) -> None:
    """Summary: A redirect answer to the confirmation POST is a success.

    Importance: The link is spent once the POST lands, so reporting failure would send the user back to a dead link.
    Alternatives: Follow the redirect and judge the landing page.
    """

    provider.confirm_status = status
    services = build_services(make_config(), transport=provider.transport())
    link = "https://www.netflix.com/confirm?nftoken=x"

    _run(services, lambda s: s.confirmation.confirm_recovery(link))

    assert [str(request.url) for request in provider.requests] == [link]


def test_temporary_link_reports_expiry_minutes(make_config, provider) -> None:
    provider.messages = [
        _graph_message(
            "Tu acceso temporal de Netflix",
            "Obtener código https://www.netflix.com/account/travel/verify?nftoken=abc "
            "El código expira en 15 minutos.",
        )
    ]
    services = build_services(make_config(), transport=provider.transport())
    _seed(services, timedelta(hours=2))

    results = _run(services, lambda s: s.introspection.introspect(now=NOW))

    assert results[TEMPORARY_SIGN_IN_LINK] is not None
    assert results[TEMPORARY_SIGN_IN_LINK].expires_in_minutes == 15
