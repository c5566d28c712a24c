"""Summary: Shared fixtures for RecoveryPilot tests.

Importance: Gives every test an isolated database and fake provider endpoints.
Alternatives: Build an AppConfig by hand in each test module.
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

from recoverypilot.category_templates import default_categories
from recoverypilot.config import AppConfig


TOKEN_URL = "https://login.example.test/oauth2/v2.0/token"
GRAPH_URL = "https://graph.example.test/v1.0"


def build_config(db_path: str, **overrides: Any) -> AppConfig:
    config = AppConfig(
        db_path=db_path,
        api_host="127.0.0.1",
        api_port=3035,
        api_key="",
        log_level="INFO",
        account_email="owner@example.com",
        provider_name="microsoft",
        microsoft_client_id="ms-client",
        microsoft_client_secret="ms-secret",
        microsoft_authorize_url="https://login.example.test/oauth2/v2.0/authorize",
        microsoft_token_url=TOKEN_URL,
        microsoft_graph_base_url=GRAPH_URL,
        oauth_redirect_uri="http://localhost:3035/auth/callback",
        oauth_scopes=["User.Read", "Mail.Read", "offline_access"],
        oauth_state_ttl_minutes=10,
        refresh_warning_minutes=30,
        retry_delays_ms=[0, 0],
        message_count=5,
        freshness_minutes=15,
        sender_marker="netflix",
        http_timeout_seconds=5.0,
        categories=default_categories(),
    )
    return replace(config, **overrides)


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., AppConfig]:
    def _make(**overrides: Any) -> AppConfig:
        db_path = overrides.pop("db_path", str(tmp_path / "test.db"))
        return build_config(db_path, **overrides)

    return _make


class FakeProvider:
    """Summary: Routes mock HTTP requests to canned provider responses.

    Importance: Lets service and API tests count token, mailbox, and confirmation calls.
    Alternatives: Patch each service method individually.
    """

    def __init__(self, messages: list[dict[str, Any]] | None = None) -> None:
        self.messages = messages or []
        self.mailbox_failures = 0
        self.token_status = 200
        self.confirm_status = 200
        self.profile_email = "owner@example.com"
        self.profile_body: str | None = None
        self.requests: list[httpx.Request] = []

    def count(self, path_fragment: str) -> int:
        return sum(1 for request in self.requests if path_fragment in request.url.path)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url.startswith(TOKEN_URL):
            if self.token_status >= 400:
                return httpx.Response(self.token_status, json={"error": "invalid_grant"})
            return httpx.Response(
                200,
                json={
                    "access_token": "refreshed-access",
                    "refresh_token": "rotated-refresh",
                    "expires_in": "3600",
                    "scope": "Mail.Read",
                },
            )
        if url.startswith(GRAPH_URL + "/me/mailFolders"):
            if self.mailbox_failures > 0:
                self.mailbox_failures -= 1
                return httpx.Response(503, json={"error": {"code": "ServiceUnavailable"}})
            return httpx.Response(200, json={"value": self.messages})
        if url.startswith(GRAPH_URL + "/me"):
            if self.profile_body is not None:
                return httpx.Response(200, text=self.profile_body)
            return httpx.Response(200, json={"mail": self.profile_email})
        if 300 <= self.confirm_status < 400:
            return httpx.Response(self.confirm_status, headers={"Location": url + "/done"})
        return httpx.Response(self.confirm_status, json={})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()
