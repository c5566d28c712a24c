"""Summary: OAuth helper utilities for the Microsoft identity platform.

Importance: Builds authorization URLs and performs code and refresh-token exchanges.
Alternatives: Use MSAL or another provider SDK.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
import urllib.parse

import httpx

from recoverypilot.config import AppConfig
from recoverypilot.errors import ConfigurationError, TransportError
from recoverypilot.expiry import utc_now


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OAuthTokenResult:
    """Summary: Normalized OAuth token response data.

    Importance: Provides a consistent token representation for storage and refresh logic.
    Alternatives: Store the raw provider response without normalization.
    """

    access_token: str
    refresh_token: str | None
    expires_at: datetime | None
    scope: str | None
    token_type: str | None

    @staticmethod
    def from_response(payload: dict[str, Any], now: datetime | None = None) -> "OAuthTokenResult":
        """Summary: Build an OAuthTokenResult from a provider payload.

        Importance: Normalizes expiry, which Microsoft may send as a number or a string.
        Alternatives: Use provider-specific token response classes.
        """

        access_token = payload.get("access_token")
        if not access_token:
            raise TransportError("Token response did not include an access token")
        expires_at = None
        expires_in = payload.get("expires_in")
        if expires_in is not None:
            try:
                seconds = int(expires_in)
            except (TypeError, ValueError):
                seconds = None
            if seconds is not None:
                expires_at = (now or utc_now()) + timedelta(seconds=seconds)
        return OAuthTokenResult(
            access_token=access_token,
            refresh_token=payload.get("refresh_token"),
            expires_at=expires_at,
            scope=payload.get("scope"),
            token_type=payload.get("token_type"),
        )


def create_state_token() -> str:
    """Summary: Generate a random OAuth state nonce.

    Importance: Each authorization request gets its own unguessable state.
    Alternatives: Derive state from a signed session cookie.
    """

    return secrets.token_urlsafe(24)


def build_authorize_url(config: AppConfig, state: str, login_hint: str | None = None) -> str:
    """Summary: Build a Microsoft OAuth authorization URL.

    Importance: Starts delegated mailbox access for the configured account.
    Alternatives: Use Microsoft Graph SDK helpers.
    """

    params = {
        "client_id": config.microsoft_client_id,
        "response_type": "code",
        "redirect_uri": config.oauth_redirect_uri,
        "response_mode": "query",
        "scope": " ".join(config.oauth_scopes),
        "prompt": "consent",
        "state": state,
    }
    if login_hint:
        params["login_hint"] = login_hint
    return config.microsoft_authorize_url + "?" + urllib.parse.urlencode(params)


async def exchange_oauth_code(
    client: httpx.AsyncClient, config: AppConfig, code: str
) -> OAuthTokenResult:
    """Summary: Exchange an OAuth authorization code for tokens.

    Importance: Completes the consent flow by retrieving access and refresh tokens.
    Alternatives: Use provider SDKs or external auth services.
    """

    payload = _token_payload(config, code)
    response = await _post_form(client, config.microsoft_token_url, payload)
    return OAuthTokenResult.from_response(response)


async def refresh_oauth_token(
    client: httpx.AsyncClient, config: AppConfig, refresh_token: str
) -> OAuthTokenResult:
    """Summary: Exchange a refresh token for a new token pair.

    Importance: Keeps mailbox access alive without another consent screen.
    Alternatives: Re-run the authorization flow when the access token expires.
    """

    payload = _refresh_payload(config, refresh_token)
    response = await _post_form(client, config.microsoft_token_url, payload)
    return OAuthTokenResult.from_response(response)


async def fetch_profile_email(
    client: httpx.AsyncClient, config: AppConfig, access_token: str
) -> str | None:
    """Summary: Resolve the mailbox address behind an access token.

    Importance: Keys the stored credential on the account that actually consented.
    Alternatives: Trust the login hint supplied at authorization time.
    """

    url = config.microsoft_graph_base_url.rstrip("/") + "/me"
    try:
        response = await client.get(url, headers={"Authorization": f"Bearer {access_token}"})
    except httpx.HTTPError as exc:
        raise TransportError(f"Profile request failed: {exc}") from exc
    if response.status_code >= 400:
        raise TransportError(f"Profile request failed: {response.status_code} {response.text}")
    try:
        profile = response.json()
    except ValueError as exc:
        raise TransportError("Profile endpoint returned a non-JSON body") from exc
    if not isinstance(profile, dict):
        raise TransportError("Profile endpoint returned an unexpected payload")
    return profile.get("mail") or profile.get("userPrincipalName")


def _token_payload(config: AppConfig, code: str) -> dict[str, str]:
    _ensure_oauth_config(config)
    return {
        "client_id": config.microsoft_client_id,
        "client_secret": config.microsoft_client_secret,
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": config.oauth_redirect_uri,
        "scope": " ".join(config.oauth_scopes),
    }


def _refresh_payload(config: AppConfig, refresh_token: str) -> dict[str, str]:
    _ensure_oauth_config(config)
    return {
        "client_id": config.microsoft_client_id,
        "client_secret": config.microsoft_client_secret,
        "grant_type": "refresh_token",
        "refresh_token": refresh_token,
        "scope": " ".join(config.oauth_scopes),
    }


def _ensure_oauth_config(config: AppConfig) -> None:
    """Summary: Validate that OAuth credentials exist.

    Importance: Prevents confusing token exchange errors when credentials are missing.
    Alternatives: Allow requests to fail at the provider endpoint.
    """

    if not config.microsoft_client_id or not config.microsoft_client_secret:
        raise ConfigurationError(f"Missing OAuth client credentials for {config.provider_name}")


async def _post_form(
    client: httpx.AsyncClient, url: str, payload: dict[str, str]
) -> dict[str, Any]:
    """Summary: Send a form-encoded POST request and parse JSON.

    Importance: Shared by the code and refresh grants.
    Alternatives: Use a provider SDK.
    """

    try:
        response = await client.post(
            url,
            data=payload,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
    except httpx.HTTPError as exc:
        raise TransportError(f"Token request failed: {exc}") from exc
    if response.status_code >= 400:
        logger.warning("Token endpoint answered %s.", response.status_code)
        raise TransportError(f"Token exchange failed: {response.text or response.reason_phrase}")
    try:
        body = response.json()
    except ValueError as exc:
        raise TransportError("Token endpoint returned a non-JSON body") from exc
    if not isinstance(body, dict):
        raise TransportError("Token endpoint returned an unexpected payload")
    return body
