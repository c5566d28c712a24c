"""Summary: Core application services for RecoveryPilot.

Importance: Orchestrates the token lifecycle, mailbox introspection, and recovery confirmation.
Alternatives: Build a full service layer with a dependency injection framework.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from datetime import datetime, timedelta

import httpx

from recoverypilot.classifier import MessageClassifier
from recoverypilot.config import AppConfig
from recoverypilot.errors import (
    ConfirmationFailed,
    CredentialExpired,
    CredentialMissing,
    InvalidOAuthState,
    RecoveryError,
    RefreshFailure,
)
from recoverypilot.expiry import ExpiryStatus, as_utc, needs_refresh, utc_now
from recoverypilot.mailbox import MailboxReader
from recoverypilot.models import ExtractionResult, Message, TokenPair
from recoverypilot.oauth import (
    build_authorize_url,
    create_state_token,
    exchange_oauth_code,
    fetch_profile_email,
    refresh_oauth_token,
)
from recoverypilot.retry import with_retry
from recoverypilot.storage.sqlite_store import SqliteStore, StoredCredential


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenService:
    """Summary: Owns the stored credential and its refresh lifecycle.

    Importance: Every other component reaches tokens only through this service.
    Alternatives: Let callers query the store and the token endpoint directly.
    """

    store: SqliteStore
    config: AppConfig
    client: httpx.AsyncClient

    def get_token(self, user_email: str) -> StoredCredential | None:
        return self.store.get_oauth_token(self.config.provider_name, user_email)

    def upsert_token(
        self,
        user_email: str,
        refresh_token: str,
        access_token: str,
        expires_at: datetime | None = None,
        scope: str | None = None,
    ) -> None:
        """Summary: Store or replace the credential for an account.

        Importance: Keeps one record per account as refresh tokens rotate.
        Alternatives: Append a new record per refresh.
        """

        self.store.upsert_oauth_token(
            provider=self.config.provider_name,
            user_email=user_email,
            refresh_token=refresh_token,
            access_token=access_token,
            expires_at=expires_at,
            scope=scope,
        )
        logger.info("Stored OAuth tokens for %s.", user_email)

    async def refresh(self, user_email: str, refresh_token: str) -> TokenPair:
        """Summary: Exchange a refresh token and persist the rotated pair.

        Importance: The old refresh token is invalid once used, so the new one is saved at once.
        Alternatives: Keep refreshed tokens in memory only.
        """

        try:
            result = await refresh_oauth_token(self.client, self.config, refresh_token)
        except RecoveryError as exc:
            raise RefreshFailure(f"Failed to refresh access token: {exc}") from exc
        next_refresh = result.refresh_token or refresh_token
        self.upsert_token(
            user_email,
            refresh_token=next_refresh,
            access_token=result.access_token,
            expires_at=result.expires_at,
            scope=result.scope,
        )
        logger.info("Refreshed access token for %s.", user_email)
        return TokenPair(access_token=result.access_token, refresh_token=next_refresh)

    async def try_refresh(self, user_email: str) -> str | None:
        """Summary: Refresh the stored credential, returning None on failure.

        Importance: Lets the retry envelope tell "could not refresh" from "refreshed but still failing".
        Alternatives: Propagate RefreshFailure to the caller.
        """

        record = self.get_token(user_email)
        if record is None:
            logger.warning("No stored credential to refresh for %s.", user_email)
            return None
        try:
            pair = await self.refresh(user_email, record.refresh_token)
        except RefreshFailure as exc:
            logger.error("Refresh for %s failed: %s", user_email, exc)
            return None
        return pair.access_token

    async def ensure_access_token(self, user_email: str, now: datetime | None = None) -> str:
        """Summary: Return a usable access token, refreshing when expiry is near.

        Importance: Gates every mailbox read on the expiry policy.
        Alternatives: Refresh before every read.
        """

        record = self.get_token(user_email)
        if record is None:
            raise CredentialMissing(f"No stored credential for {user_email}")
        status = needs_refresh(
            record.expires_at, self.config.refresh_warning_minutes, now or utc_now()
        )
        if status is ExpiryStatus.EXPIRED_MUST_FAIL:
            raise CredentialExpired(f"Access token for {user_email} is expired or has no expiry")
        if status is ExpiryStatus.REFRESH_SOON:
            logger.info("Access token for %s expires soon; refreshing.", user_email)
            pair = await self.refresh(user_email, record.refresh_token)
            return pair.access_token
        return record.access_token


@dataclass(frozen=True)
class IntrospectionService:
    """Summary: Reads the mailbox and extracts recovery codes and links.

    Importance: Main entry point behind the recovery capture endpoint.
    Alternatives: Poll the mailbox in the background and cache results.
    """

    tokens: TokenService
    reader: MailboxReader
    classifier: MessageClassifier
    config: AppConfig

    async def introspect(
        self, user_email: str | None = None, now: datetime | None = None
    ) -> dict[str, ExtractionResult | None]:
        """Summary: Run the token gate, mailbox read, and classification in sequence.

        Importance: Returns one result per configured category for the account.
        Alternatives: Return the raw messages and let the client search them.
        """

        account = user_email or self.config.account_email
        logger.info("Introspecting mailbox for %s.", account)
        access_token = await self.tokens.ensure_access_token(account, now)

        async def read(token: str) -> list[Message]:
            return await self.reader.list_recent_messages(token, self.config.message_count)

        async def refresh() -> str | None:
            return await self.tokens.try_refresh(account)

        messages = await with_retry(read, access_token, self.config.retry_delays_ms, refresh)
        results = self.classifier.classify(messages, now or utc_now())
        found = sorted(name for name, result in results.items() if result is not None)
        logger.info("Introspection for %s found %s.", account, ", ".join(found) or "nothing parseable")
        return results


@dataclass(frozen=True)
class ConfirmationService:
    """Summary: Posts the recovery confirmation to an extracted link.

    Importance: Completes the household update without opening a browser.
    Alternatives: Return the link and let the user open it.
    """

    client: httpx.AsyncClient

    async def confirm_recovery(self, link: str) -> None:
        """Summary: POST an empty JSON body to the confirmation link.

        Importance: The link is single use, so failures are reported and never replayed.
        Alternatives: Retry the POST on transient failures.
        """

        logger.info("Sending recovery confirmation.")
        try:
            response = await self.client.post(link, json={})
        except httpx.HTTPError as exc:
            logger.error("Recovery confirmation failed: %s", exc)
            raise ConfirmationFailed(f"Recovery confirmation failed: {exc}") from exc
        # A redirect means the POST was delivered; the landing page is not fetched.
        if response.status_code >= 400:
            logger.error("Recovery confirmation answered %s.", response.status_code)
            raise ConfirmationFailed(
                f"Recovery confirmation failed: {response.status_code} {response.reason_phrase}"
            )
        logger.info("Recovery confirmation accepted with status %s.", response.status_code)


@dataclass(frozen=True)
class AuthorizationService:
    """Summary: Runs the OAuth consent flow that seeds the credential record.

    Importance: Issues single-use state nonces and stores tokens for the consenting account.
    Alternatives: Paste tokens into the database by hand.
    """

    store: SqliteStore
    tokens: TokenService
    config: AppConfig
    client: httpx.AsyncClient

    def start_authorization(self, login_hint: str | None = None) -> str:
        state = create_state_token()
        self.store.save_oauth_state(state, self.config.provider_name)
        logger.info("Issued OAuth state for %s.", login_hint or self.config.account_email)
        return build_authorize_url(self.config, state, login_hint or self.config.account_email)

    async def complete_authorization(self, code: str, state: str, now: datetime | None = None) -> str:
        """Summary: Verify state, exchange the code, and store the credential.

        Importance: Rejects forged, replayed, or stale callbacks before any token exchange.
        Alternatives: Compare against a static state value.
        """

        record = self.store.consume_oauth_state(state)
        if record is None or record.provider != self.config.provider_name:
            raise InvalidOAuthState("Unknown or already used OAuth state")
        age = as_utc(now or utc_now()) - as_utc(record.created_at)
        if age > timedelta(minutes=self.config.oauth_state_ttl_minutes):
            raise InvalidOAuthState("OAuth state expired")
        result = await exchange_oauth_code(self.client, self.config, code)
        if not result.refresh_token:
            raise RefreshFailure("Token response did not include a refresh token")
        email = await fetch_profile_email(self.client, self.config, result.access_token)
        account = email or self.config.account_email
        self.tokens.upsert_token(
            account,
            refresh_token=result.refresh_token,
            access_token=result.access_token,
            expires_at=result.expires_at,
            scope=result.scope,
        )
        logger.info("Authorized mailbox %s.", account)
        return account
