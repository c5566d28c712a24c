"""Summary: Application factory wiring core services.

Importance: Centralizes dependency creation for the CLI and API layers.
Alternatives: Instantiate services manually in each entrypoint.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from recoverypilot.classifier import MessageClassifier
from recoverypilot.config import AppConfig
from recoverypilot.mailbox import OutlookMailboxReader
from recoverypilot.services import (
    AuthorizationService,
    ConfirmationService,
    IntrospectionService,
    TokenService,
)
from recoverypilot.storage.sqlite_store import SqliteStore


@dataclass(frozen=True)
class AppServices:
    """Summary: Bundle of core services for RecoveryPilot.

    Importance: Simplifies passing dependencies to the UI-less API and CLI layers.
    Alternatives: Use a dependency injection container.
    """

    tokens: TokenService
    introspection: IntrospectionService
    confirmation: ConfirmationService
    authorization: AuthorizationService
    store: SqliteStore
    client: httpx.AsyncClient

    async def aclose(self) -> None:
        await self.client.aclose()


def build_services(
    config: AppConfig, transport: httpx.AsyncBaseTransport | None = None
) -> AppServices:
    """Summary: Build core services from configuration.

    Importance: Provides a single construction path; tests pass a mock transport.
    Alternatives: Instantiate services directly within each entrypoint.
    """

    store = SqliteStore(config.db_path)
    store.initialize()
    client = httpx.AsyncClient(timeout=config.http_timeout_seconds, transport=transport)
    tokens = TokenService(store=store, config=config, client=client)
    reader = OutlookMailboxReader(client=client, base_url=config.microsoft_graph_base_url)
    classifier = MessageClassifier(
        categories=config.categories,
        sender_marker=config.sender_marker,
        freshness_minutes=config.freshness_minutes,
    )
    return AppServices(
        tokens=tokens,
        introspection=IntrospectionService(
            tokens=tokens, reader=reader, classifier=classifier, config=config
        ),
        confirmation=ConfirmationService(client=client),
        authorization=AuthorizationService(
            store=store, tokens=tokens, config=config, client=client
        ),
        store=store,
        client=client,
    )
