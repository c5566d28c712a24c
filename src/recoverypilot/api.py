"""Summary: FastAPI application for RecoveryPilot.

Importance: Exposes introspection, confirmation, and OAuth endpoints over HTTP.
Alternatives: Use a CLI-only workflow or a different web framework.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response
from pydantic import BaseModel, Field, HttpUrl

from recoverypilot.app import build_services
from recoverypilot.config import AppConfig
from recoverypilot.errors import RecoveryError
from recoverypilot.storage.rows import credentials_to_csv


logger = logging.getLogger(__name__)


class IntrospectRequest(BaseModel):
    """Summary: Request payload for mailbox introspection.

    Importance: Lets the caller name the account; omitted means the configured one.
    Alternatives: Always use the configured account.
    """

    email: str | None = Field(default=None, min_length=3, max_length=320)


class ConfirmRequest(BaseModel):
    link: HttpUrl


def create_app(
    config: AppConfig, transport: httpx.AsyncBaseTransport | None = None
) -> FastAPI:
    """Summary: Create a FastAPI app wired to RecoveryPilot services.

    Importance: Ensures the API layer shares the same configuration and storage.
    Alternatives: Instantiate services globally outside the factory.
    """

    if not logging.getLogger().handlers:
        logging.basicConfig(level=config.log_level, format="%(levelname)s %(name)s: %(message)s")
    services = build_services(config, transport=transport)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await services.aclose()

    app = FastAPI(title="RecoveryPilot API", version="0.1.0", lifespan=lifespan)

    @app.exception_handler(RecoveryError)
    async def recovery_error_handler(_: Request, exc: RecoveryError) -> JSONResponse:
        logger.error("%s: %s", exc.__class__.__name__, exc)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
        """Summary: Enforce API key authentication when configured.

        Importance: Keeps operator endpoints private on shared hosts.
        Alternatives: Use OAuth or session-based authentication.
        """

        if not config.api_key:
            return
        if x_api_key != config.api_key:
            raise HTTPException(status_code=401, detail="Invalid API key")

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/auth/authorize", dependencies=[Depends(require_api_key)])
    def authorize(login_hint: str | None = None) -> dict[str, str]:
        """Summary: Return the Microsoft OAuth authorization URL.

        Importance: Starts the consent flow that seeds the credential record.
        Alternatives: Print the URL from the CLI only.
        """

        return {"url": services.authorization.start_authorization(login_hint)}

    @app.get("/auth/callback", response_class=HTMLResponse)
    async def callback(code: str, state: str) -> str:
        account = await services.authorization.complete_authorization(code, state)
        return f"<h1>Mailbox {account} connected</h1><p>You can close this window.</p>"

    @app.post("/recovery/introspect", dependencies=[Depends(require_api_key)])
    async def introspect(payload: IntrospectRequest) -> dict[str, Any]:
        """Summary: Extract the latest recovery codes and links from the mailbox.

        Importance: Primary workflow of the service.
        Alternatives: Poll the mailbox from the client.
        """

        results = await services.introspection.introspect(payload.email)
        return {
            name: result.to_dict() if result is not None else None
            for name, result in results.items()
        }

    @app.post("/recovery/confirm", dependencies=[Depends(require_api_key)])
    async def confirm(payload: ConfirmRequest) -> dict[str, str]:
        await services.confirmation.confirm_recovery(str(payload.link))
        return {"status": "confirmed"}

    @app.get("/tokens/export", dependencies=[Depends(require_api_key)])
    def export_tokens() -> Response:
        """Summary: Download the credential table as CSV.

        Importance: Gives the operator a dump to inspect or restore.
        Alternatives: Copy the SQLite file.
        """

        body = credentials_to_csv(services.store.list_oauth_tokens())
        return Response(
            content=body,
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="credentials-export.csv"'},
        )

    return app


def create_default_app() -> FastAPI:
    """Summary: Build the app from environment configuration.

    Importance: Factory target for ``uvicorn --factory recoverypilot.api:create_default_app``.
    Alternatives: Build the app at import time.
    """

    return create_app(AppConfig.from_env())
