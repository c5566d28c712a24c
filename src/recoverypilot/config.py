"""Summary: Application configuration for RecoveryPilot.

Importance: Centralizes environment, .env, and config defaults for consistent behavior.
Alternatives: Use a dedicated settings library like Pydantic Settings.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from recoverypilot.category_templates import default_categories, parse_categories
from recoverypilot.models import ClassificationCategory


@dataclass(frozen=True)
class AppConfig:
    """Summary: Holds configuration values for the provider, mailbox, and storage.

    Importance: Every component receives its settings from this object instead of module globals.
    Alternatives: Read environment variables directly inside each component.
    """

    db_path: str
    api_host: str
    api_port: int
    api_key: str
    log_level: str
    account_email: str
    provider_name: str
    microsoft_client_id: str
    microsoft_client_secret: str
    microsoft_authorize_url: str
    microsoft_token_url: str
    microsoft_graph_base_url: str
    oauth_redirect_uri: str
    oauth_scopes: list[str]
    oauth_state_ttl_minutes: int
    refresh_warning_minutes: int
    retry_delays_ms: list[int]
    message_count: int
    freshness_minutes: int
    sender_marker: str
    http_timeout_seconds: float
    categories: list[ClassificationCategory] = field(default_factory=default_categories)

    @staticmethod
    def from_env() -> "AppConfig":
        """Summary: Build configuration from defaults, .env, and environment.

        Importance: Keeps all variables defined in config defaults while allowing overrides.
        Alternatives: Parse only environment variables without a defaults file.
        """

        defaults = load_defaults(Path("config") / "defaults.json")
        load_dotenv(Path(".env"))
        raw_categories = defaults.get("categories")
        return AppConfig(
            db_path=os.getenv("RECOVERYPILOT_DB_PATH", defaults["db_path"]),
            api_host=os.getenv("RECOVERYPILOT_API_HOST", defaults["api_host"]),
            api_port=int(os.getenv("RECOVERYPILOT_API_PORT", defaults["api_port"])),
            api_key=os.getenv("RECOVERYPILOT_API_KEY", defaults["api_key"]),
            log_level=os.getenv("RECOVERYPILOT_LOG_LEVEL", defaults["log_level"]).upper(),
            account_email=os.getenv("RECOVERYPILOT_ACCOUNT_EMAIL", defaults["account_email"]),
            provider_name=os.getenv("RECOVERYPILOT_PROVIDER_NAME", defaults["provider_name"]),
            microsoft_client_id=os.getenv("MICROSOFT_CLIENT_ID", defaults["microsoft_client_id"]),
            microsoft_client_secret=os.getenv(
                "MICROSOFT_CLIENT_SECRET", defaults["microsoft_client_secret"]
            ),
            microsoft_authorize_url=os.getenv(
                "MICROSOFT_AUTHORIZE_URL", defaults["microsoft_authorize_url"]
            ),
            microsoft_token_url=os.getenv("MICROSOFT_TOKEN_URL", defaults["microsoft_token_url"]),
            microsoft_graph_base_url=os.getenv(
                "MICROSOFT_GRAPH_BASE_URL", defaults["microsoft_graph_base_url"]
            ),
            oauth_redirect_uri=os.getenv(
                "RECOVERYPILOT_OAUTH_REDIRECT_URI", defaults["oauth_redirect_uri"]
            ),
            oauth_scopes=_split_list(
                os.getenv("RECOVERYPILOT_OAUTH_SCOPES", defaults["oauth_scopes"])
            ),
            oauth_state_ttl_minutes=int(
                os.getenv("RECOVERYPILOT_OAUTH_STATE_TTL_MINUTES", defaults["oauth_state_ttl_minutes"])
            ),
            refresh_warning_minutes=int(
                os.getenv("RECOVERYPILOT_REFRESH_WARNING_MINUTES", defaults["refresh_warning_minutes"])
            ),
            retry_delays_ms=[
                int(item)
                for item in _split_list(
                    os.getenv("RECOVERYPILOT_RETRY_DELAYS_MS", defaults["retry_delays_ms"])
                )
            ],
            message_count=int(os.getenv("RECOVERYPILOT_MESSAGE_COUNT", defaults["message_count"])),
            freshness_minutes=int(
                os.getenv("RECOVERYPILOT_FRESHNESS_MINUTES", defaults["freshness_minutes"])
            ),
            sender_marker=os.getenv("RECOVERYPILOT_SENDER_MARKER", defaults["sender_marker"]),
            http_timeout_seconds=float(
                os.getenv("RECOVERYPILOT_HTTP_TIMEOUT_SECONDS", defaults["http_timeout_seconds"])
            ),
            categories=parse_categories(raw_categories) if raw_categories else default_categories(),
        )


def load_defaults(path: Path) -> dict[str, Any]:
    """Summary: Load configuration defaults from JSON.

    Importance: Ensures all variables exist in a single config file.
    Alternatives: Inline defaults in the AppConfig initializer.
    """

    if not path.exists():
        raise FileNotFoundError(f"Defaults file not found: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def load_dotenv(path: Path) -> None:
    """Summary: Load key-value pairs from a .env file into the environment.

    Importance: Keeps client secrets out of code while supporting local workflows.
    Alternatives: Use python-dotenv or OS-specific secret stores.
    """

    if not path.exists():
        return
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]
