"""Summary: Command-line interface for RecoveryPilot.

Importance: Runs the recovery workflow and operator tasks without the HTTP layer.
Alternatives: Use a CLI framework like Typer or Click.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from recoverypilot.app import AppServices, build_services
from recoverypilot.config import AppConfig
from recoverypilot.errors import RecoveryError, ValidationError
from recoverypilot.storage.rows import credentials_from_csv, credentials_to_csv


def build_parser() -> argparse.ArgumentParser:
    """Summary: Build the CLI argument parser.

    Importance: Defines supported commands for local operation.
    Alternatives: Expose every workflow only through the API.
    """

    parser = argparse.ArgumentParser(description="RecoveryPilot CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    authorize = subparsers.add_parser("authorize-url", help="Print the Microsoft OAuth URL")
    authorize.add_argument("--login-hint", type=str, default=None)

    introspect = subparsers.add_parser("introspect", help="Extract recovery codes and links")
    introspect.add_argument("--email", type=str, default=None)

    confirm = subparsers.add_parser("confirm", help="Confirm a recovery link")
    confirm.add_argument("link", type=str)

    export = subparsers.add_parser("export-tokens", help="Write stored credentials to CSV")
    export.add_argument("--output", type=str, default="credentials-export.csv")

    restore = subparsers.add_parser("import-tokens", help="Load credentials from a CSV export")
    restore.add_argument("--input", type=str, required=True)

    return parser


def run_cli(argv: list[str] | None = None) -> int:
    """Summary: Execute CLI commands based on arguments.

    Importance: Maps typed errors to a message, the suggestion, and a non-zero exit code.
    Alternatives: Let tracebacks reach the terminal.
    """

    parser = build_parser()
    args = parser.parse_args(argv)
    config = AppConfig.from_env()
    logging.basicConfig(level=config.log_level, format="%(levelname)s %(name)s: %(message)s")
    services = build_services(config)
    try:
        asyncio.run(_dispatch(args, services))
    except RecoveryError as exc:
        print(f"{exc.error_code}: {exc}", file=sys.stderr)
        print(exc.suggestion, file=sys.stderr)
        return 1
    return 0


async def _dispatch(args: argparse.Namespace, services: AppServices) -> None:
    try:
        if args.command == "authorize-url":
            print(services.authorization.start_authorization(args.login_hint))
            return

        if args.command == "introspect":
            results = await services.introspection.introspect(args.email)
            for name, result in results.items():
                if result is None:
                    print(f"{name}: -")
                elif result.expires_in_minutes is None:
                    print(f"{name}: {result.value} ({result.received_at.isoformat()})")
                else:
                    print(
                        f"{name}: {result.value} ({result.received_at.isoformat()}, "
                        f"expires in {result.expires_in_minutes} min)"
                    )
            return

        if args.command == "confirm":
            await services.confirmation.confirm_recovery(args.link)
            print("Recovery confirmed.")
            return

        if args.command == "export-tokens":
            records = services.store.list_oauth_tokens()
            Path(args.output).write_text(credentials_to_csv(records), encoding="utf-8")
            print(f"Exported {len(records)} credentials to {args.output}.")
            return

        if args.command == "import-tokens":
            try:
                records = credentials_from_csv(Path(args.input).read_text(encoding="utf-8"))
            except ValueError as exc:
                raise ValidationError(f"Cannot import {args.input}: {exc}") from exc
            for record in records:
                services.store.upsert_oauth_token(
                    provider=record.provider,
                    user_email=record.user_email,
                    refresh_token=record.refresh_token,
                    access_token=record.access_token,
                    expires_at=record.expires_at,
                    scope=record.scope,
                )
            print(f"Imported {len(records)} credentials from {args.input}.")
            return
    finally:
        await services.aclose()


if __name__ == "__main__":
    sys.exit(run_cli())
