"""Nolej bridge CLI - database setup, configuration and maintenance.

Usage:
    python -m nolej init-db [--revision REV]
    python -m nolej config get [KEYWORD]
    python -m nolej config set KEYWORD VALUE
    python -m nolej recover DOCUMENT_ID
    python -m nolej serve [--host HOST] [--port PORT]

Exit codes:
    0: Success
    1: Internal error
    2: Rejected (invalid value, document not waiting, webhook refused)
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any

from nolej.config import (
    CONFIG_KEY_API_KEY,
    CONFIG_KEY_INTERVAL,
    ConfigError,
    load_settings,
    mask_api_key,
)
from nolej.persistence.db import begin_conn, create_db_engine
from nolej.persistence.migrate import get_current_revision, run_upgrade
from nolej.persistence.repositories.config import ConfigRepository
from nolej.persistence.schema import ensure_schema
from nolej.services.container import build_services, resolve_settings
from nolej.services.workflow.service import WorkflowError

logger = logging.getLogger(__name__)

CONFIG_KEYWORDS = frozenset({CONFIG_KEY_API_KEY, CONFIG_KEY_INTERVAL})


def _output_json(data: dict[str, Any]) -> None:
    """Output JSON to stdout with deterministic ordering."""
    print(json.dumps(data, sort_keys=True, indent=2))


def _make_error(code: str, message: str) -> dict[str, Any]:
    return {"error": {"code": code, "message": message}}


def _validate_config_value(keyword: str, value: str) -> str:
    """Normalize a value for the config table.

    Raises:
        ConfigError: If the keyword is unknown or the value invalid.
    """
    if keyword not in CONFIG_KEYWORDS:
        raise ConfigError(f"Unknown keyword {keyword!r}")
    if keyword == CONFIG_KEY_INTERVAL:
        try:
            interval = int(value)
        except ValueError as e:
            raise ConfigError(f"interval must be an integer, got {value!r}") from e
        if interval < 1:
            raise ConfigError(f"interval must be >= 1, got {interval}")
        return str(interval)
    if not value.strip():
        raise ConfigError("api_key must not be empty")
    return value.strip()


def cmd_init_db(args: argparse.Namespace) -> int:
    settings = load_settings()
    engine = create_db_engine(settings.database_url)
    run_upgrade(engine, args.revision)
    _output_json({"revision": get_current_revision(engine)})
    return 0


def cmd_config_get(args: argparse.Namespace) -> int:
    settings = load_settings()
    engine = create_db_engine(settings.database_url)
    ensure_schema(engine)
    with begin_conn(engine) as conn:
        stored = ConfigRepository(conn).all()

    if args.keyword is not None and args.keyword not in CONFIG_KEYWORDS:
        _output_json(_make_error("UNKNOWN_KEYWORD", f"Unknown keyword {args.keyword!r}"))
        return 2

    values = {
        keyword: stored.get(keyword)
        for keyword in sorted(CONFIG_KEYWORDS)
        if args.keyword is None or keyword == args.keyword
    }
    if values.get(CONFIG_KEY_API_KEY):
        values[CONFIG_KEY_API_KEY] = mask_api_key(values[CONFIG_KEY_API_KEY])
    _output_json(values)
    return 0


def cmd_config_set(args: argparse.Namespace) -> int:
    try:
        value = _validate_config_value(args.keyword, args.value)
    except ConfigError as e:
        _output_json(_make_error("INVALID_VALUE", str(e)))
        return 2

    settings = load_settings()
    engine = create_db_engine(settings.database_url)
    ensure_schema(engine)
    with begin_conn(engine) as conn:
        ConfigRepository(conn).save(args.keyword, value)
    logger.info("Stored config keyword %s", args.keyword)

    shown = mask_api_key(value) if args.keyword == CONFIG_KEY_API_KEY else value
    _output_json({args.keyword: shown})
    return 0


def cmd_recover(args: argparse.Namespace) -> int:
    settings = load_settings()
    engine = create_db_engine(settings.database_url)
    ensure_schema(engine)
    services = build_services(resolve_settings(settings, engine), engine)

    try:
        outcome = services.workflow.recover_last_webhook(args.document_id)
    except WorkflowError as e:
        _output_json(_make_error(e.code, e.message))
        return 2

    _output_json(
        {
            "document_id": args.document_id,
            "http_status": outcome.http_status,
            "message": outcome.message,
            "status": int(outcome.status) if outcome.status is not None else None,
        }
    )
    return 0 if outcome.accepted else 2


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from nolej.api.main import create_app

    uvicorn.run(create_app(), host=args.host, port=args.port)
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="nolej",
        description="Nolej bridge - document workflow and H5P import",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    init_parser = subparsers.add_parser("init-db", help="Create or upgrade the database schema")
    init_parser.add_argument(
        "--revision",
        default="head",
        help="Target migration revision (default: head)",
    )

    # config command with get/set subcommands
    config_parser = subparsers.add_parser("config", help="Read or write stored configuration")
    config_subparsers = config_parser.add_subparsers(
        dest="config_command",
        help="Config subcommands",
    )
    get_parser = config_subparsers.add_parser("get", help="Show stored values")
    get_parser.add_argument("keyword", nargs="?", default=None, help="api_key or interval")
    set_parser = config_subparsers.add_parser("set", help="Store a value")
    set_parser.add_argument("keyword", help="api_key or interval")
    set_parser.add_argument("value", help="Value to store")

    recover_parser = subparsers.add_parser(
        "recover",
        help="Replay the last webhook Nolej sent for a pending document",
    )
    recover_parser.add_argument("document_id", help="Nolej document id")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Exit codes:
        0: Success
        1: Internal error (unexpected)
        2: Rejected request
    """
    try:
        parser = create_parser()
        args = parser.parse_args(argv)
        logging.basicConfig(
            level=getattr(logging, args.log_level),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        if args.command is None:
            parser.print_help()
            return 0

        if args.command == "init-db":
            return cmd_init_db(args)

        if args.command == "config":
            command = getattr(args, "config_command", None)
            if command == "get":
                return cmd_config_get(args)
            if command == "set":
                return cmd_config_set(args)
            parser.parse_args(["config", "--help"])
            return 0

        if args.command == "recover":
            return cmd_recover(args)

        if args.command == "serve":
            return cmd_serve(args)

        return 0

    except Exception as e:
        # unexpected errors are reported and mapped to exit code 1
        logger.exception("Command failed")
        _output_json(_make_error("INTERNAL_ERROR", str(e)))
        return 1


if __name__ == "__main__":
    sys.exit(main())
