"""
Admin CLI for inspecting and persisting payment messages.

Usage:
    python -m message_persistence.cli.admin_cli show-message --id <record_id>
    python -m message_persistence.cli.admin_cli show-cdm (--id <record_id> | --message-id <message_id>)
    python -m message_persistence.cli.admin_cli persist --file <path> [--cdm] [options]
    python -m message_persistence.cli.admin_cli persist-batch --file <path> [--cdm] [--mode per_item|bulk]

Database settings come from --config (YAML) and the DB_* environment
variables; the --db-* options override both.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from message_persistence.batch import BatchCoordinator, BatchFailureError, BulkMessageWriter
from message_persistence.config import PersistenceSettings, load_settings
from message_persistence.core.models import MessageMetadata
from message_persistence.observability.logger import configure_logging, get_logger
from message_persistence.observability.metrics import start_metrics_server
from message_persistence.utils.validation import validate_file_path
from message_persistence.warehouse.cdm_store import CdmStore
from message_persistence.warehouse.connection import DatabaseConnectionPool
from message_persistence.warehouse.error_log import MessageErrorLog
from message_persistence.warehouse.message_store import MessageStore

logger = get_logger(__name__)


def load_cli_settings(args) -> PersistenceSettings:
    """Settings from --config and the environment, with --db-* overrides applied."""
    settings = load_settings(args.config)
    overrides = {
        "host": args.db_host,
        "port": args.db_port,
        "name": args.db_name,
        "user": args.db_user,
        "password": args.db_password,
    }
    overrides = {key: value for key, value in overrides.items() if value is not None}
    if overrides:
        database = settings.database.model_copy(update=overrides)
        settings = settings.model_copy(update={"database": database})
    return settings


def read_file(file_path: str) -> str:
    path = Path(validate_file_path(file_path))
    if not path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")
    return path.read_text(encoding="utf-8")


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def show_message_command(args, pool: DatabaseConnectionPool):
    """
    Print a stored received message.

    Args:
        args: Command line arguments
        pool: Open connection pool
    """
    message = MessageStore(pool).get(args.id)
    if message is None:
        print(f"\nNo message found with ID: {args.id}")
        sys.exit(1)
    print_json(message.model_dump(mode="json"))


def show_cdm_command(args, pool: DatabaseConnectionPool):
    """
    Print a CDM message, by id or as the latest for a message id.

    Args:
        args: Command line arguments
        pool: Open connection pool
    """
    store = CdmStore(pool)
    if args.id is not None:
        record = store.get(args.id)
        lookup = f"ID: {args.id}"
    else:
        record = store.latest_for_message(args.message_id)
        lookup = f"message ID: {args.message_id}"

    if record is None:
        print(f"\nNo CDM message found with {lookup}")
        sys.exit(1)
    print_json(record.model_dump(mode="json"))


def persist_command(args, pool: DatabaseConnectionPool):
    """
    Persist one payload read from a file and print the result headers.

    Args:
        args: Command line arguments
        pool: Open connection pool
    """
    payload = read_file(args.file)
    metadata = MessageMetadata(
        message_id=args.message_id,
        message_type=args.message_type,
        source=args.source or "FILE",
        file_name=Path(args.file).name,
    )

    if args.cdm:
        result = CdmStore(pool).save(
            payload, metadata, existing_id=args.existing_id, is_update=args.update
        )
    else:
        result = MessageStore(pool).save(
            payload, metadata, existing_id=args.existing_id, is_update=args.update
        )

    print_json(result.as_headers())
    if not result.succeeded:
        sys.exit(1)


def persist_batch_command(args, settings: PersistenceSettings, pool: DatabaseConnectionPool):
    """
    Persist a JSON array of items or envelopes and print the batch outcome.

    Args:
        args: Command line arguments
        settings: Loaded settings (default batch mode)
        pool: Open connection pool
    """
    items = json.loads(read_file(args.file))
    if not isinstance(items, list):
        print("\nError: batch file must contain a JSON array")
        sys.exit(1)

    mode = args.mode or settings.batch_mode
    if mode == "bulk" and args.cdm:
        print("\nError: bulk mode only supports received messages")
        sys.exit(1)

    try:
        if mode == "bulk":
            outcome = BulkMessageWriter(MessageStore(pool)).write(items)
        else:
            store = CdmStore(pool) if args.cdm else MessageStore(pool)
            outcome = BatchCoordinator(store, error_log=MessageErrorLog(pool)).process(items)
    except BatchFailureError as e:
        print_json(e.outcome.model_dump(mode="json"))
        sys.exit(1)

    print_json(outcome.model_dump(mode="json"))


def main(argv: list[str] | None = None):
    """Main entry point for admin CLI."""
    parser = argparse.ArgumentParser(
        description="Admin CLI for payment message persistence",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        "--config",
        help="Path to YAML settings file (optional)"
    )

    # Database overrides; default to settings
    parser.add_argument("--db-host", help="Database host")
    parser.add_argument("--db-port", type=int, help="Database port")
    parser.add_argument("--db-name", help="Database name")
    parser.add_argument("--db-user", help="Database user")
    parser.add_argument("--db-password", help="Database password")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # show-message command
    show_message_parser = subparsers.add_parser(
        "show-message",
        help="Show a stored received message"
    )
    show_message_parser.add_argument(
        "--id",
        type=int,
        required=True,
        help="Record ID of the message"
    )

    # show-cdm command
    show_cdm_parser = subparsers.add_parser(
        "show-cdm",
        help="Show a stored CDM message"
    )
    lookup = show_cdm_parser.add_mutually_exclusive_group(required=True)
    lookup.add_argument(
        "--id",
        type=int,
        help="Record ID of the CDM message"
    )
    lookup.add_argument(
        "--message-id",
        help="Business message ID (shows the most recent record)"
    )

    # persist command
    persist_parser = subparsers.add_parser(
        "persist",
        help="Persist a single payload from a file"
    )
    persist_parser.add_argument(
        "--file",
        required=True,
        help="Path to the payload file"
    )
    persist_parser.add_argument(
        "--cdm",
        action="store_true",
        help="Persist as a CDM message instead of a received message"
    )
    persist_parser.add_argument(
        "--existing-id",
        type=int,
        help="Record ID to update (falls back to create if not found)"
    )
    persist_parser.add_argument(
        "--update",
        action="store_true",
        help="Request an update without an ID (CDM resolves by message ID)"
    )
    persist_parser.add_argument(
        "--message-id",
        help="Business message ID (generated if omitted)"
    )
    persist_parser.add_argument(
        "--message-type",
        help="Payment message type, e.g. pacs.008"
    )
    persist_parser.add_argument(
        "--source",
        help="Source channel hint: MQ, HTTP_API, FILE (default: FILE)"
    )

    # persist-batch command
    batch_parser = subparsers.add_parser(
        "persist-batch",
        help="Persist a JSON array of messages"
    )
    batch_parser.add_argument(
        "--file",
        required=True,
        help="Path to a JSON file containing an array of items"
    )
    batch_parser.add_argument(
        "--cdm",
        action="store_true",
        help="Persist as CDM messages (per_item mode only)"
    )
    batch_parser.add_argument(
        "--mode",
        choices=["per_item", "bulk"],
        help="Batch mode (default: from settings)"
    )

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        settings = load_cli_settings(args)
        pool = DatabaseConnectionPool.from_settings(settings)
    except (OSError, ValueError) as e:
        print(f"\nError: {e}")
        sys.exit(1)

    configure_logging(settings.logging.level, settings.logging.format)
    if settings.metrics_port:
        start_metrics_server(settings.metrics_port)

    try:
        pool.open()

        if args.command == "show-message":
            show_message_command(args, pool)
        elif args.command == "show-cdm":
            show_cdm_command(args, pool)
        elif args.command == "persist":
            persist_command(args, pool)
        elif args.command == "persist-batch":
            persist_batch_command(args, settings, pool)
        else:
            parser.print_help()
            sys.exit(1)

    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(130)

    except Exception as e:
        logger.error(f"Error running {args.command}: {e}", exc_info=True)
        print(f"\nError: {e}")
        sys.exit(1)

    finally:
        pool.close()


if __name__ == "__main__":
    main()
