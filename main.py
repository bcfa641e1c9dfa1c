from typing import Optional, Sequence
import argparse
import asyncio
import logging
import sys

import structlog

from codec import open_transaction_rows, write_accounts
from config import Settings, get_settings
from errors import InvalidArgumentsError, PaymentsError
from pipeline import PaymentsPipeline
from repositories import create_account_repository, create_ledger_repository
from services import get_transaction_service

logger = structlog.get_logger()


def configure_logging(settings: Settings) -> None:
    """Configure structured logging to stderr; stdout carries the CSV output."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=settings.log_level.upper(),
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.log_format == "json"
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="payments-engine",
        description="Apply a CSV stream of transactions to client accounts and print the final balances."
    )
    parser.add_argument(
        "input",
        help="Path to the transactions CSV (type, client, tx, amount)."
    )
    parser.add_argument(
        "--queue-capacity",
        type=int,
        default=None,
        help="Bound of the queue between the parser and the processor."
    )
    parser.add_argument(
        "--ledger-db",
        default=None,
        help="Keep the transaction ledger in this SQLite file instead of memory."
    )
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace, settings: Settings) -> Settings:
    overrides = {}

    if args.queue_capacity is not None:
        if args.queue_capacity < 1:
            raise InvalidArgumentsError(f"--queue-capacity must be positive, got {args.queue_capacity}")
        overrides["queue_capacity"] = args.queue_capacity

    if args.ledger_db is not None:
        overrides["ledger_backend"] = "sqlite"
        overrides["ledger_path"] = args.ledger_db

    return settings.model_copy(update=overrides)


async def run(settings: Settings, input_path: str):
    logger.info("Starting run", app=settings.app_name, version=settings.app_version, input=input_path)

    account_repo = None
    ledger_repo = None
    try:
        account_repo = create_account_repository(settings)
        ledger_repo = create_ledger_repository(settings)
        service = get_transaction_service(account_repo, ledger_repo)
        pipeline = PaymentsPipeline(service, account_repo, ledger_repo, settings.queue_capacity)

        with open_transaction_rows(input_path) as rows:
            return await pipeline.run(rows)
    finally:
        if ledger_repo is not None:
            await ledger_repo.close()
        if account_repo is not None:
            await account_repo.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(settings)

    try:
        settings = build_settings(args, settings)
        accounts = asyncio.run(run(settings, args.input))
    except PaymentsError as e:
        logger.error("Run aborted", error=str(e), error_type=type(e).__name__)
        return 1

    write_accounts(accounts, sys.stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main())
