"""
CardScan — Command Line Entrypoint

Configures structlog and runs one of:

    python -m src.main scan front.jpg [--back back.jpg] [--price]
    python -m src.main search-string reply.json
    python -m src.main reset-usage
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.config import settings
from src.exceptions import ScannerConfigError
from src.pipeline.ebay import eBayClient
from src.pipeline.usage import reset_monthly_usage
from src.scanner.claude import CardScanner
from src.scanner.images import encode_image_file
from src.scanner.normalize import parse_card_response
from src.scanner.search_string import build_search_string


# ---------------------------------------------------------------------------
# Structlog Configuration
# ---------------------------------------------------------------------------


def _configure_logging(log_level: str = "INFO") -> None:
    """
    Set up structured logging with JSON output.

    Logs go to stderr so command output on stdout stays machine-readable.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    level = getattr(logging, log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Database Setup
# ---------------------------------------------------------------------------


async def create_db_engine() -> tuple[Any, async_sessionmaker[AsyncSession]]:
    """
    Create SQLAlchemy async engine and session factory from DATABASE_URL.

    Returns:
        (engine, session_factory) tuple.
    """
    engine = create_async_engine(settings.DATABASE_URL, echo=False, pool_pre_ping=True)
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return engine, session_factory


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def run_scan(front: Path, back: Path | None, with_price: bool) -> int:
    """Scan image files and print the outcome (and price) as JSON."""
    logger = structlog.get_logger(__name__)

    try:
        scanner = CardScanner()
    except ScannerConfigError as e:
        logger.error("scan_aborted", error=e.message)
        return 2

    outcome = await scanner.scan_card(
        encode_image_file(front),
        encode_image_file(back) if back else None,
    )
    print(outcome.model_dump_json(indent=2))

    if with_price and outcome.success:
        async with eBayClient() as ebay:
            estimate = await ebay.get_price_estimate(outcome.card)
        if estimate is None:
            print("No priced eBay listings found.", file=sys.stderr)
        else:
            print(estimate.model_dump_json(indent=2))

    return 0 if outcome.success else 1


def run_search_string(reply_path: Path) -> int:
    """Normalize a saved vision reply and print its eBay search string."""
    card = parse_card_response(reply_path.read_text(encoding="utf-8"))
    if card is None:
        print(f"Could not parse card data from {reply_path}", file=sys.stderr)
        return 1
    print(card.ebay_search_string or build_search_string(card))
    return 0


async def run_reset_usage() -> int:
    """Zero every user's monthly scan counter."""
    engine, session_factory = await create_db_engine()
    try:
        async with session_factory() as session:
            users_reset = await reset_monthly_usage(session)
    finally:
        await engine.dispose()
    print(f"Reset scan usage for {users_reset} users.")
    return 0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="cardscan",
        description="Identify sports cards from photos and price them on eBay.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan = subparsers.add_parser("scan", help="Scan a card from image files.")
    scan.add_argument("front", type=Path, help="Front of the card (png/jpg/webp).")
    scan.add_argument("--back", type=Path, default=None, help="Optional back of the card.")
    scan.add_argument("--price", action="store_true", help="Also look up eBay prices.")

    search = subparsers.add_parser(
        "search-string", help="Print the eBay search string for a saved vision reply."
    )
    search.add_argument("reply", type=Path, help="File holding the raw model reply.")

    subparsers.add_parser("reset-usage", help="Monthly reset of every scan counter.")

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    _configure_logging(log_level=settings.LOG_LEVEL)

    if args.command == "scan":
        return asyncio.run(run_scan(args.front, args.back, args.price))
    if args.command == "search-string":
        return run_search_string(args.reply)
    return asyncio.run(run_reset_usage())


# ---------------------------------------------------------------------------
# CLI Entry
# ---------------------------------------------------------------------------


if __name__ == "__main__":
    sys.exit(main())
