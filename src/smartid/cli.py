"""SmartID Command Line Interface.

Provides operational tools for:
- The daily absence sweep, for cron or another external scheduler
- Schema creation

Usage:
    python -m smartid.cli mark-absent [--date 2024-03-15] [--institution-id X] [--dry-run]
    python -m smartid.cli init-db
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from typing import Any, Callable
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from smartid.config import get_settings
from smartid.database import create_schema, dispose_db, get_session, init_db
from smartid.errors import SmartIDError
from smartid.logging_setup import configure_logging
from smartid.services.absence_service import AbsenceService

logger = logging.getLogger(__name__)


def parse_date(s: str) -> date:
    """Parse an ISO date (YYYY-MM-DD)."""
    try:
        return date.fromisoformat(s)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date: {s!r} (expected YYYY-MM-DD)") from None


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    try:
        return UUID(s)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid UUID: {s!r}") from None


class SmartIDCli:
    """SmartID Command Line Interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m smartid.cli",
            description="SmartID operational tools",
        )
        parser.add_argument(
            "--database-url",
            type=str,
            help="Database URL (default: DATABASE_URL from the environment)",
        )
        parser.add_argument(
            "--log-level",
            type=str,
            help="Log level (default: LOG_LEVEL from the environment)",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        # mark-absent command
        mark_absent = subparsers.add_parser(
            "mark-absent",
            help="Mark users without an attendance record as absent",
        )
        mark_absent.add_argument(
            "--date",
            type=parse_date,
            help="Date to sweep (default: today in the default timezone)",
        )
        mark_absent.add_argument(
            "--institution-id",
            type=parse_uuid,
            help="Only sweep this institution",
        )
        mark_absent.add_argument(
            "--dry-run",
            action="store_true",
            help="Report who would be marked absent without writing",
        )

        # init-db command
        subparsers.add_parser(
            "init-db",
            help="Create database tables from the ORM models",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        configure_logging(parsed.log_level or get_settings().log_level)

        # Dispatch to command handler
        handlers: dict[str, Callable[..., int]] = {
            "mark-absent": self._cmd_mark_absent,
            "init-db": self._cmd_init_db,
        }

        handler = handlers.get(parsed.command)
        if handler:
            return handler(parsed)

        print(f"Unknown command: {parsed.command}", file=sys.stderr)
        return 1

    def _cmd_mark_absent(self, args: argparse.Namespace) -> int:
        """Run the absence sweep and print the result as JSON."""
        try:
            output = asyncio.run(
                self._mark_absent(args.database_url, args.date, args.institution_id, args.dry_run)
            )
        except (SmartIDError, SQLAlchemyError) as e:
            logger.error("Absence marking failed: %s", e)
            print(json.dumps({"success": False, "error": str(e)}), file=sys.stderr)
            return 1

        print(json.dumps(output, indent=2))
        return 0

    async def _mark_absent(
        self,
        database_url: str | None,
        target_date: date | None,
        institution_id: UUID | None,
        dry_run: bool,
    ) -> dict[str, Any]:
        init_db(database_url)
        try:
            async with get_session() as session:
                result = await AbsenceService(session).mark_absences(
                    target_date=target_date,
                    institution_id=institution_id,
                    dry_run=dry_run,
                )
        finally:
            await dispose_db()

        return {
            "success": True,
            "stats": result.to_stats(),
            "results": [outcome.to_dict() for outcome in result.results],
        }

    def _cmd_init_db(self, args: argparse.Namespace) -> int:
        """Create all tables."""
        try:
            asyncio.run(self._init_db(args.database_url))
        except SQLAlchemyError as e:
            logger.error("Schema creation failed: %s", e)
            return 1
        print("Schema created.")
        return 0

    async def _init_db(self, database_url: str | None) -> None:
        engine, _ = init_db(database_url)
        try:
            await create_schema(engine)
        finally:
            await dispose_db()


def main() -> int:
    """CLI entry point."""
    cli = SmartIDCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
