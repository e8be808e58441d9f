"""Absence engine command line interface.

Provides operational tools for:
- Schema creation
- Seeding the default milestone catalog
- Previewing a milestone timeline
- Bradford Factor lookups
- Generating a field encryption key

Usage:
    absence-engine init-db
    absence-engine seed-milestones
    absence-engine timeline --start-date 2024-01-01 [--today 2024-01-08]
    absence-engine bradford --employee-id X
    absence-engine generate-key
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import date
from typing import Callable
from uuid import UUID

from absence_engine.config import configure_logging
from absence_engine.database import dispose_db, get_session, init_db
from absence_engine.models import Base
from absence_engine.services.bradford import BradfordFactorService
from absence_engine.services.encryption import FieldCodec
from absence_engine.services.milestone_catalog import DEFAULT_MILESTONES, compute_timeline
from absence_engine.services.milestone_service import MilestoneService


def parse_date(s: str) -> date:
    """Parse ISO date string."""
    return date.fromisoformat(s)


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


class AbsenceEngineCli:
    """Absence engine Command Line Interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="absence-engine",
            description="Absence engine operational tools",
        )
        parser.add_argument(
            "--log-level",
            type=str,
            default=None,
            help="Override LOG_LEVEL for this run",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        subparsers.add_parser("init-db", help="Create all tables")
        subparsers.add_parser(
            "seed-milestones",
            help="Insert any missing system default milestones",
        )

        timeline = subparsers.add_parser(
            "timeline",
            help="Print the default milestone timeline for a start date",
        )
        timeline.add_argument(
            "--start-date",
            type=parse_date,
            required=True,
            help="Absence start date (YYYY-MM-DD)",
        )
        timeline.add_argument(
            "--today",
            type=parse_date,
            help="Reference date for status (default: today)",
        )
        timeline.add_argument(
            "--format",
            choices=["text", "json"],
            default="text",
            help="Output format (default: text)",
        )

        bradford = subparsers.add_parser(
            "bradford",
            help="Calculate an employee's Bradford Factor",
        )
        bradford.add_argument(
            "--employee-id",
            type=parse_uuid,
            required=True,
            help="Employee to score",
        )
        bradford.add_argument(
            "--today",
            type=parse_date,
            help="Reference date (default: today)",
        )

        subparsers.add_parser(
            "generate-key",
            help="Print a new FIELD_ENCRYPTION_KEY value",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        configure_logging(parsed.log_level)

        handlers: dict[str, Callable[..., int]] = {
            "init-db": self._cmd_init_db,
            "seed-milestones": self._cmd_seed_milestones,
            "timeline": self._cmd_timeline,
            "bradford": self._cmd_bradford,
            "generate-key": self._cmd_generate_key,
        }

        handler = handlers.get(parsed.command)
        if handler:
            return handler(parsed)

        print(f"Unknown command: {parsed.command}", file=sys.stderr)
        return 1

    def _cmd_init_db(self, args: argparse.Namespace) -> int:
        """Create the schema on the configured database."""

        async def create() -> None:
            engine, _ = init_db()
            try:
                async with engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)
            finally:
                await dispose_db()

        asyncio.run(create())
        print("Schema created.")
        return 0

    def _cmd_seed_milestones(self, args: argparse.Namespace) -> int:
        async def seed() -> int:
            try:
                async with get_session() as session:
                    return await MilestoneService(session).seed_defaults()
            finally:
                await dispose_db()

        added = asyncio.run(seed())
        print(f"Seeded {added} default milestone(s).")
        return 0

    def _cmd_timeline(self, args: argparse.Namespace) -> int:
        """Project the built-in catalog onto a start date."""
        today = args.today or date.today()
        entries = compute_timeline(args.start_date, DEFAULT_MILESTONES, today)

        if args.format == "json":
            print(
                json.dumps(
                    [
                        {
                            "milestoneKey": e.milestone_key,
                            "label": e.label,
                            "dayOffset": e.day_offset,
                            "dueDate": e.due_date.isoformat(),
                            "status": e.status.value,
                        }
                        for e in entries
                    ],
                    indent=2,
                )
            )
            return 0

        print(f"Timeline for absence starting {args.start_date.isoformat()}")
        print("=" * 60)
        for e in entries:
            print(
                f"  {e.due_date.isoformat()}  {e.status.value:<10} "
                f"{e.milestone_key:<8} {e.label}"
            )
        return 0

    def _cmd_bradford(self, args: argparse.Namespace) -> int:
        async def calculate():
            try:
                async with get_session() as session:
                    return await BradfordFactorService(session).calculate(
                        args.employee_id, args.today
                    )
            finally:
                await dispose_db()

        result = asyncio.run(calculate())
        print(f"Bradford Factor for employee: {args.employee_id}")
        print(f"  Spells:     {result.spells}")
        print(f"  Days lost:  {result.total_days}")
        print(f"  Score:      {result.score}")
        print(f"  Risk level: {result.risk_level}")
        return 0

    def _cmd_generate_key(self, args: argparse.Namespace) -> int:
        print(FieldCodec.generate_key())
        return 0


def main() -> None:
    """Main entry point."""
    cli = AbsenceEngineCli()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
