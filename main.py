#!/usr/bin/env python
"""tripseries command-line entry point.

Opens the trip store, tops up active series, then runs one command.

Usage:
    python main.py [--db trips.db] create --at 2024-03-01T09:00 --pattern daily --until 2024-03-03 [--key BA123]
    python main.py one-time --at 2024-03-01T09:00 [--key BA123]
    python main.py extend [--days 14]
    python main.py edit TRIP_ID --scope all --set driver_id=D7
    python main.py cancel TRIP_ID --scope thisAndFuture [--yes]
    python main.py delete TRIP_ID --scope single
    python main.py report
"""

import argparse
import asyncio
import sys
from datetime import date, datetime, timedelta
from pathlib import Path
from uuid import UUID

from tripseries.app import ApplicationContext, configure_logging
from tripseries.domain.errors import SeriesError
from tripseries.domain.models import BlastRadius, Occurrence, SeriesSeed
from tripseries.services.expander import coerce_pattern

SCOPES = ("single", "thisAndFuture", "all")


def confirm_in_terminal(radius: BlastRadius) -> bool:
    """Ask the user to confirm a cascading delete."""
    print(radius.describe())
    if not radius.occurrence_ids:
        return True
    response = input("Continue? (yes/no): ")
    return response.strip().lower() == "yes"


def parse_assignment(text: str) -> tuple[str, object]:
    """Parse ``name=value`` from --set; an empty value means None."""
    name, sep, value = text.partition("=")
    if not sep:
        raise argparse.ArgumentTypeError(f"Expected name=value, got {text!r}")
    if value == "":
        return name, None
    if name == "passenger_count":
        return name, int(value)
    if name == "is_recurring":
        return name, value.lower() in ("1", "true", "yes")
    if name == "scheduled_at":
        return name, datetime.fromisoformat(value)
    if name == "recurrence_end_date":
        return name, date.fromisoformat(value)
    return name, value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tripseries", description="Recurring trip scheduler")
    parser.add_argument("--db", type=Path, help="Path to the trip database")
    parser.add_argument("--no-extend", action="store_true", help="Skip startup extension")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_payload(p: argparse.ArgumentParser) -> None:
        p.add_argument("--at", type=datetime.fromisoformat, required=True)
        p.add_argument("--key", help="Flight or job number")
        p.add_argument("--pickup")
        p.add_argument("--dropoff")
        p.add_argument("--passengers", type=int, default=1)
        p.add_argument("--driver")
        p.add_argument("--notes")

    create = sub.add_parser("create", help="Create a recurring series")
    add_payload(create)
    create.add_argument("--pattern", required=True, choices=("daily", "weekly", "monthly"))
    create.add_argument("--until", type=date.fromisoformat, required=True)

    one_time = sub.add_parser("one-time", help="Create a standalone trip")
    add_payload(one_time)

    extend = sub.add_parser("extend", help="Extend active series over the lookahead window")
    extend.add_argument("--days", type=int)

    edit = sub.add_parser("edit", help="Edit a trip and, by scope, its series")
    edit.add_argument("trip_id", type=UUID)
    edit.add_argument("--scope", choices=SCOPES, default="single")
    edit.add_argument("--set", dest="fields", type=parse_assignment, action="append", default=[])
    edit.add_argument("--yes", action="store_true", help="Skip confirmation prompts")

    cancel = sub.add_parser("cancel", help="Cancel recurrence for a series")
    cancel.add_argument("trip_id", type=UUID)
    cancel.add_argument("--scope", choices=SCOPES[1:], default="all")
    cancel.add_argument("--yes", action="store_true", help="Skip confirmation prompt")

    delete = sub.add_parser("delete", help="Delete a trip and, by scope, its series")
    delete.add_argument("trip_id", type=UUID)
    delete.add_argument("--scope", choices=SCOPES, default="single")

    sub.add_parser("report", help="Print the series health report")
    return parser


async def run_command(ctx: ApplicationContext, args: argparse.Namespace) -> int:
    """Run one parsed command against an initialized context."""
    if args.command == "create":
        seed = SeriesSeed(
            scheduled_at=args.at,
            pattern=coerce_pattern(args.pattern),
            end_date=args.until,
            domain_key=args.key,
            pickup_location=args.pickup,
            dropoff_location=args.dropoff,
            passenger_count=args.passengers,
            driver_id=args.driver,
            notes=args.notes,
        )
        created = await ctx.generator.create_series(seed)
        print(f"Created series {created.parent_id} with {created.child_count} trips "
              f"({created.failed} failed)")

    elif args.command == "one-time":
        trip = await ctx.generator.create_one_time(Occurrence.create(
            scheduled_at=args.at,
            domain_key=args.key,
            pickup_location=args.pickup,
            dropoff_location=args.dropoff,
            passenger_count=args.passengers,
            driver_id=args.driver,
            notes=args.notes,
        ))
        print(f"Created trip {trip.id}")

    elif args.command == "extend":
        lookahead = timedelta(days=args.days) if args.days else None
        results = await ctx.extender.extend_all(lookahead)
        for parent_id, result in results.items():
            print(f"{parent_id}: {result.created} created, {result.failed} failed")

    elif args.command == "edit":
        confirm = None if args.yes else confirm_in_terminal
        result = await ctx.mutator.edit_scoped(
            args.trip_id, args.scope, dict(args.fields), confirm=confirm
        )
        declined = [r for r in (result.cancel, result.trimmed) if r is not None and not r.confirmed]
        if declined:
            print("Cancelled.")
            return 1
        print(f"{result.updated} updated, {result.failed} failed")
        if result.cancel is not None:
            print(f"Recurrence turned off: {result.cancel.deleted} trips deleted")
        if result.trimmed is not None:
            print(f"Series shortened: {result.trimmed.deleted} trips deleted")

    elif args.command == "cancel":
        confirm = None if args.yes else confirm_in_terminal
        result = await ctx.mutator.cancel_scoped(args.trip_id, args.scope, confirm=confirm)
        if not result.confirmed:
            print("Cancelled.")
            return 1
        print(f"{result.deleted} deleted, {result.failed} failed")

    elif args.command == "delete":
        result = await ctx.mutator.delete_scoped(args.trip_id, args.scope)
        print(f"{result.deleted} deleted, {result.failed} failed")

    elif args.command == "report":
        report = await ctx.health.report()
        for line in report.summary_lines():
            print(line)
        return 0 if report.is_healthy else 2

    return 0


async def run(args: argparse.Namespace) -> int:
    ctx = ApplicationContext(db_path=args.db)
    configure_logging(ctx.settings.logging.level)
    await ctx.initialize()
    try:
        if not args.no_extend and args.command != "extend":
            await ctx.on_startup()
        return await run_command(ctx, args)
    except SeriesError as e:
        print(f"Error: {e}", file=sys.stderr)
        if e.details:
            print(e.details, file=sys.stderr)
        return 1
    finally:
        await ctx.close()


def main() -> int:
    args = build_parser().parse_args()
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
