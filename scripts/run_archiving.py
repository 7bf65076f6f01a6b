"""
Invoice Archiving Maintenance.

============================================================
USAGE
============================================================
python -m scripts.run_archiving create-partitions --year 2025
python -m scripts.run_archiving info
python -m scripts.run_archiving archive --archive-after-months 6
python -m scripts.run_archiving stats
python -m scripts.run_archiving schedule --interval-hours 720

The database URL is read from DATABASE_URL_SYNC / DATABASE_URL
(a .env file is honoured).

EXIT CODES:
- 0: Success
- 1: The archiving operation failed
- 2: Invalid arguments or policy

============================================================
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, Optional

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("run_archiving")


EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2


def policy_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Policy fields given on the command line; unset flags are omitted."""
    overrides = {
        "archive_after_months": args.archive_after_months,
        "compress_after_months": args.compress_after_months,
        "delete_after_years": args.delete_after_years,
        "batch_size": args.batch_size,
    }
    if args.no_compression:
        overrides["enable_compression"] = False
    return {k: v for k, v in overrides.items() if v is not None}


def build_service(policy: Optional[Dict[str, Any]] = None):
    from invoice_archiving import InvoiceArchivingService, PostgresPartitionStore
    from storage.database import get_engine

    return InvoiceArchivingService(PostgresPartitionStore(get_engine()), policy=policy)


def print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


# ============================================================
# COMMANDS
# ============================================================

def cmd_create_partitions(service, args: argparse.Namespace) -> None:
    service.create_partitions(args.year)
    logger.info(f"Partitions ensured for {args.year}")


def cmd_info(service, args: argparse.Namespace) -> None:
    partitions = sorted(service.get_partition_info(), key=lambda p: (p.year, p.quarter))
    print_json([p.to_dict() for p in partitions])


def cmd_archive(service, args: argparse.Namespace) -> None:
    result = service.archive_old_invoices()
    print_json(result.to_dict())


def cmd_stats(service, args: argparse.Namespace) -> None:
    print_json(service.get_archiving_stats().to_dict())


def cmd_schedule(service, args: argparse.Namespace) -> None:
    from invoice_archiving import ArchivingScheduler

    scheduler = ArchivingScheduler(service, interval_seconds=args.interval_hours * 3600)

    async def run() -> None:
        await scheduler.start()
        try:
            while scheduler.is_running:
                await asyncio.sleep(3600)
        finally:
            await scheduler.stop()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Scheduler interrupted")


COMMANDS = {
    "create-partitions": cmd_create_partitions,
    "info": cmd_info,
    "archive": cmd_archive,
    "stats": cmd_stats,
    "schedule": cmd_schedule,
}


# ============================================================
# ENTRY POINT
# ============================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Invoice partition maintenance",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--archive-after-months", type=int)
    parser.add_argument("--compress-after-months", type=int)
    parser.add_argument("--delete-after-years", type=int)
    parser.add_argument("--batch-size", type=int)
    parser.add_argument("--no-compression", action="store_true")

    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-partitions", help="Create the quarterly partitions for a year")
    create.add_argument("--year", type=int, required=True)

    sub.add_parser("info", help="List partitions with their status")
    sub.add_parser("archive", help="Apply lifecycle transitions")
    sub.add_parser("stats", help="Aggregate archiving statistics")

    schedule = sub.add_parser("schedule", help="Run maintenance periodically")
    schedule.add_argument("--interval-hours", type=float, default=30 * 24)

    return parser


def main(argv=None) -> int:
    from core.exceptions import ConfigurationError, InternalError

    args = build_parser().parse_args(argv)

    try:
        service = build_service(policy_overrides(args))
        COMMANDS[args.command](service, args)
    except ConfigurationError as e:
        logger.error(f"Invalid policy: {e.message}")
        return EXIT_INVALID
    except InternalError as e:
        logger.error(f"{e.message}: {e.cause}")
        return EXIT_FAILED

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
