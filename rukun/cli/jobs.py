"""Run scheduled jobs by hand, e.g. to catch up a run missed by Celery beat.

Usage:
    rukun-jobs generate-monthly [--period YYYY-MM] [--amount 50000]
    rukun-jobs generate-yearly --year 2025
    rukun-jobs remind-due [--period YYYY-MM]
"""

import argparse
import sys
from typing import Optional, Sequence

from dotenv import load_dotenv

from rukun.jobs.tasks import run_due_reminders, run_monthly_generation, run_yearly_generation
from rukun.services.errors import AppError
from rukun.services.logging import setup_cli_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rukun-jobs", description="Rukun scheduled jobs")
    commands = parser.add_subparsers(dest="command", required=True)

    monthly = commands.add_parser("generate-monthly", help="Generate regular iuran for a period")
    monthly.add_argument("--period", help="Period YYYY-MM (default: current month)")
    monthly.add_argument("--amount", help="Amount per iuran (default: DUES_AMOUNT)")

    yearly = commands.add_parser("generate-yearly", help="Generate twelve months of iuran")
    yearly.add_argument("--year", type=int, required=True, help="Year, e.g. 2025")

    remind = commands.add_parser("remind-due", help="Send jatuh tempo reminders")
    remind.add_argument("--period", help="Period YYYY-MM (default: current month)")

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    logger = setup_cli_logging()

    try:
        if args.command == "generate-monthly":
            summary = run_monthly_generation(args.period, args.amount)
        elif args.command == "generate-yearly":
            summary = run_yearly_generation(args.year)
        else:
            summary = run_due_reminders(args.period)
    except AppError as e:
        logger.error("%s failed: %s", args.command, e.message)
        return 1

    logger.info("%s finished: %s", args.command, summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
