from __future__ import annotations

import argparse
import logging
import time

from sqlalchemy.exc import SQLAlchemyError

from kudos.config import Settings
from kudos.db import init_db
from kudos.logger import setup_logging
from kudos.services.weekly_reset import run_weekly_reset

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Restore weekly point balances.")
    parser.add_argument("--dry-run", action="store_true", help="Count due users only")
    parser.add_argument(
        "--force", action="store_true", help="Reset every user regardless of last reset"
    )
    parser.add_argument("--loop", action="store_true", help="Keep running")
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between runs with --loop (default WEEKLY_RESET_INTERVAL_S)",
    )
    args = parser.parse_args(argv)

    setup_logging()
    settings = Settings()
    init_db(settings)

    interval = args.interval if args.interval is not None else settings.weekly_reset_interval_s
    if args.loop and interval <= 0:
        parser.error("--loop needs a positive --interval")

    while True:
        try:
            report = run_weekly_reset(force=args.force, dry_run=args.dry_run)
        except SQLAlchemyError:
            # due users stay due, the next run picks them up
            logger.exception("weekly reset run failed")
            if not args.loop:
                return 1
        else:
            print(
                f"checked={report.checked} reset={report.reset} failed={report.failed}"
            )
            if not args.loop:
                return 1 if report.failed else 0
        time.sleep(interval)


if __name__ == "__main__":
    raise SystemExit(main())
