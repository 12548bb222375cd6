import argparse
import json
import logging
from dataclasses import asdict

from kudos import db as db_module
from kudos.config import Settings
from kudos.logger import setup_logging
from kudos.services.audit import audit_ledger


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Check ledger consistency")
    parser.add_argument(
        "--json", action="store_true", help="print the report as JSON"
    )
    args = parser.parse_args(argv)

    setup_logging()
    db_module.init_db(Settings())
    with db_module.SessionLocal() as db:
        report = audit_ledger(db)

    if args.json:
        print(json.dumps(asdict(report)))
    else:
        for key, value in asdict(report).items():
            logging.info("%s=%s", key, value)
    return 0 if report.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
