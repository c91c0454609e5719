from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from pms.application.container import build_container
from pms.config import get_app_paths, get_log_level
from pms.domain.errors import AppError
from pms.logging_config import setup_logging

log = logging.getLogger(__name__)


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pms", description="Pharmacy management core.")
    parser.add_argument("--db", type=Path, default=None, help="Database file (defaults to the app data directory).")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create or migrate the database.")
    sub.add_parser("health", help="Run integrity and ledger checks.")

    summary = sub.add_parser("daily-summary", help="Total of non-voided bills for one day.")
    summary.add_argument("--date", default=None, help="YYYY-MM-DD, defaults to today.")

    imp = sub.add_parser("import-medicines", help="Import medicines from an .xlsx file.")
    imp.add_argument("path", type=Path)
    imp.add_argument("--user-id", type=int, default=None)
    return parser


def run(args: argparse.Namespace) -> int:
    paths = get_app_paths()
    setup_logging(paths.logs_dir, level=get_log_level())
    container = build_container(args.db or paths.db_path)

    if args.command == "init":
        print(f"Database ready: {container.repo.db_path}")
        return 0

    if args.command == "health":
        report = container.operations.run_health_check()
        print(f"integrity: {report.sqlite_integrity}")
        print(f"size: {report.db_size_bytes} bytes")
        for m in report.ledger_mismatches:
            print(f"ledger mismatch: #{m.medicine_id} {m.name} stock={m.stock_quantity} ledger={m.ledger_quantity}")
        return 0 if report.ok else 1

    if args.command == "daily-summary":
        summary = container.billing.daily_summary(args.date)
        symbol = container.settings.currency_symbol()
        print(f"{summary.date}: {summary.bill_count} bills, {summary.total_sales.format_rupees(symbol)}")
        return 0

    if args.command == "import-medicines":
        ok, skipped = container.excel.import_medicines_excel(str(args.path), performed_by=args.user_id)
        print(f"imported: {ok}, skipped: {skipped}")
        return 0

    raise AssertionError(f"unhandled command {args.command!r}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parser().parse_args(argv)
    try:
        return run(args)
    except AppError as exc:
        log.error("command_failed command=%s error=%s", args.command, exc)
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
