"""
Command line entry point for the Visit Audit system.

    python run_audit.py --data-dir ./data import --year-month 2026/01
    python run_audit.py --data-dir ./data audit --week 2026/01/19 [--run-date 2026/01/21]
"""

import argparse
import logging
import sys

from auditor.cache import SnapshotCache
from auditor.errors import AuditError
from auditor.service import import_partner_csv, open_store, run_weekly_audit
from importer.tables import parse_week_start
from models import AuditConfig
from normalizer.temporal import parse_date

logger = logging.getLogger("Main")


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Home-care visit audit")
    parser.add_argument("--data-dir", type=str, default=None,
                        help="Folder holding the table CSV files (default: $VISIT_AUDIT_DATA_DIR)")
    parser.add_argument("--buffer-min", type=int, default=None,
                        help="Tolerance in minutes before a time difference is NG")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    p_import = sub.add_parser("import", help="Normalize the raw partner CSV")
    p_import.add_argument("--year-month", required=True, help="Billing month, e.g. 2026/01")

    p_audit = sub.add_parser("audit", help="Reconcile one week of visits")
    p_audit.add_argument("--week", required=True, help="Monday of the week, e.g. 2026/01/19")
    p_audit.add_argument("--run-date", default=None, help="Treat this date as today (default: today)")
    return parser


def cmd_import(args, config: AuditConfig) -> int:
    store = open_store(config)
    summary = import_partner_csv(store, args.year_month, config)
    print(f"✅ {summary.message}")
    return 0


def cmd_audit(args, config: AuditConfig) -> int:
    week = parse_week_start(args.week)
    run_date = None
    if args.run_date:
        run_date = parse_date(args.run_date)
        if run_date is None:
            raise ValueError(f"Unparsable run date: {args.run_date!r}")

    store = open_store(config)
    summary = run_weekly_audit(store, week, config, run_date, cache=SnapshotCache.from_config(config))

    print("\n" + "=" * 50)
    print("📊 WEEKLY AUDIT REPORT")
    print("=" * 50)
    print(summary.message)
    print(f"Tags:      {summary.tag_counts}")

    if summary.issues:
        print("\n🔍 NEEDS ATTENTION")
        for issue in summary.issues:
            mark = "❌" if issue["status"] == "NG" else "⚠️"
            print(f"{mark} [{issue['status']}] {issue['date']} patient={issue['patient_id']} staff={issue['staff_id']}")
            print(f"   Tags: {issue['tags']}  Rows: {issue['raw_rows']}")
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = AuditConfig.from_env(data_dir=args.data_dir, time_buffer_min=args.buffer_min)
        if args.command == "import":
            return cmd_import(args, config)
        return cmd_audit(args, config)
    except (AuditError, ValueError) as e:
        logger.error(f"❌ {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
