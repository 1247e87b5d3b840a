"""
Entry points that tie storage, import, expansion and reconciliation together.

Each service writes its output table last; a failed run writes nothing.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from generators.expected_factory import ExpectedScheduleFactory
from importer.tables import load_name_tables, load_week_visits, write_normalized
from importer.visit_csv import normalize_rows, parse_year_month
from models import RESULT_COLUMNS, AuditConfig, ExpectedEntry
from normalizer.temporal import format_date_str
from storage.tables import CsvTableStore, TableStore

from .cache import SnapshotCache
from .engine import ReconciliationEngine
from .errors import MissingTableError
from .state import AuditState

logger = logging.getLogger(__name__)


class RunSummary(BaseModel):
    """Outcome of one service call."""
    success: bool = True
    count: int = Field(default=0, ge=0)
    message: str = ""
    status_counts: Dict[str, int] = Field(default_factory=dict)
    tag_counts: Dict[str, int] = Field(default_factory=dict)
    issues: List[Dict[str, Any]] = Field(default_factory=list, description="Non-OK results, NG first")


def open_store(config: AuditConfig) -> CsvTableStore:
    """CSV store rooted at the configured data directory."""
    return CsvTableStore(config.require_data_dir(), config.csv_encoding)


def import_partner_csv(store: TableStore, year_month: str, config: Optional[AuditConfig] = None) -> RunSummary:
    """
    Normalize the raw partner export into the normalized visit table.
    The raw table's first row is a header and is skipped.
    """
    config = config or AuditConfig()
    year_month = year_month.strip()
    parse_year_month(year_month)

    rows = store.read_table(config.raw_csv_table)
    if rows is None:
        raise MissingTableError(config.raw_csv_table)
    if len(rows) < 2:
        raise MissingTableError(config.raw_csv_table, "has no data rows")

    staff_table, patient_table = load_name_tables(store, config)
    records = normalize_rows(rows[1:], year_month, staff_table, patient_table)
    write_normalized(store, records, config)

    message = f"{len(records)}件の訪問データを正規化しました"
    logger.info(message)
    return RunSummary(success=True, count=len(records), message=message)


def build_expected(
    store: TableStore,
    week_start: date,
    config: AuditConfig,
    cache: Optional[SnapshotCache] = None
) -> List[ExpectedEntry]:
    """The week's expected entries, served from the snapshot cache when fresh."""
    factory = ExpectedScheduleFactory(config)
    if cache is None:
        return factory.from_store(store, week_start)
    return cache.get_or_build(format_date_str(week_start), lambda: factory.from_store(store, week_start))


def audit_week(
    store: TableStore,
    week_start: date,
    config: AuditConfig,
    run_date: Optional[date] = None,
    cache: Optional[SnapshotCache] = None
) -> AuditState:
    """Reconcile one week without writing anything."""
    visits = load_week_visits(store, week_start, config)
    expected = build_expected(store, week_start, config, cache)
    return ReconciliationEngine(expected, visits, config, run_date).run()


def run_weekly_audit(
    store: TableStore,
    week_start: date,
    config: Optional[AuditConfig] = None,
    run_date: Optional[date] = None,
    cache: Optional[SnapshotCache] = None
) -> RunSummary:
    """Reconcile one week and replace the results table."""
    config = config or AuditConfig()
    state = audit_week(store, week_start, config, run_date, cache)

    store.write_table(config.results_table, RESULT_COLUMNS, [r.to_row() for r in state.results])

    stats = state.get_statistics()
    status_counts = stats["status_counts"]
    message = (
        f"{format_date_str(week_start)}週: {stats['total_results']}件 "
        f"(OK {status_counts.get('OK', 0)} / WARN {status_counts.get('WARN', 0)} / NG {status_counts.get('NG', 0)})"
    )
    logger.info(message)
    return RunSummary(
        success=True,
        count=stats["total_results"],
        message=message,
        status_counts=status_counts,
        tag_counts=stats["tag_counts"],
        issues=state.get_issue_report(),
    )
