"""
Storage-facing helpers for the partner import.

Loads the staff/patient name tables from their master tables and persists or
reads back the normalized visit table.
"""

import logging
from datetime import date
from typing import List, Sequence, Tuple

from auditor.errors import MissingTableError
from models import NORMALIZED_COLUMNS, ActualRecord, AuditConfig
from normalizer.headers import find_header_index
from normalizer.names import NameTable, build_name_table
from normalizer.temporal import parse_date, week_end
from storage.tables import TableStore

logger = logging.getLogger(__name__)

STAFF_ID_COLUMN = "staff_id"
STAFF_NAME_COLUMN = "氏名"
PATIENT_ID_COLUMN = "patient_id"
PATIENT_NAME_COLUMN = "患者名"


def load_name_tables(store: TableStore, config: AuditConfig) -> Tuple[NameTable, NameTable]:
    """
    (staff table, patient table).
    An absent master table yields an empty table; names then stay unresolved.
    """
    staff_rows = store.read_table(config.staff_master_table)
    if staff_rows is None:
        logger.warning(f"Staff master '{config.staff_master_table}' not found; staff ids will be empty")
    patient_rows = store.read_table(config.patient_master_table)
    if patient_rows is None:
        logger.warning(f"Patient master '{config.patient_master_table}' not found; patient ids will be empty")

    staff_table = build_name_table(staff_rows, STAFF_ID_COLUMN, STAFF_NAME_COLUMN)
    patient_table = build_name_table(patient_rows, PATIENT_ID_COLUMN, PATIENT_NAME_COLUMN)
    logger.info(f"Loaded name tables: {len(staff_table)} staff, {len(patient_table)} patients")
    return staff_table, patient_table


def write_normalized(store: TableStore, records: Sequence[ActualRecord], config: AuditConfig) -> None:
    """Replace the normalized visit table."""
    store.write_table(config.normalized_table, NORMALIZED_COLUMNS, [r.to_row() for r in records])


def load_week_visits(store: TableStore, start: date, config: AuditConfig) -> List[ActualRecord]:
    """
    Normalized visits dated within the week beginning at start.
    Raises MissingTableError when nothing has been imported yet.
    """
    rows = store.read_table(config.normalized_table)
    if rows is None:
        raise MissingTableError(config.normalized_table, "not found; run the CSV import first")
    if not rows:
        return []

    headers = [str(h).strip() for h in rows[0]]
    if find_header_index(headers, 'ymd') == -1:
        raise MissingTableError(config.normalized_table, "has no 'ymd' column")

    end = week_end(start)
    records = []
    for row in rows[1:]:
        record = ActualRecord.from_row(headers, row)
        if record is None:
            continue
        if start <= record.date <= end:
            records.append(record)

    logger.info(f"Loaded {len(records)} visit records for week {start.isoformat()}")
    return records


def parse_week_start(value) -> date:
    """Week identifier ('2026/01/19') as a date; must name a Monday."""
    start = parse_date(value)
    if start is None:
        raise ValueError(f"Unparsable week start: {value!r}")
    if start.weekday() != 0:
        raise ValueError(f"Week start must be a Monday, got {start.isoformat()}")
    return start
