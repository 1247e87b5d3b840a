"""
Partner CSV Importer.

Converts rows of the partner system's visit export into ActualRecords.
The export only carries the day of month, so the year and month are supplied
by the caller. One row lists up to three staff members; each non-empty slot
becomes its own record (slot 1 is MAIN, slots 2 and 3 ACCOMPANY).

This module is pure: it never touches storage.
"""

import logging
import re
from datetime import date
from typing import Any, List, Sequence, Tuple

from models import ActualRecord, VisitRole
from normalizer.names import NameTable, normalize_name, resolve
from normalizer.temporal import format_minutes, parse_time_to_minutes, to_half_width, to_number

logger = logging.getLogger(__name__)


class CsvCol:
    """0-based column positions of the 18-column export."""
    STAFF1_NAME = 0     # 職員名１
    STAFF1_TYPE = 1     # 職種１
    STAFF2_NAME = 2     # 職員名２
    STAFF2_TYPE = 3     # 職種２
    ACCOMPANY2 = 4      # 同行２
    STAFF3_NAME = 5     # 職員名３
    STAFF3_TYPE = 6     # 職種３
    ACCOMPANY3 = 7      # 同行３
    FACILITY = 8        # 事業所名
    DAY = 9             # 日付（日のみ）
    DOW = 10            # 曜日
    PATIENT_NAME = 11   # 利用者
    BUSINESS_TYPE = 12  # 業務種別
    SERVICE_TYPE = 13   # サービス種別
    START_TIME = 14     # サービス開始時間
    END_TIME = 15       # 終了時間
    DURATION = 16       # 提供時間
    NOTE = 17           # 備考

    WIDTH = 18


# (name column, role) per staff slot, in export order
STAFF_SLOTS: Tuple[Tuple[int, VisitRole], ...] = (
    (CsvCol.STAFF1_NAME, VisitRole.MAIN),
    (CsvCol.STAFF2_NAME, VisitRole.ACCOMPANY),
    (CsvCol.STAFF3_NAME, VisitRole.ACCOMPANY),
)

_YEAR_MONTH_RE = re.compile(r"^(\d{4})[/\-](\d{1,2})$")
_CLOCK_SEARCH_RE = re.compile(r"(\d{1,2}):(\d{2})")
_FRACTION_RE = re.compile(r"^0?\.\d+$")


def parse_year_month(year_month: str) -> Tuple[int, int]:
    """'2026/01' or '2026-01' -> (2026, 1)."""
    match = _YEAR_MONTH_RE.match(to_half_width(str(year_month or "")).strip())
    if not match:
        raise ValueError(f"Year-month must look like 2026/01, got {year_month!r}")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValueError(f"Month out of range in {year_month!r}")
    return year, month


def normalize_clock(value: Any) -> str:
    """
    Canonical HH:MM for a time cell.
    Numbers go through the serial/minute parser; strings have their first H:MM
    extracted and zero-padded, or are read as a day fraction ("0.375").
    Anything else is kept as trimmed text.
    """
    if value is None or value == "":
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return format_minutes(parse_time_to_minutes(value))

    text = to_half_width(str(value)).strip()
    match = _CLOCK_SEARCH_RE.search(text)
    if match:
        return f"{int(match.group(1)):02d}:{match.group(2)}"

    # Day fractions arrive as text once the sheet has been through a CSV file
    if _FRACTION_RE.match(text):
        return format_minutes(parse_time_to_minutes(float(text)))
    return text


def _cell(row: Sequence[Any], idx: int) -> Any:
    return row[idx] if idx < len(row) else None


def _text(row: Sequence[Any], idx: int) -> str:
    value = _cell(row, idx)
    return "" if value is None else str(value).strip()


def expand_row(
    row: Sequence[Any],
    row_number: int,
    year: int,
    month: int,
    staff_table: NameTable,
    patient_table: NameTable
) -> List[ActualRecord]:
    """
    Fan one export row out into 0-3 ActualRecords.
    Rows without a usable day of month produce nothing.
    """
    day = to_number(_cell(row, CsvCol.DAY), None)
    if day is None:
        return []
    try:
        visit_date = date(year, month, int(day))
    except (ValueError, OverflowError):
        logger.debug(f"Row {row_number}: invalid day {day!r} for {year}/{month:02d}, skipped")
        return []

    patient_name = normalize_name(_cell(row, CsvCol.PATIENT_NAME))

    # Fields shared by every staff slot of this row
    shared = dict(
        date=visit_date,
        dow=_text(row, CsvCol.DOW),
        patient_name=patient_name,
        patient_id=resolve(patient_name, patient_table),
        start=normalize_clock(_cell(row, CsvCol.START_TIME)),
        end=normalize_clock(_cell(row, CsvCol.END_TIME)),
        duration_min=_text(row, CsvCol.DURATION),
        business_type=_text(row, CsvCol.BUSINESS_TYPE),
        service_type=_text(row, CsvCol.SERVICE_TYPE),
        note=_text(row, CsvCol.NOTE),
        raw_row=row_number,
    )

    records = []
    for name_col, role in STAFF_SLOTS:
        staff_name = normalize_name(_cell(row, name_col))
        if not staff_name:
            continue
        staff_id = resolve(staff_name, staff_table)
        if not staff_id:
            logger.debug(f"Row {row_number}: staff '{staff_name}' not in staff master")
        records.append(ActualRecord(
            staff_name=staff_name,
            staff_id=staff_id,
            role=role,
            **shared
        ))

    if patient_name and not shared['patient_id']:
        logger.debug(f"Row {row_number}: patient '{patient_name}' not in patient master")
    return records


def normalize_rows(
    rows: Sequence[Sequence[Any]],
    year_month: str,
    staff_table: NameTable,
    patient_table: NameTable
) -> List[ActualRecord]:
    """
    Normalize export data rows (header already removed).
    Row numbers are reported 1-based with the header counted, as in the file.
    """
    year, month = parse_year_month(year_month)

    normalized: List[ActualRecord] = []
    skipped = 0
    for idx, row in enumerate(rows):
        records = expand_row(row, idx + 2, year, month, staff_table, patient_table)
        if not records and _text(row, CsvCol.DAY) == "":
            skipped += 1
        normalized.extend(records)

    logger.info(f"Normalized {len(rows)} export rows into {len(normalized)} visit records ({skipped} rows without a day)")
    return normalized
