"""
Expected schedule factory for the Visit Audit system.

Derives the week's ExpectedEntries from three hand-maintained tables:
1. Master schedule  - recurring assignments by weekday
2. Change log       - one-off cancellations, time changes and additions
3. Specials         - special additions and whole-day replacements

Expansion order is fixed: masters, then changes (in table order), then specials.
"""

import logging
from collections import defaultdict
from datetime import date, date as date_type, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auditor.errors import MissingTableError
from models import AuditConfig, ChangeOp, ExpectedEntry, SourceKind, TimeType, TimeWindow
from normalizer.headers import find_header_index
from normalizer.keys import patient_day_key
from normalizer.temporal import (
    Weekday,
    parse_date,
    parse_time_to_minutes,
    parse_weekday_list,
    to_half_width,
    week_end,
    weekday_of,
)
from storage.tables import TableStore

logger = logging.getLogger(__name__)

# --- Column headers of the input tables ---
COL_PATIENT = "patient_id"
COL_STAFF = "staff_id"
COL_WEEKDAYS = "曜日"
COL_DATE = "日付"
COL_OP = "操作"
COL_KIND = "種別"
COL_TIME_TYPE = "時間タイプ"
COL_START = "開始"
COL_END = "終了"

_TIME_TYPE_ALIASES = {t.name: t for t in TimeType}
_TIME_TYPE_ALIASES.update({'AM': TimeType.MORNING, 'PM': TimeType.AFTERNOON})

_OP_ALIASES = {op.name: op for op in ChangeOp}
_OP_ALIASES.update({'取消': ChangeOp.CANCEL, '中止': ChangeOp.CANCEL, '変更': ChangeOp.TIME_CHANGE})

_SPECIAL_ALIASES = {
    '追加': SourceKind.SPECIAL_ADD,
    'SPECIAL_ADD': SourceKind.SPECIAL_ADD,
    'ADD': SourceKind.SPECIAL_ADD,
    '差替': SourceKind.SPECIAL_REPLACE,
    '差し替え': SourceKind.SPECIAL_REPLACE,
    '置換': SourceKind.SPECIAL_REPLACE,
    'SPECIAL_REPLACE': SourceKind.SPECIAL_REPLACE,
    'REPLACE': SourceKind.SPECIAL_REPLACE,
}

_SOURCE_ORDER = {
    SourceKind.MASTER: 0,
    SourceKind.CHANGE: 1,
    SourceKind.SPECIAL_ADD: 2,
    SourceKind.SPECIAL_REPLACE: 3,
}


# ---------------------------------------------------------------------------
# Input row models
# ---------------------------------------------------------------------------

class TimeSpec(BaseModel):
    """Planned time as written in a schedule row."""
    time_type: Optional[TimeType] = None
    window: Optional[TimeWindow] = None
    text: str = ""
    invalid: bool = False

    model_config = ConfigDict(frozen=True)

    @property
    def is_empty(self) -> bool:
        return self.time_type is None and self.window is None and not self.text


class MasterAssignment(BaseModel):
    """Recurring weekly assignment from the master schedule."""
    patient_id: str = Field(min_length=1)
    staff_id: str = Field(default="")
    weekdays: List[str] = Field(description="Normalized weekday tags (Mon..Sun)")
    time: TimeSpec = Field(default_factory=TimeSpec)

    @field_validator('weekdays')
    @classmethod
    def warn_unknown_weekdays(cls, v):
        known = {w.value for w in Weekday}
        unknown = [d for d in v if d not in known]
        if unknown:
            logger.warning(f"Unrecognized weekday labels kept as-is: {unknown}")
        return v


class ChangeRequest(BaseModel):
    """One row of the change log."""
    date: date_type
    patient_id: str = Field(min_length=1)
    staff_id: str = Field(default="")
    op: ChangeOp
    time: TimeSpec = Field(default_factory=TimeSpec)


class SpecialEntry(BaseModel):
    """One row of the specials table."""
    date: date_type
    patient_id: str = Field(min_length=1)
    staff_id: str = Field(default="")
    kind: SourceKind
    time: TimeSpec = Field(default_factory=TimeSpec)

    @field_validator('kind')
    @classmethod
    def validate_kind(cls, v):
        if v not in (SourceKind.SPECIAL_ADD, SourceKind.SPECIAL_REPLACE):
            raise ValueError("Special entries are SPECIAL_ADD or SPECIAL_REPLACE")
        return v


# ---------------------------------------------------------------------------
# Cell parsing
# ---------------------------------------------------------------------------

def parse_time_type(label: Any) -> Optional[TimeType]:
    s = to_half_width("" if label is None else str(label)).strip()
    if not s:
        return None
    try:
        return TimeType(s)
    except ValueError:
        pass
    hit = _TIME_TYPE_ALIASES.get(s.upper())
    if hit is None:
        logger.warning(f"Unknown time type {s!r}")
    return hit


def parse_time_spec(type_label: Any, start_cell: Any, end_cell: Any) -> TimeSpec:
    """
    Resolve a (time type, start, end) triple into a TimeSpec.

    - FIXED, or no type with only a start: window [start, start]
    - RANGE, or no type with start and end: window [start, end]
    - MORNING/AFTERNOON/ALL_DAY: explicit start/end win, otherwise the config
      defaults apply later
    Unparsable cells, or an end before the start, mark the time invalid even
    when a default window exists; the entry is then classified as a time
    parse error.
    """
    time_type = parse_time_type(type_label)
    start_text = "" if start_cell is None else str(start_cell).strip()
    end_text = "" if end_cell is None else str(end_cell).strip()
    start = parse_time_to_minutes(start_cell)
    end = parse_time_to_minutes(end_cell)

    text = start_text if not end_text else f"{start_text}-{end_text}"

    if time_type is None and start_text:
        time_type = TimeType.RANGE if end_text else TimeType.FIXED

    window = None
    if time_type == TimeType.FIXED:
        if start is not None:
            window = TimeWindow(earliest_min=start, latest_min=start)
    elif time_type is not None:
        if start is not None and end is not None and start <= end:
            window = TimeWindow(earliest_min=start, latest_min=end)

    invalid = bool((start_text and start is None) or (end_text and end is None))
    if start is not None and end is not None and end < start and time_type != TimeType.FIXED:
        invalid = True
    if invalid:
        logger.warning(f"Unparsable planned time {text!r}")

    return TimeSpec(time_type=time_type, window=window, text=text, invalid=invalid)


def _column_map(headers: Sequence[Any], names: Sequence[str]) -> Dict[str, int]:
    return {name: find_header_index(headers, name) for name in names}


def _get(row: Sequence[Any], idx: int) -> Any:
    if idx < 0 or idx >= len(row):
        return None
    return row[idx]


def _text(row: Sequence[Any], idx: int) -> str:
    value = _get(row, idx)
    return "" if value is None else str(value).strip()


def parse_master_rows(rows: Optional[Sequence[Sequence[Any]]]) -> List[MasterAssignment]:
    if not rows or len(rows) < 2:
        return []
    cols = _column_map(rows[0], [COL_PATIENT, COL_STAFF, COL_WEEKDAYS, COL_TIME_TYPE, COL_START, COL_END])

    assignments = []
    for n, row in enumerate(rows[1:], start=2):
        patient_id = _text(row, cols[COL_PATIENT])
        weekdays = parse_weekday_list(_get(row, cols[COL_WEEKDAYS]))
        if not patient_id or not weekdays:
            logger.debug(f"Master schedule row {n}: missing patient or weekdays, skipped")
            continue
        assignments.append(MasterAssignment(
            patient_id=patient_id,
            staff_id=_text(row, cols[COL_STAFF]),
            weekdays=weekdays,
            time=parse_time_spec(
                _get(row, cols[COL_TIME_TYPE]), _get(row, cols[COL_START]), _get(row, cols[COL_END])
            ),
        ))
    return assignments


def _parse_op(label: Any) -> Optional[ChangeOp]:
    s = ("" if label is None else str(label)).strip()
    try:
        return ChangeOp(s)
    except ValueError:
        return _OP_ALIASES.get(s.upper())


def parse_change_rows(rows: Optional[Sequence[Sequence[Any]]]) -> List[ChangeRequest]:
    if not rows or len(rows) < 2:
        return []
    cols = _column_map(rows[0], [COL_DATE, COL_PATIENT, COL_STAFF, COL_OP, COL_TIME_TYPE, COL_START, COL_END])

    requests = []
    for n, row in enumerate(rows[1:], start=2):
        change_date = parse_date(_get(row, cols[COL_DATE]))
        patient_id = _text(row, cols[COL_PATIENT])
        op = _parse_op(_get(row, cols[COL_OP]))
        if change_date is None or not patient_id or op is None:
            logger.warning(f"Change log row {n}: missing date, patient or operation, skipped")
            continue
        requests.append(ChangeRequest(
            date=change_date,
            patient_id=patient_id,
            staff_id=_text(row, cols[COL_STAFF]),
            op=op,
            time=parse_time_spec(
                _get(row, cols[COL_TIME_TYPE]), _get(row, cols[COL_START]), _get(row, cols[COL_END])
            ),
        ))
    return requests


def parse_special_rows(rows: Optional[Sequence[Sequence[Any]]]) -> List[SpecialEntry]:
    if not rows or len(rows) < 2:
        return []
    cols = _column_map(rows[0], [COL_DATE, COL_PATIENT, COL_STAFF, COL_KIND, COL_TIME_TYPE, COL_START, COL_END])

    specials = []
    for n, row in enumerate(rows[1:], start=2):
        special_date = parse_date(_get(row, cols[COL_DATE]))
        patient_id = _text(row, cols[COL_PATIENT])
        kind = _SPECIAL_ALIASES.get(_text(row, cols[COL_KIND]).upper())
        if special_date is None or not patient_id or kind is None:
            logger.warning(f"Special row {n}: missing date, patient or kind, skipped")
            continue
        specials.append(SpecialEntry(
            date=special_date,
            patient_id=patient_id,
            staff_id=_text(row, cols[COL_STAFF]),
            kind=kind,
            time=parse_time_spec(
                _get(row, cols[COL_TIME_TYPE]), _get(row, cols[COL_START]), _get(row, cols[COL_END])
            ),
        ))
    return specials


# ---------------------------------------------------------------------------
# Expansion
# ---------------------------------------------------------------------------

class ExpectedScheduleFactory:
    """
    Expands master assignments, change requests and specials into the week's
    ExpectedEntries. Stateless between calls.
    """

    def __init__(self, config: AuditConfig):
        self.config = config

    def load(self, store: TableStore) -> Tuple[List[MasterAssignment], List[ChangeRequest], List[SpecialEntry]]:
        """Read and parse the three input tables. The master schedule is required."""
        master_rows = store.read_table(self.config.master_schedule_table)
        if not master_rows or len(master_rows) < 2:
            raise MissingTableError(self.config.master_schedule_table, "is missing or empty")

        masters = parse_master_rows(master_rows)
        changes = parse_change_rows(store.read_table(self.config.change_log_table))
        specials = parse_special_rows(store.read_table(self.config.special_table))
        logger.info(f"Loaded {len(masters)} master assignments, {len(changes)} changes, {len(specials)} specials")
        return masters, changes, specials

    def from_store(self, store: TableStore, start: date) -> List[ExpectedEntry]:
        masters, changes, specials = self.load(store)
        return self.build_week(start, masters, changes, specials)

    def build_week(
        self,
        start: date,
        masters: Sequence[MasterAssignment],
        changes: Sequence[ChangeRequest] = (),
        specials: Sequence[SpecialEntry] = ()
    ) -> List[ExpectedEntry]:
        end = week_end(start)
        plan: Dict[str, List[ExpectedEntry]] = defaultdict(list)

        # 1. Recurring assignments
        for offset in range(7):
            day = start + timedelta(days=offset)
            tag = weekday_of(day)
            for master in masters:
                if tag in master.weekdays:
                    plan[patient_day_key(master.patient_id, day)].append(
                        self._draft(master.patient_id, master.staff_id, day, SourceKind.MASTER, master.time)
                    )

        # 2. Change log
        for change in changes:
            if start <= change.date <= end:
                self._apply_change(plan, change)

        # 3. Specials
        for special in specials:
            if start <= special.date <= end:
                self._apply_special(plan, special)

        entries = [e for drafts in plan.values() for e in drafts]
        entries = self._assign_ids(entries)
        logger.info(f"Built {len(entries)} expected entries for week {start.isoformat()}")
        return entries

    def _draft(
        self,
        patient_id: str,
        staff_id: str,
        day: date,
        source: SourceKind,
        time: TimeSpec,
        op: Optional[ChangeOp] = None
    ) -> ExpectedEntry:
        return ExpectedEntry(
            entry_id="",
            patient_id=patient_id,
            staff_id=staff_id,
            date=day,
            source=source,
            op=op,
            time_type=time.time_type,
            window=time.window,
            time_text=time.text,
            time_invalid=time.invalid,
        )

    def _apply_change(self, plan: Dict[str, List[ExpectedEntry]], change: ChangeRequest) -> None:
        key = patient_day_key(change.patient_id, change.date)
        drafts = plan[key]

        if change.op == ChangeOp.ADD:
            drafts.append(self._draft(
                change.patient_id, change.staff_id, change.date, SourceKind.CHANGE, change.time, ChangeOp.ADD
            ))
            return

        targets = [
            e for e in drafts
            if not e.is_cancel and (not change.staff_id or e.staff_id == change.staff_id)
        ]

        if change.op == ChangeOp.TIME_CHANGE:
            if not targets:
                logger.warning(f"Time change for {key} has no planned visit to change; treated as an addition")
                drafts.append(self._draft(
                    change.patient_id, change.staff_id, change.date, SourceKind.CHANGE, change.time,
                    ChangeOp.TIME_CHANGE
                ))
                return
            target = targets[0]
            time = change.time if not change.time.is_empty else TimeSpec(
                time_type=target.time_type, window=target.window, text=target.time_text,
                invalid=target.time_invalid
            )
            drafts[drafts.index(target)] = self._draft(
                change.patient_id, change.staff_id or target.staff_id, change.date, SourceKind.CHANGE, time,
                ChangeOp.TIME_CHANGE
            )
            return

        # Cancellation: drop the planned visits and keep a marker for each
        if not targets:
            logger.warning(f"Cancellation for {key} has no planned visit to cancel")
            drafts.append(self._draft(
                change.patient_id, change.staff_id, change.date, SourceKind.CHANGE, change.time, ChangeOp.CANCEL
            ))
            return
        for target in targets:
            drafts.remove(target)
            drafts.append(self._draft(
                change.patient_id, target.staff_id, change.date, SourceKind.CHANGE,
                TimeSpec(
                    time_type=target.time_type, window=target.window, text=target.time_text,
                    invalid=target.time_invalid
                ),
                ChangeOp.CANCEL
            ))

    def _apply_special(self, plan: Dict[str, List[ExpectedEntry]], special: SpecialEntry) -> None:
        key = patient_day_key(special.patient_id, special.date)
        if special.kind == SourceKind.SPECIAL_REPLACE:
            plan[key] = [e for e in plan[key] if e.is_cancel]
        plan[key].append(self._draft(
            special.patient_id, special.staff_id, special.date, special.kind, special.time
        ))

    def _assign_ids(self, entries: List[ExpectedEntry]) -> List[ExpectedEntry]:
        """Stable order and deterministic ids: SOURCE:patient:yyyymmdd:seq."""
        def sort_key(e: ExpectedEntry):
            window = e.resolve_window(self.config.time_defaults)
            return (e.date, e.patient_id, window.earliest_min if window else -1, _SOURCE_ORDER[e.source], e.staff_id)

        seq: Dict[str, int] = defaultdict(int)
        result = []
        for e in sorted(entries, key=sort_key):
            base = f"{e.source.value}:{e.patient_id}:{e.date.strftime('%Y%m%d')}"
            seq[base] += 1
            result.append(e.model_copy(update={"entry_id": f"{base}:{seq[base]}"}))
        return result
