"""
Classification rules.

This module answers the question: "What is wrong with this planned visit?"
Each check returns a Finding (or None); the engine collects every finding that
fires and the result's status is the worst of them.
"""

from collections import defaultdict
from datetime import date as date_type
from itertools import combinations
from typing import Dict, List, Optional, Set, Tuple

from models import ActualRecord, AuditConfig, AuditTag, ExpectedEntry, Finding, TimeWindow
from normalizer.keys import patient_day_key, staff_day_key

from .visits import Visit, VisitId


class RuleChecker:
    """
    Evaluates the audit rules for expected entries and unplanned visits.
    """

    def __init__(self, config: AuditConfig, run_date: date_type):
        self.config = config
        self.run_date = run_date

    def check_entry(
        self,
        entry: ExpectedEntry,
        window: Optional[TimeWindow],
        visit: Optional[Visit],
        in_conflict: bool
    ) -> List[Finding]:
        """
        Master check for one expected entry and the visit it was matched to.
        Cancelled entries only care whether a visit happened anyway.
        """
        if entry.is_cancel:
            finding = self._check_cancelled(entry, visit)
            return [finding] if finding else []

        findings = []

        # 1. Visit presence
        finding = self._check_missing(entry, visit)
        if finding: findings.append(finding)

        # 2. Staffing
        finding = self._check_unassigned(entry, visit)
        if finding: findings.append(finding)

        if in_conflict:
            findings.append(Finding(tag=AuditTag.EVENT_CONFLICT, reason="Staff double-booked"))

        # 3. Timing
        findings.extend(self._check_time(entry, window, visit))
        return findings

    def check_extra(self, visit: Visit, in_conflict: bool) -> List[Finding]:
        """Findings for a visit no expected entry accounts for."""
        findings = [Finding(tag=AuditTag.EXTRA_ACTUAL, reason=f"No plan for CSV row {visit.raw_row}")]
        if visit.has_unresolved_patient:
            findings.append(Finding(tag=AuditTag.UNASSIGNED, reason="Patient name not in patient master"))
        elif visit.has_unresolved_staff:
            findings.append(Finding(tag=AuditTag.UNASSIGNED, reason="Staff name not in staff master"))
        if in_conflict:
            findings.append(Finding(tag=AuditTag.EVENT_CONFLICT, reason="Staff double-booked"))
        if visit.start_min is None:
            findings.append(Finding(tag=AuditTag.TIME_PARSE_ERROR, reason=f"Unparsable start {visit.main.start!r}"))
        return findings

    def _check_cancelled(self, entry: ExpectedEntry, visit: Optional[Visit]) -> Optional[Finding]:
        if visit is None:
            return None
        return Finding(
            tag=AuditTag.CANCELLED_BUT_VISITED,
            reason=f"Cancelled visit recorded at CSV row {visit.raw_row}"
        )

    def _check_missing(self, entry: ExpectedEntry, visit: Optional[Visit]) -> Optional[Finding]:
        # Future entries without a visit are simply not due yet
        if visit is not None or entry.date > self.run_date:
            return None
        return Finding(tag=AuditTag.MISSING_ACTUAL, reason="No visit recorded")

    def _check_unassigned(self, entry: ExpectedEntry, visit: Optional[Visit]) -> Optional[Finding]:
        if not entry.staff_id:
            return Finding(tag=AuditTag.UNASSIGNED, reason="No staff assigned in the plan")
        if visit is not None and visit.has_unresolved_staff:
            return Finding(tag=AuditTag.UNASSIGNED, reason="Visit staff name not in staff master")
        return None

    def _check_time(
        self,
        entry: ExpectedEntry,
        window: Optional[TimeWindow],
        visit: Optional[Visit]
    ) -> List[Finding]:
        """
        Window check with tolerance buffer:
        inside -> nothing, within buffer -> TIME_DIFF, beyond -> OUT_OF_WINDOW.
        An entry without any usable planned time is a TIME_PARSE_ERROR.
        """
        if window is None:
            if entry.time_invalid:
                reason = f"Unparsable planned time {entry.time_text!r}"
            elif entry.time_type is None and not entry.time_text:
                reason = "No planned time recorded"
            else:
                reason = "Planned time could not be resolved"
            return [Finding(tag=AuditTag.TIME_PARSE_ERROR, reason=reason)]
        if visit is None:
            return []

        start = visit.start_min
        if start is None:
            return [Finding(tag=AuditTag.TIME_PARSE_ERROR, reason=f"Unparsable start {visit.main.start!r}")]

        offset = window.offset_of(start)
        if offset == 0:
            return []
        if abs(offset) <= self.config.time_buffer_min:
            return [Finding(tag=AuditTag.TIME_DIFF, offset_min=offset, reason="Started outside window within buffer")]
        return [Finding(tag=AuditTag.OUT_OF_WINDOW, offset_min=offset, reason=f"Started {offset:+d} min outside window")]

    # --- Staff conflicts ---

    def find_entry_conflicts(
        self,
        entries: List[ExpectedEntry],
        windows: Dict[str, Optional[TimeWindow]]
    ) -> Set[str]:
        """Entry ids whose staff has another overlapping planned visit that day."""
        by_staff_day: Dict[str, List[ExpectedEntry]] = defaultdict(list)
        for entry in entries:
            if entry.staff_id and not entry.is_cancel and windows.get(entry.entry_id):
                by_staff_day[staff_day_key(entry.staff_id, entry.date)].append(entry)

        conflicted: Set[str] = set()
        for group in by_staff_day.values():
            for a, b in combinations(group, 2):
                if windows[a.entry_id].overlaps(windows[b.entry_id]):
                    conflicted.update((a.entry_id, b.entry_id))
        return conflicted

    def find_visit_conflicts(self, staff_groups: Dict[str, List[ActualRecord]]) -> Set[VisitId]:
        """Visits whose staff member was recorded on another overlapping visit that day."""
        conflicted: Set[VisitId] = set()
        for records in staff_groups.values():
            spans: List[Tuple[VisitId, TimeWindow]] = []
            for record in records:
                span = _record_span(record)
                if span is not None:
                    spans.append(((patient_day_key(record.patient_id, record.date), record.raw_row), span))
            for (vid_a, span_a), (vid_b, span_b) in combinations(spans, 2):
                if vid_a != vid_b and span_a.overlaps(span_b):
                    conflicted.update((vid_a, vid_b))
        return conflicted


def _record_span(record: ActualRecord) -> Optional[TimeWindow]:
    start = record.start_min
    if start is None:
        return None
    end = record.end_min
    if end is None or end < start:
        end = start
    return TimeWindow(earliest_min=start, latest_min=end)
