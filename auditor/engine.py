"""
The Visit Reconciliation Engine.

This module implements the core "Auditor" logic:
1. Grouping   - actual records by patient-day (visits) and staff-day (conflicts).
2. Matching   - each planned visit claims the nearest unclaimed observed visit.
3. Classifying - every rule that fires becomes a tag; the worst one sets the status.

A run is a pure function of (expected entries, actual records, config, run date).
"""

import logging
from datetime import date as date_type
from typing import Dict, List, Optional, Set

from models import ActualRecord, AuditConfig, AuditResult, ExpectedEntry, Finding, TimeWindow, source_tag
from normalizer.keys import patient_day_key

from .rules import RuleChecker
from .state import AuditState
from .visits import Visit, VisitId, group_by_staff_day, group_visits

logger = logging.getLogger(__name__)

# Sort weight for visits whose distance to the window cannot be measured
_UNMEASURABLE = 10 ** 6


class ReconciliationEngine:
    """
    Main audit engine.
    Ingests Plan (ExpectedEntries) and Observation (ActualRecords), outputs AuditResults.
    """

    def __init__(
        self,
        expected: List[ExpectedEntry],
        actuals: List[ActualRecord],
        config: Optional[AuditConfig] = None,
        run_date: Optional[date_type] = None
    ):
        self.expected = list(expected)
        self.actuals = list(actuals)
        self.config = config or AuditConfig()
        self.run_date = run_date or date_type.today()

        self.checker = RuleChecker(self.config, self.run_date)

    def run(self) -> AuditState:
        """
        Execute the audit pipeline.
        """
        logger.info(f"Starting reconciliation: {len(self.expected)} expected, {len(self.actuals)} actual records")
        state = AuditState()

        # 1. Group observations
        visits_by_key = group_visits(self.actuals)
        staff_groups = group_by_staff_day(self.actuals)

        # 2. Resolve windows once
        windows = {e.entry_id: e.resolve_window(self.config.time_defaults) for e in self.expected}

        # 3. Staff conflicts (planned and observed)
        entry_conflicts = self.checker.find_entry_conflicts(self.expected, windows)
        visit_conflicts = self.checker.find_visit_conflicts(staff_groups)
        if entry_conflicts or visit_conflicts:
            logger.warning(f"Staff conflicts: {len(entry_conflicts)} planned, {len(visit_conflicts)} observed")

        # 4. Matching: planned visits first, cancellations take what is left
        claimed: Set[VisitId] = set()
        matches: Dict[str, Optional[Visit]] = {}
        ordered = sorted(self.expected, key=lambda e: self._match_order(e, windows[e.entry_id]))
        for entry in ordered:
            candidates = [
                v for v in visits_by_key.get(patient_day_key(entry.patient_id, entry.date), [])
                if v.visit_id not in claimed
            ]
            visit = self._pick_visit(entry, windows[entry.entry_id], candidates)
            if visit is not None:
                claimed.add(visit.visit_id)
            matches[entry.entry_id] = visit

        # 5. Classify planned entries
        for entry in ordered:
            visit = matches[entry.entry_id]
            in_conflict = entry.entry_id in entry_conflicts or (
                visit is not None and visit.visit_id in visit_conflicts
            )
            findings = self.checker.check_entry(entry, windows[entry.entry_id], visit, in_conflict)
            state.add_result(self._entry_result(entry, windows[entry.entry_id], visit, findings))

        # 6. Classify unplanned visits
        for key in sorted(visits_by_key):
            for visit in visits_by_key[key]:
                if visit.visit_id in claimed:
                    continue
                findings = self.checker.check_extra(visit, visit.visit_id in visit_conflicts)
                state.add_result(self._extra_result(visit, findings))

        logger.info(f"Reconciliation complete: {dict((s.value, n) for s, n in state.status_counts.items())}")
        return state

    def _match_order(self, entry: ExpectedEntry, window: Optional[TimeWindow]):
        start = window.earliest_min if window else _UNMEASURABLE
        return (entry.is_cancel, entry.date, entry.patient_id, start, entry.entry_id)

    def _pick_visit(
        self,
        entry: ExpectedEntry,
        window: Optional[TimeWindow],
        candidates: List[Visit]
    ) -> Optional[Visit]:
        """
        Nearest candidate wins.
        Visits that include the planned staff member are preferred.
        """
        if not candidates:
            return None

        def distance(visit: Visit) -> int:
            start = visit.start_min
            if window is None or start is None:
                return _UNMEASURABLE
            return abs(window.offset_of(start))

        def rank(visit: Visit):
            same_staff = bool(entry.staff_id) and entry.staff_id in visit.staff_ids
            return (0 if same_staff else 1, distance(visit), visit.raw_row)

        return min(candidates, key=rank)

    def _entry_result(
        self,
        entry: ExpectedEntry,
        window: Optional[TimeWindow],
        visit: Optional[Visit],
        findings: List[Finding]
    ) -> AuditResult:
        if not findings:
            findings = [Finding(tag=source_tag(entry.source, entry.op))]

        offset = None
        if window is not None and visit is not None and visit.start_min is not None and not entry.is_cancel:
            offset = window.offset_of(visit.start_min)

        return AuditResult.from_findings(
            findings,
            key=patient_day_key(entry.patient_id, entry.date),
            date=entry.date,
            patient_id=entry.patient_id,
            staff_id=entry.staff_id or (visit.main.staff_id if visit else ""),
            entry_id=entry.entry_id,
            source=entry.source,
            raw_rows=[visit.raw_row] if visit else [],
            offset_min=offset,
        )

    def _extra_result(self, visit: Visit, findings: List[Finding]) -> AuditResult:
        main = visit.main
        return AuditResult.from_findings(
            findings,
            key=visit.key,
            date=main.date,
            patient_id=main.patient_id,
            staff_id=main.staff_id,
            raw_rows=[visit.raw_row],
        )
