"""
Audit State Management.

This module acts as the 'Memory' of one audit run.
It tracks:
1. Every AuditResult produced, in production order.
2. Counters per status and per tag.
3. Per patient-week summaries for the weekly report.

A state object belongs to exactly one run; re-running an audit builds a new one.
"""

from collections import defaultdict
from typing import Any, Dict, List

from models import AuditResult, AuditStatus, AuditTag
from normalizer.keys import patient_week_key
from normalizer.temporal import week_start


class AuditState:
    """
    Accumulates the results of a reconciliation run.
    """

    def __init__(self):
        """Initialize empty audit state."""
        self.results: List[AuditResult] = []

        # Counters
        self.status_counts: Dict[AuditStatus, int] = defaultdict(int)
        self.tag_counts: Dict[AuditTag, int] = defaultdict(int)

        # patient-week key -> {"expected", "visits", "OK", "WARN", "NG"}
        self.weekly: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))

    def add_result(self, result: AuditResult) -> None:
        """Commit a result and update every counter."""
        self.results.append(result)
        self.status_counts[result.status] += 1
        for finding in result.findings:
            self.tag_counts[finding.tag] += 1

        pw = self.weekly[patient_week_key(result.patient_id, week_start(result.date))]
        if result.entry_id is not None:
            pw["expected"] += 1
        if result.raw_rows:
            pw["visits"] += 1
        pw[result.status.value] += 1

    # --- Query Methods ---

    def results_for_key(self, key: str) -> List[AuditResult]:
        return [r for r in self.results if r.key == key]

    def results_with_tag(self, tag: AuditTag) -> List[AuditResult]:
        return [r for r in self.results if r.has_tag(tag)]

    @property
    def worst_status(self) -> AuditStatus:
        if not self.results:
            return AuditStatus.OK
        return max((r.status for r in self.results), key=lambda s: s.severity)

    # --- Reporting Methods ---

    def get_statistics(self) -> Dict[str, Any]:
        """Summary numbers for the run report."""
        total = len(self.results)
        if not total:
            return {"total_results": 0, "status_counts": {}, "tag_counts": {}, "ok_rate": "0.0%"}

        ok = self.status_counts[AuditStatus.OK]
        dates = [r.date for r in self.results]
        return {
            "total_results": total,
            "status_counts": {s.value: self.status_counts[s] for s in AuditStatus},
            "tag_counts": {t.value: n for t, n in sorted(self.tag_counts.items(), key=lambda x: x[0].precedence)},
            "ok_rate": f"{ok / total * 100:.1f}%",
            "date_range": (min(dates), max(dates)),
            "patient_weeks": {k: dict(v) for k, v in sorted(self.weekly.items())},
        }

    def get_issue_report(self) -> List[Dict[str, Any]]:
        """
        Every non-OK result, NG first, then by date and key.
        Useful for the 'needs attention' section of the output.
        """
        issues = [r for r in self.results if r.status != AuditStatus.OK]
        issues.sort(key=lambda r: (-r.status.severity, r.date, r.key))
        return [
            {
                "status": r.status.value,
                "date": r.date.isoformat(),
                "patient_id": r.patient_id,
                "staff_id": r.staff_id,
                "tags": r.tags,
                "entry_id": r.entry_id,
                "raw_rows": r.raw_rows,
                "reason": r.findings[0].reason if r.findings else "",
            }
            for r in issues
        ]
