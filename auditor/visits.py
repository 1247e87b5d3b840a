"""
Grouping of actual records into visits.

The partner export lists one row per visit with up to three staff members;
after normalization each staff member is a separate ActualRecord. Records that
share a patient-day key and a source row are one visit again here.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from models import ActualRecord, VisitRole
from normalizer.keys import patient_day_key, staff_day_key

VisitId = Tuple[str, int]


@dataclass
class Visit:
    """One observed visit: the MAIN record plus any ACCOMPANY records."""
    key: str
    raw_row: int
    records: List[ActualRecord] = field(default_factory=list)

    @property
    def visit_id(self) -> VisitId:
        return (self.key, self.raw_row)

    @property
    def main(self) -> ActualRecord:
        for record in self.records:
            if record.role == VisitRole.MAIN:
                return record
        return self.records[0]

    @property
    def start_min(self) -> Optional[int]:
        return self.main.start_min

    @property
    def staff_ids(self) -> List[str]:
        return [r.staff_id for r in self.records]

    @property
    def has_unresolved_staff(self) -> bool:
        return any(not r.staff_id for r in self.records)

    @property
    def has_unresolved_patient(self) -> bool:
        return not self.main.patient_id


def group_visits(records: List[ActualRecord]) -> Dict[str, List[Visit]]:
    """patient-day key -> visits, in source row order."""
    visits: Dict[VisitId, Visit] = {}
    for record in records:
        key = patient_day_key(record.patient_id, record.date)
        vid = (key, record.raw_row)
        if vid not in visits:
            visits[vid] = Visit(key=key, raw_row=record.raw_row)
        visits[vid].records.append(record)

    by_key: Dict[str, List[Visit]] = defaultdict(list)
    for vid in sorted(visits, key=lambda v: (v[0], v[1])):
        by_key[vid[0]].append(visits[vid])
    return dict(by_key)


def group_by_staff_day(records: List[ActualRecord]) -> Dict[str, List[ActualRecord]]:
    """staff-day key -> records. Records without a staff id are left out."""
    groups: Dict[str, List[ActualRecord]] = defaultdict(list)
    for record in records:
        if record.staff_id:
            groups[staff_day_key(record.staff_id, record.date)].append(record)
    return dict(groups)
