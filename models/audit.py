"""
Audit result data models for the Visit Audit system.

This module defines the 'Output' of the reconciliation engine:
one immutable verdict per expected entry or unplanned visit.
"""

from datetime import date as date_type
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from normalizer.temporal import format_date_str

from .schedule import ChangeOp, SourceKind

RESULT_COLUMNS = [
    'key', 'ymd', 'patient_id', 'staff_id', 'status', 'tags',
    'entry_id', 'source', 'raw_rows', 'offset_min'
]


class AuditStatus(str, Enum):
    """Verdict, ordered OK < WARN < NG."""
    OK = "OK"
    WARN = "WARN"
    NG = "NG"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {AuditStatus.OK: 0, AuditStatus.WARN: 1, AuditStatus.NG: 2}


class AuditTag(str, Enum):
    """Reason labels. Declaration order is rule precedence within a status."""
    # NG
    CANCELLED_BUT_VISITED = "CANCELLED_BUT_VISITED"
    UNASSIGNED = "UNASSIGNED"
    EVENT_CONFLICT = "EVENT_CONFLICT"
    OUT_OF_WINDOW = "OUT_OF_WINDOW"
    TIME_PARSE_ERROR = "TIME_PARSE_ERROR"
    # WARN
    MISSING_ACTUAL = "MISSING_ACTUAL"
    TIME_DIFF = "TIME_DIFF"
    EXTRA_ACTUAL = "EXTRA_ACTUAL"
    # OK
    MASTER = "MASTER"
    CHANGE_TIME = "CHANGE(時間変更)"
    CHANGE_ADD = "CHANGE(追加)"
    CHANGE_CANCEL = "CHANGE(キャンセル)"
    SPECIAL_ADD = "SPECIAL_ADD"
    SPECIAL_REPLACE = "SPECIAL_REPLACE"

    @property
    def status(self) -> AuditStatus:
        return TAG_STATUS[self]

    @property
    def precedence(self) -> int:
        return list(AuditTag).index(self)


TAG_STATUS: Dict[AuditTag, AuditStatus] = {
    AuditTag.CANCELLED_BUT_VISITED: AuditStatus.NG,
    AuditTag.UNASSIGNED: AuditStatus.NG,
    AuditTag.EVENT_CONFLICT: AuditStatus.NG,
    AuditTag.OUT_OF_WINDOW: AuditStatus.NG,
    AuditTag.TIME_PARSE_ERROR: AuditStatus.NG,
    AuditTag.MISSING_ACTUAL: AuditStatus.WARN,
    AuditTag.TIME_DIFF: AuditStatus.WARN,
    AuditTag.EXTRA_ACTUAL: AuditStatus.WARN,
    AuditTag.MASTER: AuditStatus.OK,
    AuditTag.CHANGE_TIME: AuditStatus.OK,
    AuditTag.CHANGE_ADD: AuditStatus.OK,
    AuditTag.CHANGE_CANCEL: AuditStatus.OK,
    AuditTag.SPECIAL_ADD: AuditStatus.OK,
    AuditTag.SPECIAL_REPLACE: AuditStatus.OK,
}

_CHANGE_TAGS = {
    ChangeOp.TIME_CHANGE: AuditTag.CHANGE_TIME,
    ChangeOp.ADD: AuditTag.CHANGE_ADD,
    ChangeOp.CANCEL: AuditTag.CHANGE_CANCEL,
}


def source_tag(source: SourceKind, op: Optional[ChangeOp] = None) -> AuditTag:
    """OK-class tag describing where a clean entry came from."""
    if source == SourceKind.MASTER:
        return AuditTag.MASTER
    if source == SourceKind.SPECIAL_ADD:
        return AuditTag.SPECIAL_ADD
    if source == SourceKind.SPECIAL_REPLACE:
        return AuditTag.SPECIAL_REPLACE
    if source == SourceKind.CHANGE:
        # Change entries without an operation are treated as time changes
        return _CHANGE_TAGS.get(op, AuditTag.CHANGE_TIME)
    raise ValueError(f"Unhandled source kind: {source}")


class Finding(BaseModel):
    """A single rule that fired, with the minute offset for TIME_DIFF."""

    tag: AuditTag
    offset_min: Optional[int] = None
    reason: str = ""

    model_config = ConfigDict(frozen=True)

    @property
    def label(self) -> str:
        if self.tag == AuditTag.TIME_DIFF and self.offset_min is not None:
            return f"TIME_DIFF({self.offset_min:+d}m)"
        return self.tag.value


class AuditResult(BaseModel):
    """
    Classification outcome for one expected entry or one unplanned visit.
    Never mutated; a re-run replaces the whole result set.
    """

    key: str = Field(description="Patient-day key the result was grouped under")
    date: date_type
    patient_id: str = Field(default="")
    staff_id: str = Field(default="")

    status: AuditStatus
    tags: List[str] = Field(description="Fired tags, worst first")
    findings: List[Finding] = Field(default_factory=list)

    entry_id: Optional[str] = Field(default=None, description="Expected entry, None for extra visits")
    source: Optional[SourceKind] = Field(default=None)
    raw_rows: List[int] = Field(default_factory=list, description="Source CSV rows of the matched visit")
    offset_min: Optional[int] = Field(default=None, description="Signed start offset from the window")

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_findings(cls, findings: List[Finding], **fields: Any) -> "AuditResult":
        """Order findings by severity then precedence; status is the worst one."""
        ordered = sorted(findings, key=lambda f: (-f.tag.status.severity, f.tag.precedence))
        status = ordered[0].tag.status if ordered else AuditStatus.OK
        return cls(
            status=status,
            tags=[f.label for f in ordered],
            findings=ordered,
            **fields
        )

    def has_tag(self, tag: AuditTag) -> bool:
        return any(f.tag == tag for f in self.findings)

    def to_row(self) -> List[Any]:
        """Render in RESULT_COLUMNS order."""
        values = {
            'key': self.key,
            'ymd': format_date_str(self.date),
            'patient_id': self.patient_id,
            'staff_id': self.staff_id,
            'status': self.status.value,
            'tags': ", ".join(self.tags),
            'entry_id': self.entry_id or "",
            'source': self.source.value if self.source else "",
            'raw_rows': ",".join(str(r) for r in self.raw_rows),
            'offset_min': "" if self.offset_min is None else self.offset_min,
        }
        return [values[column] for column in RESULT_COLUMNS]
