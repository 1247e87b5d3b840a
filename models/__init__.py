"""
Data models package for the Visit Audit system.

This package exports the three core pillars of the data architecture:
1. Plan (ExpectedEntry, TimeWindow)
2. Observation (ActualRecord)
3. Output (AuditResult, AuditStatus, AuditTag)
"""

from .schedule import (
    ChangeOp,
    ExpectedEntry,
    SourceKind,
    TimeType,
    TimeWindow
)

from .visit import (
    ActualRecord,
    NORMALIZED_COLUMNS,
    VisitRole
)

from .audit import (
    AuditResult,
    AuditStatus,
    AuditTag,
    Finding,
    RESULT_COLUMNS,
    source_tag
)

from .config import AuditConfig

__all__ = [
    # --- Plan Models ---
    "ChangeOp",
    "ExpectedEntry",
    "SourceKind",
    "TimeType",
    "TimeWindow",

    # --- Observation Models ---
    "ActualRecord",
    "NORMALIZED_COLUMNS",
    "VisitRole",

    # --- Output Models ---
    "AuditResult",
    "AuditStatus",
    "AuditTag",
    "Finding",
    "RESULT_COLUMNS",
    "source_tag",

    # --- Run Configuration ---
    "AuditConfig",
]
