"""
Expected schedule data models for the Visit Audit system.

This module defines the 'Plan' side of the audit:
1. Time windows (when a visit is allowed to start)
2. Expected entries derived from the master schedule, the change log and specials
"""

from datetime import date as date_type
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

MINUTES_PER_DAY = 1440


class SourceKind(str, Enum):
    """Where an expected entry came from."""
    MASTER = "MASTER"
    CHANGE = "CHANGE"
    SPECIAL_ADD = "SPECIAL_ADD"
    SPECIAL_REPLACE = "SPECIAL_REPLACE"


class ChangeOp(str, Enum):
    """Operation recorded in the change log (labels as staff type them)."""
    CANCEL = "キャンセル"
    TIME_CHANGE = "時間変更"
    ADD = "追加"


class TimeType(str, Enum):
    """How the planned visit time is expressed."""
    FIXED = "固定"
    RANGE = "時間帯"
    MORNING = "午前"
    AFTERNOON = "午後"
    ALL_DAY = "終日"


class TimeWindow(BaseModel):
    """Allowed start range for a visit, in minutes from midnight."""

    earliest_min: int = Field(ge=0, le=MINUTES_PER_DAY, description="Earliest allowed start")
    latest_min: int = Field(ge=0, le=MINUTES_PER_DAY, description="Latest allowed start")

    model_config = ConfigDict(frozen=True)

    @model_validator(mode='after')
    def validate_order(self):
        if self.latest_min < self.earliest_min:
            raise ValueError("latest_min cannot be before earliest_min")
        return self

    @property
    def is_instant(self) -> bool:
        return self.earliest_min == self.latest_min

    def offset_of(self, minute: int) -> int:
        """Signed distance from the window (0 when inside)."""
        if minute < self.earliest_min:
            return minute - self.earliest_min
        if minute > self.latest_min:
            return minute - self.latest_min
        return 0

    def overlaps(self, other: "TimeWindow") -> bool:
        """
        Interval overlap test.
        Instants use closed bounds so two visits booked at the same minute clash;
        proper ranges are half-open so back-to-back windows do not.
        """
        if self.is_instant or other.is_instant:
            return self.earliest_min <= other.latest_min and other.earliest_min <= self.latest_min
        return self.earliest_min < other.latest_min and other.earliest_min < self.latest_min


class ExpectedEntry(BaseModel):
    """
    One planned unit of work.
    Read-only input to the reconciliation engine.
    """

    # --- Identity ---
    entry_id: str = Field(description="Deterministic identifier (source:patient:date:seq)")
    patient_id: str = Field(description="Patient identifier")
    staff_id: str = Field(default="", description="Assigned staff, empty when unassigned")
    date: date_type = Field(description="Calendar date of the visit")

    # --- Provenance ---
    source: SourceKind = Field(description="Master schedule, change log or special entry")
    op: Optional[ChangeOp] = Field(default=None, description="Change operation (CHANGE only)")

    # --- Timing ---
    time_type: Optional[TimeType] = Field(default=None, description="How the time was planned")
    window: Optional[TimeWindow] = Field(
        default=None,
        description="Explicit start window; None falls back to the time-type defaults"
    )
    time_text: str = Field(default="", description="Raw time cells, kept for traceability")
    time_invalid: bool = Field(default=False, description="Explicit time cells were present but unparsable or reversed")

    model_config = ConfigDict(frozen=True)

    @model_validator(mode='after')
    def validate_op(self):
        if self.op is not None and self.source != SourceKind.CHANGE:
            raise ValueError("Only CHANGE entries carry an operation")
        return self

    @property
    def is_cancel(self) -> bool:
        return self.op == ChangeOp.CANCEL

    def resolve_window(self, defaults: Dict[TimeType, TimeWindow]) -> Optional[TimeWindow]:
        """
        Explicit window first, then the default table for the time type.
        Unparsable time cells never fall back to the defaults.
        """
        if self.time_invalid:
            return None
        if self.window is not None:
            return self.window
        if self.time_type is None:
            return None
        return defaults.get(self.time_type)
