"""
Actual visit data models for the Visit Audit system.

This module defines the 'Observed' side of the audit: visit records
normalized from the partner system's CSV export.
"""

from datetime import date as date_type
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from normalizer.temporal import format_date_str, parse_date, parse_time_to_minutes, to_number

SOURCE_LABEL = "KAIPOKE"

# Fixed schema of the normalized visit table.
NORMALIZED_COLUMNS = [
    'source', 'ymd', 'dow', 'staff_name', 'staff_id',
    'patient_name', 'patient_id', 'start', 'end', 'duration_min',
    'role', 'business_type', 'service_type', 'note', 'raw_row'
]


class VisitRole(str, Enum):
    """Role of the staff member on the visit."""
    MAIN = "MAIN"
    ACCOMPANY = "ACCOMPANY"


class ActualRecord(BaseModel):
    """
    One observed visit for one staff member.
    A single CSV row fans out into one record per staff slot.
    """

    source: str = Field(default=SOURCE_LABEL, description="Exporting system")
    date: date_type = Field(description="Calendar date of the visit")
    dow: str = Field(default="", description="Weekday label as exported")

    staff_name: str = Field(default="", description="Normalized staff name")
    staff_id: str = Field(default="", description="Resolved staff id, empty on lookup miss")
    patient_name: str = Field(default="", description="Normalized patient name")
    patient_id: str = Field(default="", description="Resolved patient id, empty on lookup miss")

    start: str = Field(default="", description="Start time, HH:MM when parsable")
    end: str = Field(default="", description="End time, HH:MM when parsable")
    duration_min: str = Field(default="", description="Service duration as exported")

    role: VisitRole = Field(description="MAIN for staff slot 1, ACCOMPANY for slots 2 and 3")
    business_type: str = Field(default="")
    service_type: str = Field(default="")
    note: str = Field(default="")
    raw_row: int = Field(ge=0, description="1-based row number in the source CSV (header is row 1)")

    model_config = ConfigDict(frozen=True)

    @property
    def ymd(self) -> str:
        return format_date_str(self.date)

    @property
    def start_min(self) -> Optional[int]:
        return parse_time_to_minutes(self.start)

    @property
    def end_min(self) -> Optional[int]:
        return parse_time_to_minutes(self.end)

    def to_row(self) -> List[Any]:
        """Render in NORMALIZED_COLUMNS order."""
        values = self.model_dump(mode='json')
        values['ymd'] = self.ymd
        return [values.get(column, "") for column in NORMALIZED_COLUMNS]

    @classmethod
    def from_row(cls, headers: Sequence[str], row: Sequence[Any]) -> Optional["ActualRecord"]:
        """
        Rebuild a record from a normalized table row.
        Returns None when the row has no usable date.
        """
        values: Dict[str, Any] = {}
        for i, header in enumerate(headers):
            key = str(header).strip()
            if key in NORMALIZED_COLUMNS:
                values[key] = row[i] if i < len(row) else ""

        visit_date = parse_date(values.pop('ymd', None))
        if visit_date is None:
            return None

        role_text = str(values.get('role') or VisitRole.MAIN.value).strip()
        try:
            role = VisitRole(role_text)
        except ValueError:
            role = VisitRole.ACCOMPANY

        text = {k: "" if v is None else str(v).strip() for k, v in values.items()}
        return cls(
            source=text.get('source') or SOURCE_LABEL,
            date=visit_date,
            dow=text.get('dow', ""),
            staff_name=text.get('staff_name', ""),
            staff_id=text.get('staff_id', ""),
            patient_name=text.get('patient_name', ""),
            patient_id=text.get('patient_id', ""),
            start=text.get('start', ""),
            end=text.get('end', ""),
            duration_min=text.get('duration_min', ""),
            role=role,
            business_type=text.get('business_type', ""),
            service_type=text.get('service_type', ""),
            note=text.get('note', ""),
            raw_row=int(to_number(values.get('raw_row'), 0)),
        )
