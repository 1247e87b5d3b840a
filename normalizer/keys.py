"""
Composite grouping keys.

Keys are plain "<id>|<date>" strings. Exact equality is the only matching
criterion; partially identified records still get a key (with an empty
segment).
"""

from datetime import date
from typing import Any

from .temporal import format_date_str

KEY_SEPARATOR = "|"


def _segment(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, date):
        return format_date_str(value)
    return str(value).strip()


def patient_day_key(patient_id: Any, day: Any) -> str:
    return _segment(patient_id) + KEY_SEPARATOR + _segment(day)


def staff_day_key(staff_id: Any, day: Any) -> str:
    return _segment(staff_id) + KEY_SEPARATOR + _segment(day)


def patient_week_key(patient_id: Any, week_start_day: Any) -> str:
    return _segment(patient_id) + KEY_SEPARATOR + _segment(week_start_day)
