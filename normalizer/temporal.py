"""
Temporal Normalizer.

Turns the date/time/weekday spellings found in schedules and partner exports
into canonical values:
- calendar dates (datetime.date)
- minute-of-day integers in [0, 1440]
- 3-letter English weekday tags

Every parser is total: input it cannot interpret yields None (or the default),
never an exception.
"""

import logging
import re
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, List, Optional

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 1440

# Spreadsheet day-count serials (1899-12-30 epoch). Only the 1909..2064 range is
# accepted as a date; anything else is treated as unparsable.
SERIAL_EPOCH = date(1899, 12, 30)
SERIAL_MIN = 40000
SERIAL_MAX = 60000

_FULL_WIDTH = str.maketrans("０１２３４５６７８９：．－", "0123456789:.-")

_YMD_RE = re.compile(r"^(\d{4})[/\-](\d{1,2})[/\-](\d{1,2})")
_KANJI_YMD_RE = re.compile(r"^(\d{4})年(\d{1,2})月(\d{1,2})日")
_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2})?$")
_KANJI_HM_RE = re.compile(r"^(\d{1,2})時(\d{1,2})分?$")
_KANJI_H_RE = re.compile(r"^(\d{1,2})時$")
_NUMBER_PREFIX_RE = re.compile(r"^[+\-]?(?:\d+(?:\.\d*)?|\.\d+)")
_WEEKDAY_SPLIT_RE = re.compile(r"[,/、\s]+")


class Weekday(str, Enum):
    """Canonical weekday tags (declaration order matches date.weekday())."""
    MON = "Mon"
    TUE = "Tue"
    WED = "Wed"
    THU = "Thu"
    FRI = "Fri"
    SAT = "Sat"
    SUN = "Sun"


_WEEKDAY_LABELS = {
    '日': Weekday.SUN, '日曜': Weekday.SUN, '日曜日': Weekday.SUN, 'Sunday': Weekday.SUN,
    '月': Weekday.MON, '月曜': Weekday.MON, '月曜日': Weekday.MON, 'Monday': Weekday.MON,
    '火': Weekday.TUE, '火曜': Weekday.TUE, '火曜日': Weekday.TUE, 'Tuesday': Weekday.TUE,
    '水': Weekday.WED, '水曜': Weekday.WED, '水曜日': Weekday.WED, 'Wednesday': Weekday.WED,
    '木': Weekday.THU, '木曜': Weekday.THU, '木曜日': Weekday.THU, 'Thursday': Weekday.THU,
    '金': Weekday.FRI, '金曜': Weekday.FRI, '金曜日': Weekday.FRI, 'Friday': Weekday.FRI,
    '土': Weekday.SAT, '土曜': Weekday.SAT, '土曜日': Weekday.SAT, 'Saturday': Weekday.SAT,
}
_WEEKDAY_LABELS.update({w.value: w for w in Weekday})
_WEEKDAY_LABELS_LOWER = {k.lower(): v for k, v in _WEEKDAY_LABELS.items() if k.isascii()}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def to_half_width(text: str) -> str:
    """Fold full-width digits, colon, period and hyphen to ASCII."""
    return str(text).translate(_FULL_WIDTH)


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

def parse_date(value: Any) -> Optional[date]:
    """
    Parse a calendar date from a date object, a spreadsheet serial or a string.

    String fallback chain (first hit wins):
      1. yyyy/M/d or yyyy-M-d (leading component)
      2. yyyy年M月d日
      3. dateutil general parse
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    if _is_number(value):
        if SERIAL_MIN < value < SERIAL_MAX:
            return SERIAL_EPOCH + timedelta(days=int(value))
        return None

    s = to_half_width(str(value)).strip()
    if not s:
        return None

    for pattern in (_YMD_RE, _KANJI_YMD_RE):
        match = pattern.match(s)
        if match:
            try:
                return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
            except ValueError:
                return None

    try:
        return date_parser.parse(s).date()
    except (ValueError, OverflowError):
        logger.debug(f"Unparsable date value: {s!r}")
        return None


def format_date_str(value: Any) -> Optional[str]:
    """Format any parsable date as yyyy/MM/dd."""
    d = parse_date(value)
    if d is None:
        return None
    return f"{d.year:04d}/{d.month:02d}/{d.day:02d}"


def week_start(d: date) -> date:
    """Monday of the ISO week containing d."""
    if isinstance(d, datetime):
        d = d.date()
    return d - timedelta(days=d.weekday())


def week_end(start: date) -> date:
    """Sunday closing the week that begins on start."""
    return start + timedelta(days=6)


def weekday_of(d: date) -> str:
    return list(Weekday)[d.weekday()].value


# ---------------------------------------------------------------------------
# Clock times
# ---------------------------------------------------------------------------

def parse_time_to_minutes(value: Any) -> Optional[int]:
    """
    Convert a clock value to minutes from midnight (0..1440).

    Accepts datetime/time objects, day fractions in [0, 1), raw minute counts
    in [0, 1440] and the strings H:mm, H時mm分, H時.
    """
    if value is None or value == "":
        return None

    if isinstance(value, (datetime, time)):
        return value.hour * 60 + value.minute

    if _is_number(value):
        # Half-minutes round up
        if 0 <= value < 1:
            return int(value * MINUTES_PER_DAY + 0.5)
        if 0 <= value <= MINUTES_PER_DAY:
            return int(value + 0.5)
        return None

    s = to_half_width(str(value)).strip()
    if not s:
        return None

    hours = minutes = None
    match = _CLOCK_RE.match(s) or _KANJI_HM_RE.match(s)
    if match:
        hours, minutes = int(match.group(1)), int(match.group(2))
    else:
        match = _KANJI_H_RE.match(s)
        if match:
            hours, minutes = int(match.group(1)), 0

    if hours is None or minutes >= 60:
        return None
    total = hours * 60 + minutes
    if total > MINUTES_PER_DAY:
        return None
    return total


def format_minutes(minutes: Optional[int]) -> str:
    """Minutes from midnight as HH:MM. Callers guarantee the range."""
    if minutes is None:
        return ""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def minutes_to_day_serial(minutes: Optional[int]) -> Optional[float]:
    """Minutes from midnight as a spreadsheet day fraction."""
    if minutes is None:
        return None
    return minutes / MINUTES_PER_DAY


# ---------------------------------------------------------------------------
# Weekdays & numbers
# ---------------------------------------------------------------------------

def normalize_weekday(label: Any) -> str:
    """
    Map kanji or English weekday spellings to Mon..Sun.
    Unknown labels are returned trimmed but otherwise unchanged.
    """
    s = str(label if label is not None else "").strip()
    hit = _WEEKDAY_LABELS.get(s) or _WEEKDAY_LABELS_LOWER.get(s.lower())
    return hit.value if hit else s


def parse_weekday_list(text: Any) -> List[str]:
    """Split '月,水,金' / 'Mon/Wed Fri' style lists into normalized tags."""
    if text is None:
        return []
    s = str(text).strip()
    if not s:
        return []
    return [normalize_weekday(part) for part in _WEEKDAY_SPLIT_RE.split(s) if part.strip()]


def to_number(value: Any, default: Any = None) -> Any:
    """
    Numeric value of a cell, folding full-width digits first.
    Parses the leading numeric prefix ('60分' -> 60.0); returns default otherwise.
    """
    if value is None or value == "":
        return default
    if _is_number(value):
        return value

    s = to_half_width(str(value)).strip()
    match = _NUMBER_PREFIX_RE.match(s)
    if not match:
        return default
    return float(match.group(0))
