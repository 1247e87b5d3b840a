from datetime import date, datetime, time, timedelta

import pytest

from normalizer.temporal import (
    Weekday,
    format_date_str,
    format_minutes,
    minutes_to_day_serial,
    normalize_weekday,
    parse_date,
    parse_time_to_minutes,
    parse_weekday_list,
    to_number,
    week_end,
    week_start,
    weekday_of,
)


@pytest.mark.parametrize("value, expected", [
    ("2026/01/19", date(2026, 1, 19)),
    ("2026-1-9", date(2026, 1, 9)),
    ("２０２６/０１/１９", date(2026, 1, 19)),
    ("2026年1月19日", date(2026, 1, 19)),
    ("2026/01/19 09:30", date(2026, 1, 19)),
    (46041, date(2026, 1, 19)),
    (datetime(2026, 1, 19, 9, 30), date(2026, 1, 19)),
    (date(2026, 1, 19), date(2026, 1, 19)),
])
def test_parse_date_accepts_known_spellings(value, expected):
    assert parse_date(value) == expected


@pytest.mark.parametrize("value", [None, "", "   ", "2026/02/30", "xyz", 100, 70000])
def test_parse_date_returns_none_on_garbage(value):
    assert parse_date(value) is None


def test_format_date_str_pads():
    assert format_date_str(date(2026, 1, 5)) == "2026/01/05"
    assert format_date_str("2026-1-5") == "2026/01/05"
    assert format_date_str("??") is None


@pytest.mark.parametrize("value, expected", [
    ("9:30", 570),
    ("09:30:00", 570),
    ("０９：３０", 570),
    ("9時30分", 570),
    ("9時30", 570),
    ("9時", 540),
    ("24:00", 1440),
    (0.375, 540),
    (570, 570),
    (time(9, 30), 570),
    (datetime(2026, 1, 19, 13, 5), 785),
])
def test_parse_time_to_minutes(value, expected):
    assert parse_time_to_minutes(value) == expected


@pytest.mark.parametrize("value", [None, "", "9:75", "25:00", "abc", "9-30", 1500, -1])
def test_parse_time_to_minutes_rejects(value):
    assert parse_time_to_minutes(value) is None


def test_minutes_round_trip():
    for m in range(0, 1440):
        assert parse_time_to_minutes(format_minutes(m)) == m


def test_format_minutes():
    assert format_minutes(0) == "00:00"
    assert format_minutes(555) == "09:15"
    assert format_minutes(None) == ""
    assert minutes_to_day_serial(720) == 0.5
    assert minutes_to_day_serial(None) is None


@pytest.mark.parametrize("label, expected", [
    ("月", "Mon"), ("火曜", "Tue"), ("水曜日", "Wed"), ("Thursday", "Thu"),
    ("fri", "Fri"), ("SATURDAY", "Sat"), ("日", "Sun"), (" Sun ", "Sun"),
])
def test_normalize_weekday(label, expected):
    assert normalize_weekday(label) == expected


def test_normalize_weekday_is_idempotent():
    labels = ["月", "火", "水", "木", "金", "土", "日", "月曜日", "Monday", "sunday"]
    labels += [w.value for w in Weekday]
    for label in labels:
        once = normalize_weekday(label)
        assert normalize_weekday(once) == once


def test_normalize_weekday_keeps_unknown_labels():
    assert normalize_weekday(" 祝 ") == "祝"
    assert normalize_weekday(None) == ""


def test_parse_weekday_list():
    assert parse_weekday_list("月,水 金") == ["Mon", "Wed", "Fri"]
    assert parse_weekday_list("Tue/Thu、土") == ["Tue", "Thu", "Sat"]
    assert parse_weekday_list("") == []
    assert parse_weekday_list(None) == []


def test_week_start_is_monday_and_stable():
    day = date(2026, 1, 1)
    for offset in range(60):
        d = day + timedelta(days=offset)
        start = week_start(d)
        assert start.weekday() == 0
        assert week_start(start) == start
        assert start <= d <= week_end(start)


def test_weekday_of():
    assert weekday_of(date(2026, 1, 19)) == "Mon"
    assert weekday_of(date(2026, 1, 25)) == "Sun"


@pytest.mark.parametrize("value, expected", [
    ("60", 60.0),
    ("６０分", 60.0),
    (" 1.5h", 1.5),
    (45, 45),
    ("", None),
    ("abc", None),
])
def test_to_number(value, expected):
    assert to_number(value) == expected


def test_to_number_default():
    assert to_number("n/a", 0) == 0


@pytest.mark.parametrize("value, expected", [
    (570.5, 571),
    (2.5, 3),
    (0.375, 540),
    (1439.5, 1440),
])
def test_half_minutes_round_up(value, expected):
    assert parse_time_to_minutes(value) == expected
