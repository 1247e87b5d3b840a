from datetime import date

import pytest

from importer.visit_csv import CsvCol, expand_row, normalize_clock, normalize_rows, parse_year_month
from models import NORMALIZED_COLUMNS, ActualRecord, VisitRole

STAFF = {"山田太郎": "S001", "佐藤花子": "S002", "田中次郎": "S003"}
PATIENTS = {"鈴木一郎": "P001"}


def export_row(staff1="山田 太郎", staff2="", staff3="", day="19", patient="鈴木 一郎",
               start="9:05", end="10:00", **extra):
    row = [""] * CsvCol.WIDTH
    row[CsvCol.STAFF1_NAME] = staff1
    row[CsvCol.STAFF2_NAME] = staff2
    row[CsvCol.STAFF3_NAME] = staff3
    row[CsvCol.DAY] = day
    row[CsvCol.DOW] = "月"
    row[CsvCol.PATIENT_NAME] = patient
    row[CsvCol.START_TIME] = start
    row[CsvCol.END_TIME] = end
    row[CsvCol.DURATION] = "55"
    for name, value in extra.items():
        row[getattr(CsvCol, name)] = value
    return row


def test_single_staff_row():
    records = expand_row(export_row(NOTE="初回"), 2, 2026, 1, STAFF, PATIENTS)
    assert len(records) == 1
    rec = records[0]
    assert rec.date == date(2026, 1, 19)
    assert rec.staff_id == "S001"
    assert rec.patient_id == "P001"
    assert rec.patient_name == "鈴木一郎"
    assert rec.start == "09:05"
    assert rec.start_min == 545
    assert rec.role == VisitRole.MAIN
    assert rec.note == "初回"
    assert rec.raw_row == 2


def test_three_staff_fan_out_keeps_slot_order():
    records = expand_row(export_row(staff2="佐藤 花子", staff3="田中次郎"), 5, 2026, 1, STAFF, PATIENTS)
    assert [r.staff_id for r in records] == ["S001", "S002", "S003"]
    assert [r.role for r in records] == [VisitRole.MAIN, VisitRole.ACCOMPANY, VisitRole.ACCOMPANY]
    assert {r.raw_row for r in records} == {5}


def test_empty_first_slot_yields_no_main():
    records = expand_row(export_row(staff1="", staff2="佐藤花子", staff3="田中次郎"), 2, 2026, 1, STAFF, PATIENTS)
    assert len(records) == 2
    assert all(r.role == VisitRole.ACCOMPANY for r in records)
    assert [r.staff_id for r in records] == ["S002", "S003"]


@pytest.mark.parametrize("day", ["", "32", "abc", None])
def test_rows_without_valid_day_are_skipped(day):
    assert expand_row(export_row(day=day), 2, 2026, 1, STAFF, PATIENTS) == []


def test_unknown_names_are_kept_with_empty_ids():
    records = expand_row(export_row(staff1="不明 職員", patient="不明 利用者"), 2, 2026, 1, STAFF, PATIENTS)
    assert len(records) == 1
    assert records[0].staff_id == ""
    assert records[0].staff_name == "不明職員"
    assert records[0].patient_id == ""


def test_short_rows_do_not_fail():
    row = ["山田太郎", "", "", "", "", "", "", "", "", "3"]
    records = expand_row(row, 2, 2026, 2, STAFF, PATIENTS)
    assert len(records) == 1
    assert records[0].date == date(2026, 2, 3)
    assert records[0].start == ""
    assert records[0].start_min is None


def test_normalize_rows_numbers_rows_like_the_file():
    rows = [export_row(day="19"), export_row(day=""), export_row(day="20", staff2="佐藤花子")]
    records = normalize_rows(rows, "2026/01", STAFF, PATIENTS)
    assert [(r.raw_row, r.role) for r in records] == [
        (2, VisitRole.MAIN), (4, VisitRole.MAIN), (4, VisitRole.ACCOMPANY)
    ]


@pytest.mark.parametrize("value", ["2026/13", "202601", "", "2026/1/1"])
def test_parse_year_month_rejects(value):
    with pytest.raises(ValueError):
        parse_year_month(value)


def test_parse_year_month():
    assert parse_year_month("2026/01") == (2026, 1)
    assert parse_year_month("2026-1") == (2026, 1)


@pytest.mark.parametrize("value, expected", [
    ("9:05", "09:05"),
    ("09:05〜", "09:05"),
    ("開始 13:30", "13:30"),
    (0.375, "09:00"),
    ("0.375", "09:00"),
    (".5", "12:00"),
    ("0時30分", "0時30分"),
    ("未定", "未定"),
    (None, ""),
])
def test_normalize_clock(value, expected):
    assert normalize_clock(value) == expected


def test_normalized_row_reads_back():
    record = expand_row(export_row(staff2="佐藤花子"), 7, 2026, 1, STAFF, PATIENTS)[1]
    row = [str(v) for v in record.to_row()]
    assert row[NORMALIZED_COLUMNS.index("ymd")] == "2026/01/19"
    assert row[NORMALIZED_COLUMNS.index("role")] == "ACCOMPANY"

    again = ActualRecord.from_row(NORMALIZED_COLUMNS, row)
    assert again == record


def test_from_row_without_date_is_dropped():
    row = [""] * len(NORMALIZED_COLUMNS)
    assert ActualRecord.from_row(NORMALIZED_COLUMNS, row) is None
