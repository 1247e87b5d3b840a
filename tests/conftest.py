"""Shared fixtures: a fixed audit week and small builders for plan/observation rows."""

from datetime import date

import pytest

from models import ActualRecord, AuditConfig, ExpectedEntry, SourceKind, TimeWindow, VisitRole

MONDAY = date(2026, 1, 19)
AFTER_WEEK = date(2026, 1, 26)


@pytest.fixture
def config():
    return AuditConfig()


@pytest.fixture
def make_entry():
    counter = {"n": 0}

    def _make(patient="P1", staff="S1", day=MONDAY, window=(540, 720), source=SourceKind.MASTER, **kw):
        counter["n"] += 1
        return ExpectedEntry(
            entry_id=kw.pop("entry_id", f"E{counter['n']}"),
            patient_id=patient,
            staff_id=staff,
            date=day,
            source=source,
            window=TimeWindow(earliest_min=window[0], latest_min=window[1]) if window else None,
            **kw
        )
    return _make


@pytest.fixture
def make_record():
    def _make(patient="P1", staff="S1", day=MONDAY, start="09:15", end="10:00", raw_row=2,
              role=VisitRole.MAIN, **kw):
        return ActualRecord(
            date=day,
            patient_id=patient,
            staff_id=staff,
            start=start,
            end=end,
            raw_row=raw_row,
            role=role,
            **kw
        )
    return _make
