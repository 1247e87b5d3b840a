from datetime import date

import pytest

from auditor.engine import ReconciliationEngine
from models import AuditConfig, AuditStatus, AuditTag, ChangeOp, SourceKind, TimeType, VisitRole

MONDAY = date(2026, 1, 19)
AFTER_WEEK = date(2026, 1, 26)


def run(expected, actuals, run_date=AFTER_WEEK, config=None):
    return ReconciliationEngine(expected, actuals, config or AuditConfig(), run_date).run()


def only(state):
    assert len(state.results) == 1
    return state.results[0]


@pytest.mark.parametrize("start, status, tags, offset", [
    ("09:15", AuditStatus.OK, ["MASTER"], 0),
    ("12:00", AuditStatus.OK, ["MASTER"], 0),
    ("12:15", AuditStatus.WARN, ["TIME_DIFF(+15m)"], 15),
    ("12:16", AuditStatus.NG, ["OUT_OF_WINDOW"], 16),
    ("08:45", AuditStatus.WARN, ["TIME_DIFF(-15m)"], -15),
    ("08:44", AuditStatus.NG, ["OUT_OF_WINDOW"], -16),
])
def test_time_window_classification(make_entry, make_record, start, status, tags, offset):
    result = only(run([make_entry()], [make_record(start=start)]))
    assert result.status == status
    assert result.tags == tags
    assert result.offset_min == offset
    assert result.raw_rows == [2]
    assert result.key == "P1|2026/01/19"


def test_buffer_comes_from_config(make_entry, make_record):
    result = only(run([make_entry()], [make_record(start="12:16")], config=AuditConfig(time_buffer_min=30)))
    assert result.status == AuditStatus.WARN
    assert result.tags == ["TIME_DIFF(+16m)"]


def test_time_type_defaults_apply(make_entry, make_record):
    entry = make_entry(window=None, time_type=TimeType.AFTERNOON)
    result = only(run([entry], [make_record(start="13:30")]))
    assert result.status == AuditStatus.OK


def test_cancelled_but_visited(make_entry, make_record):
    entry = make_entry(source=SourceKind.CHANGE, op=ChangeOp.CANCEL)
    result = only(run([entry], [make_record()]))
    assert result.status == AuditStatus.NG
    assert result.tags == ["CANCELLED_BUT_VISITED"]
    assert result.raw_rows == [2]


def test_cancelled_and_not_visited_is_ok(make_entry):
    entry = make_entry(source=SourceKind.CHANGE, op=ChangeOp.CANCEL)
    result = only(run([entry], []))
    assert result.status == AuditStatus.OK
    assert result.tags == ["CHANGE(キャンセル)"]


def test_missing_actual_only_up_to_run_date(make_entry):
    past = only(run([make_entry()], [], run_date=MONDAY))
    assert past.status == AuditStatus.WARN
    assert past.tags == ["MISSING_ACTUAL"]

    future = only(run([make_entry()], [], run_date=date(2026, 1, 18)))
    assert future.status == AuditStatus.OK
    assert future.tags == ["MASTER"]


def test_extra_actual(make_record):
    result = only(run([], [make_record(raw_row=9)]))
    assert result.status == AuditStatus.WARN
    assert result.tags == ["EXTRA_ACTUAL"]
    assert result.entry_id is None
    assert result.raw_rows == [9]
    assert result.staff_id == "S1"


def test_visit_on_other_day_is_extra_and_plan_is_missing(make_entry, make_record):
    state = run([make_entry()], [make_record(day=date(2026, 1, 20))])
    assert sorted(r.tags[0] for r in state.results) == ["EXTRA_ACTUAL", "MISSING_ACTUAL"]


def test_unassigned_plan(make_entry, make_record):
    result = only(run([make_entry(staff="")], [make_record()]))
    assert result.status == AuditStatus.NG
    assert result.tags == ["UNASSIGNED"]
    assert result.staff_id == "S1"


def test_unresolved_visit_staff(make_entry, make_record):
    visit = [make_record(), make_record(staff="", role=VisitRole.ACCOMPANY)]
    result = only(run([make_entry()], visit))
    assert result.tags == ["UNASSIGNED"]


def test_extra_visit_with_unresolved_staff(make_record):
    result = only(run([], [make_record(staff="")]))
    assert result.status == AuditStatus.NG
    assert result.tags == ["UNASSIGNED", "EXTRA_ACTUAL"]


def test_planned_double_booking(make_entry):
    entries = [
        make_entry(patient="P1", window=(540, 720)),
        make_entry(patient="P2", window=(600, 660)),
        make_entry(patient="P3", window=(720, 780)),
    ]
    state = run(entries, [], run_date=date(2026, 1, 1))
    by_patient = {r.patient_id: r for r in state.results}
    assert by_patient["P1"].tags == ["EVENT_CONFLICT"]
    assert by_patient["P2"].tags == ["EVENT_CONFLICT"]
    assert by_patient["P3"].status == AuditStatus.OK


def test_cancelled_entries_do_not_conflict(make_entry):
    entries = [
        make_entry(patient="P1"),
        make_entry(patient="P2", source=SourceKind.CHANGE, op=ChangeOp.CANCEL),
    ]
    state = run(entries, [], run_date=date(2026, 1, 1))
    assert all(r.status == AuditStatus.OK for r in state.results)


def test_observed_double_booking(make_record):
    records = [
        make_record(patient="P1", start="09:00", end="10:00", raw_row=2),
        make_record(patient="P2", start="09:30", end="10:30", raw_row=3),
        make_record(patient="P3", start="10:30", end="11:00", raw_row=4),
    ]
    state = run([], records)
    by_patient = {r.patient_id: r for r in state.results}
    assert by_patient["P1"].tags == ["EVENT_CONFLICT", "EXTRA_ACTUAL"]
    assert by_patient["P2"].tags == ["EVENT_CONFLICT", "EXTRA_ACTUAL"]
    assert by_patient["P3"].tags == ["EXTRA_ACTUAL"]


def test_back_to_back_visits_do_not_conflict(make_entry, make_record):
    entries = [make_entry(patient="P1", window=(540, 600)), make_entry(patient="P2", window=(600, 660))]
    records = [
        make_record(patient="P1", start="09:00", end="10:00", raw_row=2),
        make_record(patient="P2", start="10:00", end="11:00", raw_row=3),
    ]
    state = run(entries, records)
    assert [r.status for r in state.results] == [AuditStatus.OK, AuditStatus.OK]


def test_unresolvable_plan_time(make_entry, make_record):
    result = only(run([make_entry(window=None)], [make_record()]))
    assert result.status == AuditStatus.NG
    assert result.tags == ["TIME_PARSE_ERROR"]


def test_unparsable_visit_start(make_entry, make_record):
    result = only(run([make_entry()], [make_record(start="未定")]))
    assert result.tags == ["TIME_PARSE_ERROR"]
    assert result.offset_min is None


def test_multiple_tags_are_ordered_worst_first(make_entry, make_record):
    entries = [make_entry(staff="", window=(540, 540))]
    result = only(run(entries, [make_record(start="09:10")]))
    assert result.status == AuditStatus.NG
    assert result.tags == ["UNASSIGNED", "TIME_DIFF(+10m)"]


def test_accompanying_staff_share_one_visit(make_entry, make_record):
    records = [
        make_record(staff="S1", raw_row=2),
        make_record(staff="S2", raw_row=2, role=VisitRole.ACCOMPANY),
    ]
    result = only(run([make_entry()], records))
    assert result.status == AuditStatus.OK
    assert result.raw_rows == [2]


def test_nearest_visit_is_matched(make_entry, make_record):
    entries = [make_entry(window=(540, 540), entry_id="am"), make_entry(window=(840, 840), entry_id="pm")]
    records = [make_record(start="14:05", raw_row=3), make_record(start="09:00", raw_row=2)]
    state = run(entries, records)
    by_id = {r.entry_id: r for r in state.results}
    assert by_id["am"].raw_rows == [2]
    assert by_id["am"].status == AuditStatus.OK
    assert by_id["pm"].raw_rows == [3]
    assert by_id["pm"].tags == ["TIME_DIFF(+5m)"]


def test_planned_staff_is_preferred(make_entry, make_record):
    entries = [make_entry(staff="S1", entry_id="a"), make_entry(staff="S2", entry_id="b")]
    records = [make_record(staff="S2", start="09:00", raw_row=2), make_record(staff="S1", start="09:10", raw_row=3)]
    state = run(entries, records)
    by_id = {r.entry_id: r for r in state.results}
    assert by_id["a"].raw_rows == [3]
    assert by_id["b"].raw_rows == [2]


def test_visit_is_claimed_once(make_entry, make_record):
    entries = [make_entry(entry_id="a"), make_entry(entry_id="b")]
    state = run(entries, [make_record()])
    assert sum(1 for r in state.results if r.raw_rows) == 1
    assert len(state.results_with_tag(AuditTag.EVENT_CONFLICT)) == 2


def test_statistics_and_issue_report(make_entry, make_record):
    entries = [
        make_entry(patient="P1"),
        make_entry(patient="P2", staff="S2"),
        make_entry(patient="P3", staff="S3", source=SourceKind.CHANGE, op=ChangeOp.CANCEL),
    ]
    records = [
        make_record(patient="P1", start="09:15", raw_row=2),
        make_record(patient="P3", staff="S3", start="09:00", raw_row=3),
        make_record(patient="P4", staff="S4", start="09:00", raw_row=4),
    ]
    state = run(entries, records)
    stats = state.get_statistics()
    assert stats["total_results"] == 4
    assert stats["status_counts"] == {"OK": 1, "WARN": 2, "NG": 1}
    assert stats["tag_counts"]["CANCELLED_BUT_VISITED"] == 1
    assert stats["patient_weeks"]["P1|2026/01/19"]["expected"] == 1
    assert state.worst_status == AuditStatus.NG

    report = state.get_issue_report()
    assert [i["status"] for i in report] == ["NG", "WARN", "WARN"]
    assert report[0]["tags"] == ["CANCELLED_BUT_VISITED"]


def test_extra_visit_with_unresolved_patient(make_record):
    result = only(run([], [make_record(patient="")]))
    assert result.status == AuditStatus.NG
    assert result.tags == ["UNASSIGNED", "EXTRA_ACTUAL"]
    assert result.key == "|2026/01/19"
    assert result.findings[0].reason == "Patient name not in patient master"


def test_unparsable_time_never_uses_defaults(make_entry, make_record):
    entry = make_entry(window=None, time_type=TimeType.MORNING, time_text="9:xx", time_invalid=True)
    result = only(run([entry], [make_record(start="09:15")]))
    assert result.status == AuditStatus.NG
    assert result.tags == ["TIME_PARSE_ERROR"]
    assert result.findings[0].reason == "Unparsable planned time '9:xx'"


def test_entry_without_any_planned_time(make_entry, make_record):
    result = only(run([make_entry(window=None)], [make_record()]))
    assert result.tags == ["TIME_PARSE_ERROR"]
    assert result.findings[0].reason == "No planned time recorded"
