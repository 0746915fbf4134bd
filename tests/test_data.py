import os
import tempfile
from datetime import date, time
import pytest

from rotacompass.data import Database
from rotacompass.errors import (
    InvalidAssignmentError,
    InvalidPatternError,
    RepositoryError,
    TemplateNotFoundError,
)
from rotacompass.models import (
    BiweeklyRule,
    CustomRule,
    DutyType,
    MonthlyRule,
    RecurrencePattern,
    ServiceOccurrence,
    ServiceTemplate,
    WeeklyRule,
)


@pytest.fixture
def temp_db():
    fd, path = tempfile.mkstemp(suffix='.db')
    os.close(fd)
    db = Database(db_path=path)
    try:
        yield db
    finally:
        # Erst die DB-Verbindung schließen, dann die Datei löschen
        db.close()
        os.remove(path)


def test_template_roundtrip(temp_db):
    tpl = temp_db.save_template(ServiceTemplate("Sunday Service", default_time=time(10, 30), description="Main"))
    assert tpl.id is not None
    loaded = temp_db.get_template(tpl.id)
    assert loaded == tpl
    tpl.is_active = False
    temp_db.save_template(tpl)
    assert temp_db.load_templates(active_only=True) == []
    assert [t.name for t in temp_db.load_templates()] == ["Sunday Service"]


def test_missing_template_raises(temp_db):
    with pytest.raises(TemplateNotFoundError):
        temp_db.get_template(404)


@pytest.mark.parametrize("rule", [WeeklyRule(0), BiweeklyRule(3), MonthlyRule(0, 5), CustomRule(6, 4)])
def test_pattern_roundtrip(temp_db, rule):
    tpl = temp_db.save_template(ServiceTemplate("Midweek"))
    pat = RecurrencePattern(tpl.id, rule, date(2024, 1, 3), end_date=date(2024, 12, 31))
    temp_db.save_pattern(pat)
    loaded = temp_db.get_pattern(pat.id)
    assert loaded == pat
    assert type(loaded.rule) is type(rule)


def test_load_active_patterns_and_delete(temp_db):
    tpl = temp_db.save_template(ServiceTemplate("Midweek"))
    a = temp_db.save_pattern(RecurrencePattern(tpl.id, WeeklyRule(3), date(2024, 1, 3)))
    b = temp_db.save_pattern(RecurrencePattern(tpl.id, WeeklyRule(4), date(2024, 1, 4), is_active=False))
    assert [p.id for p in temp_db.load_patterns(active_only=True)] == [a.id]
    assert [p.id for p in temp_db.load_patterns()] == [a.id, b.id]
    temp_db.delete_pattern(b.id)
    assert temp_db.get_pattern(b.id) is None


def test_update_watermark_only_moves_forward(temp_db):
    tpl = temp_db.save_template(ServiceTemplate("Sunday Service"))
    pat = temp_db.save_pattern(RecurrencePattern(tpl.id, WeeklyRule(0), date(2024, 1, 7)))
    assert temp_db.update_watermark(pat.id, date(2024, 1, 28)) is True
    assert temp_db.update_watermark(pat.id, date(2024, 1, 14)) is False
    assert temp_db.update_watermark(pat.id, date(2024, 1, 28)) is False
    assert temp_db.get_pattern(pat.id).last_generated_date == date(2024, 1, 28)


def test_list_occurrences_filters(temp_db):
    a = temp_db.save_template(ServiceTemplate("Sunday Service"))
    b = temp_db.save_template(ServiceTemplate("Youth"))
    for tpl, d in [(a, date(2024, 1, 14)), (a, date(2024, 1, 7)), (b, date(2024, 1, 7)), (a, date(2024, 2, 4))]:
        temp_db.create_occurrence(ServiceOccurrence(tpl.name, d, time(10, 0), tpl.id))
    temp_db.create_occurrence(ServiceOccurrence("Carols", date(2024, 1, 10)))

    jan_a = temp_db.list_occurrences(a.id, (date(2024, 1, 1), date(2024, 1, 31)))
    assert [s.date for s in jan_a] == [date(2024, 1, 7), date(2024, 1, 14)]
    assert all(s.template_id == a.id and s.time == time(10, 0) for s in jan_a)
    everything = temp_db.list_services(date(2024, 1, 1), date(2024, 1, 31))
    assert [s.name for s in everything] == ["Sunday Service", "Youth", "Carols", "Sunday Service"]
    assert everything[2].template_id is None


def test_template_duty_types_keep_link_order(temp_db):
    tpl = temp_db.save_template(ServiceTemplate("Sunday Service"))
    sound = temp_db.save_duty_type(DutyType("Sound"))
    usher = temp_db.save_duty_type(DutyType("Usher"))
    reader = temp_db.save_duty_type(DutyType("Reader", is_active=False))
    for dt in (usher, reader, sound):
        temp_db.add_template_duty_type(tpl.id, dt.id)
    assert [d.name for d in temp_db.load_template_duty_types(tpl.id)] == ["Usher", "Reader", "Sound"]
    assert [d.name for d in temp_db.load_duty_types()] == ["Reader", "Sound", "Usher"]
    assert [d.name for d in temp_db.load_duty_types(active_only=True)] == ["Sound", "Usher"]
    with pytest.raises(RepositoryError):
        temp_db.add_template_duty_type(tpl.id, usher.id)
    temp_db.remove_template_duty_type(tpl.id, reader.id)
    assert [d.name for d in temp_db.load_template_duty_types(tpl.id)] == ["Usher", "Sound"]


def test_upsert_assignment_last_write_wins(temp_db):
    tpl = temp_db.save_template(ServiceTemplate("Sunday Service"))
    sound = temp_db.save_duty_type(DutyType("Sound"))
    sid = temp_db.create_occurrence(ServiceOccurrence("Sunday Service", date(2024, 1, 7), None, tpl.id))

    first = temp_db.upsert_assignment(sid, sound.id, "m-1", notes="desk")
    second = temp_db.upsert_assignment(sid, sound.id, "m-2", status="confirmed")
    assert second.id == first.id
    assert second.updated_at >= first.updated_at
    rows = temp_db.list_assignments([sid])
    assert len(rows) == 1
    assert (rows[0].member_id, rows[0].status, rows[0].notes) == ("m-2", "confirmed", None)

    temp_db.delete_assignment(first.id)
    assert temp_db.list_assignments([sid]) == []
    assert temp_db.list_assignments([]) == []


def test_assignment_for_unknown_service_is_repository_error(temp_db):
    sound = temp_db.save_duty_type(DutyType("Sound"))
    with pytest.raises(RepositoryError):
        temp_db.upsert_assignment(999, sound.id, "m-1")


def test_deleting_service_removes_its_assignments(temp_db):
    sound = temp_db.save_duty_type(DutyType("Sound"))
    sid = temp_db.create_occurrence(ServiceOccurrence("Carols", date(2024, 12, 22)))
    temp_db.upsert_assignment(sid, sound.id, "m-1")
    temp_db.delete_occurrence(sid)
    assert temp_db.list_assignments([sid]) == []


def test_load_due_patterns_reports_malformed_rows(temp_db):
    tpl = temp_db.save_template(ServiceTemplate("Sunday Service"))
    cur = temp_db.conn.execute(
        "INSERT INTO patterns (template_id, pattern_type, day_of_week, week_of_month, start_date) "
        "VALUES (?,?,?,?,?)", (tpl.id, 'monthly', 0, None, '2024-01-01')
    )
    bad_id = cur.lastrowid
    temp_db.conn.commit()
    good = temp_db.save_pattern(RecurrencePattern(tpl.id, WeeklyRule(0), date(2024, 1, 7)))
    temp_db.save_pattern(RecurrencePattern(tpl.id, WeeklyRule(3), date(2024, 1, 3), is_active=False))

    patterns, broken = temp_db.load_due_patterns()
    assert [p.id for p in patterns] == [good.id]
    assert [(b.pattern_id, b.template_name, b.generated) for b in broken] == [(bad_id, "Sunday Service", 0)]
    assert "week_of_month" in broken[0].error
    with pytest.raises(InvalidPatternError):
        temp_db.load_patterns()


def test_upsert_assignment_rejects_unknown_status(temp_db):
    sound = temp_db.save_duty_type(DutyType("Sound"))
    sid = temp_db.create_occurrence(ServiceOccurrence("Carols", date(2024, 12, 22)))
    with pytest.raises(InvalidAssignmentError):
        temp_db.upsert_assignment(sid, sound.id, "m-1", status="maybe")
    assert temp_db.list_assignments([sid]) == []
