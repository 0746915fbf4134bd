from datetime import date, time

from rotacompass import main
from rotacompass.data import Database
from rotacompass.models import (
    DutyType,
    MonthlyRule,
    RecurrencePattern,
    ServiceOccurrence,
    ServiceTemplate,
    WeeklyRule,
)


class FixedDate(date):
    @classmethod
    def today(cls):
        return cls(2024, 3, 1)


def test_run_due_generation_end_to_end(tmp_path, monkeypatch, capsys):
    db_path = str(tmp_path / 'rota.db')
    db = Database(db_path)
    tpl = db.save_template(ServiceTemplate("Sunday Service", default_time=time(10, 0)))
    weekly = db.save_pattern(RecurrencePattern(tpl.id, WeeklyRule(0), date(2024, 1, 7)))
    monthly = db.save_pattern(RecurrencePattern(tpl.id, MonthlyRule(0, 2), date(2024, 1, 1)))
    db.close()

    monkeypatch.setattr(main, 'load_config', lambda: {
        'db_path': db_path, 'generation': {'horizon_days': 30}, 'grid': {'window_days': 56},
    })
    monkeypatch.setattr(main, 'date', FixedDate)

    assert main.run_due_generation() == 0
    out = capsys.readouterr().out
    assert "Sunday Service" in out

    db = Database(db_path)
    services = db.list_occurrences(tpl.id, (date(2024, 1, 1), date(2024, 12, 31)))
    # Sonntage 3., 10., 17., 24., 31. März; der 2. Sonntag (10.) gehört schon dem Wochenmuster
    assert [s.date for s in services] == [date(2024, 3, d) for d in (3, 10, 17, 24, 31)]
    assert db.get_pattern(weekly.id).last_generated_date == date(2024, 3, 31)
    assert db.get_pattern(monthly.id).last_generated_date == date(2024, 3, 10)
    db.close()

    # zweiter Lauf legt nichts doppelt an
    assert main.run_due_generation() == 0
    db = Database(db_path)
    assert len(db.list_occurrences(tpl.id, (date(2024, 1, 1), date(2024, 12, 31)))) == 5
    db.close()


def test_malformed_pattern_row_does_not_stop_the_sweep(tmp_path, monkeypatch, capsys):
    db_path = str(tmp_path / 'rota.db')
    db = Database(db_path)
    tpl = db.save_template(ServiceTemplate("Sunday Service", default_time=time(10, 0)))
    # monatlich ohne week_of_month, direkt in die Tabelle geschrieben
    cur = db.conn.execute(
        "INSERT INTO patterns (template_id, pattern_type, day_of_week, week_of_month, start_date) "
        "VALUES (?,?,?,?,?)", (tpl.id, 'monthly', 0, None, '2024-01-01')
    )
    bad_id = cur.lastrowid
    db.conn.commit()
    weekly = db.save_pattern(RecurrencePattern(tpl.id, WeeklyRule(0), date(2024, 1, 7)))
    db.close()

    monkeypatch.setattr(main, 'load_config', lambda: {
        'db_path': db_path, 'generation': {'horizon_days': 30}, 'grid': {'window_days': 56},
    })
    monkeypatch.setattr(main, 'date', FixedDate)

    assert main.run_due_generation() == 1
    out = capsys.readouterr().out
    assert f"Sunday Service (pattern {bad_id}): 0 generated, error: week_of_month" in out
    assert f"Sunday Service (pattern {weekly.id}): 5 generated, ok" in out

    db = Database(db_path)
    services = db.list_occurrences(tpl.id, (date(2024, 1, 1), date(2024, 12, 31)))
    assert [s.date for s in services] == [date(2024, 3, d) for d in (3, 10, 17, 24, 31)]
    assert db.get_pattern(weekly.id).last_generated_date == date(2024, 3, 31)
    db.close()


def test_rota_export_uses_configured_window(tmp_path, monkeypatch):
    db_path = str(tmp_path / 'rota.db')
    db = Database(db_path)
    tpl = db.save_template(ServiceTemplate("Sunday Service", default_time=time(10, 0)))
    usher = db.save_duty_type(DutyType("Usher"))
    db.save_duty_type(DutyType("Sound"))
    db.save_duty_type(DutyType("Reader", is_active=False))
    ids = [db.create_occurrence(ServiceOccurrence("Sunday Service", date(2024, 3, d), time(10, 0), tpl.id))
           for d in (3, 10, 17)]
    db.upsert_assignment(ids[0], usher.id, "m-1")
    db.close()

    monkeypatch.setattr(main, 'load_config', lambda: {
        'db_path': db_path, 'generation': {'horizon_days': 30}, 'grid': {'window_days': 14},
    })
    monkeypatch.setattr(main, 'date', FixedDate)

    fn = tmp_path / 'rota.csv'
    assert main.run_rota_export(str(fn)) == 0
    # Fenster 1.–15. März: der 17. fehlt
    assert fn.read_text(encoding='utf-8') == (
        "Date,Service Name,Time,Duty Type,Member,Notes\n"
        "2024-03-03,Sunday Service,10:00,Sound,Unassigned,\n"
        "2024-03-03,Sunday Service,10:00,Usher,m-1,\n"
        "2024-03-10,Sunday Service,10:00,Sound,Unassigned,\n"
        "2024-03-10,Sunday Service,10:00,Usher,Unassigned,\n"
    )
