# src/rotacompass/main.py

import logging
from datetime import date, time
from typing import List

from .calendar_logic import default_grid_window
from .config import load_config
from .data import Database
from .errors import InvalidPatternError, RotaError
from .export_utils import default_export_name, export_rota_csv
from .generator import OccurrenceGenerator, net_new_dates
from .models import RecurrencePattern, ServiceTemplate, rule_from_fields
from .recurrence import describe, resolve


def _optional_int(text: str):
    text = text.strip()
    return int(text) if text.isdigit() else None


def input_template(db: Database) -> ServiceTemplate:
    templates = db.load_templates(active_only=True)
    for tpl in templates:
        print(f"  [{tpl.id}] {tpl.name}")
    choice = input("  Template id (empty = new template): ").strip()
    if choice.isdigit():
        return db.get_template(int(choice))
    name = input("  Template name: ").strip()
    time_str = input("  Default time (HH:MM) [empty = none]: ").strip()
    default_time = time.fromisoformat(time_str) if time_str else None
    return db.save_template(ServiceTemplate(name=name, default_time=default_time))


def input_pattern(template: ServiceTemplate) -> RecurrencePattern:
    print("\n✏️  New recurring pattern:")
    ptype = input("  Type (weekly, biweekly, monthly, custom): ")
    dow = _optional_int(input("  Day of week (0=Sun … 6=Sat): "))
    week = interval = None
    if ptype.strip().lower() == 'monthly':
        week = _optional_int(input("  Week of month (1-5): "))
    elif ptype.strip().lower() == 'custom':
        interval = _optional_int(input("  Interval in weeks (e.g. 3): "))
    start_str = input("  Start date (YYYY-MM-DD) [empty = today]: ").strip()
    start = date.today() if not start_str else date.fromisoformat(start_str)
    return RecurrencePattern(
        template_id=template.id,
        rule=rule_from_fields(ptype, dow, week, interval),
        start_date=start,
    )


def _confirm_dates(candidates: List[date]) -> List[date]:
    for i, d in enumerate(candidates, 1):
        print(f"  {i:>3}. {d.isoformat()}")
    answer = input("Create which dates? (all / comma separated numbers / none) ").strip().lower()
    if answer in ('', 'all', 'a'):
        return candidates
    if answer in ('none', 'n'):
        return []
    picked = []
    for part in answer.split(','):
        part = part.strip()
        if part.isdigit() and 1 <= int(part) <= len(candidates):
            picked.append(candidates[int(part) - 1])
    return picked


def run_wizard():
    logging.basicConfig(level=logging.INFO)
    cfg = load_config()
    db = Database(cfg['db_path'])
    try:
        print("🎯 RotaCompass service generation 🎯")
        template = input_template(db)
        while True:
            try:
                pattern = db.save_pattern(input_pattern(template))
                break
            except InvalidPatternError as e:
                print(f"  ⚠️  {e}")
        print(f"  {describe(pattern)}")

        start = date.fromisoformat(input("Window from (YYYY-MM-DD): ").strip())
        end = date.fromisoformat(input("Window to (YYYY-MM-DD): ").strip())
        candidates = resolve(pattern, start, end)
        existing = db.list_occurrences(template.id, (start, end))
        candidates = net_new_dates(candidates, existing, template.id)
        if not candidates:
            print("No new dates in this window.")
            return

        selected = _confirm_dates(candidates)
        generator = OccurrenceGenerator(db, db, db)
        result = generator.generate(pattern, selected, existing)
        counts = result.counts()
        print(f"\n✅ {counts['created']} created, {counts['skipped']} skipped, {counts['failed']} failed")
        for o in result.failed:
            print(f"  ❌ {o.date.isoformat()}: {o.reason}")

        if input("\nExport rota as CSV? (y/n) ").lower() == "y":
            services = db.list_occurrences(template.id, (start, end))
            duty_types = db.load_template_duty_types(template.id)
            assignments = db.list_assignments([s.id for s in services])
            fn = export_rota_csv(default_export_name(start, end), services, duty_types, assignments)
            print(f"Rota written to {fn}.")
    finally:
        db.close()


def run_due_generation():
    """Für Cron: offene Termine aller aktiven Muster anlegen."""
    logging.basicConfig(level=logging.INFO)
    cfg = load_config()
    db = Database(cfg['db_path'])
    try:
        generator = OccurrenceGenerator(db, db, db)
        patterns, broken = db.load_due_patterns()
        results = broken + generator.generate_due(
            patterns,
            date.today(),
            cfg['generation']['horizon_days'],
        )
        results.sort(key=lambda r: r.pattern_id)
    except RotaError as e:
        logging.error(f"[RotaCompass] Scheduled generation failed: {e}")
        return 1
    finally:
        db.close()
    for r in results:
        status = f"error: {r.error}" if r.error else "ok"
        print(f"{r.template_name} (pattern {r.pattern_id}): {r.generated} generated, {status}")
    return 1 if any(r.error for r in results) else 0


def run_rota_export(filename: str = None):
    """Dienstplan der kommenden Wochen (grid.window_days) als CSV schreiben."""
    logging.basicConfig(level=logging.INFO)
    cfg = load_config()
    start, end = default_grid_window(date.today(), cfg['grid']['window_days'])
    db = Database(cfg['db_path'])
    try:
        services = db.list_services(start, end)
        duty_types = db.load_duty_types(active_only=True)
        assignments = db.list_assignments([s.id for s in services])
    except RotaError as e:
        logging.error(f"[RotaCompass] Rota export failed: {e}")
        return 1
    finally:
        db.close()
    fn = export_rota_csv(filename or default_export_name(start, end), services, duty_types, assignments)
    print(f"Rota written to {fn}.")
    return 0


if __name__ == "__main__":
    run_wizard()
