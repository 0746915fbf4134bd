import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, time
from typing import Iterable, List, Optional, Tuple

from rotacompass.errors import RepositoryError, TemplateNotFoundError
from rotacompass.models import (
    Assignment,
    DutyType,
    RecurrencePattern,
    ServiceOccurrence,
    ServiceTemplate,
    SweepResult,
    check_assignment_status,
    rule_from_fields,
)


def _d(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _t(value: Optional[str]) -> Optional[time]:
    return time.fromisoformat(value) if value else None


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


class Database:
    """
    sqlite-Ablage für Vorlagen, Muster, Dienste, Dienstarten und Zuweisungen.
    Implementiert die Repository-Schnittstellen von Generator und Dienstplan.
    """

    def __init__(self, db_path: str = None):
        try:
            self.db_path = db_path or os.path.join(os.path.expanduser("~"), ".rotacompass", "rotacompass.db")
            if self.db_path != ':memory:':
                os.makedirs(os.path.dirname(os.path.abspath(self.db_path)), exist_ok=True)
            self.conn = sqlite3.connect(self.db_path)
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("PRAGMA foreign_keys = ON;")
            self._ensure_tables()
        except sqlite3.Error as e:
            logging.error(f"Database connection error: {e}")
            raise RepositoryError(f"cannot open database {db_path}: {e}") from e

    def _ensure_tables(self):
        cur = self.conn.cursor()
        cur.execute("""
        CREATE TABLE IF NOT EXISTS service_templates (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          name TEXT NOT NULL,
          description TEXT NOT NULL DEFAULT '',
          default_time TEXT,
          is_active INTEGER NOT NULL DEFAULT 1
        )""")
        cur.execute("""
        CREATE TABLE IF NOT EXISTS duty_types (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          name TEXT NOT NULL,
          is_active INTEGER NOT NULL DEFAULT 1
        )""")
        # Reihenfolge der Dienstarten je Vorlage = Reihenfolge der Verknüpfung
        cur.execute("""
        CREATE TABLE IF NOT EXISTS template_duty_types (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          template_id INTEGER NOT NULL,
          duty_type_id INTEGER NOT NULL,
          is_required INTEGER NOT NULL DEFAULT 1,
          UNIQUE(template_id, duty_type_id),
          FOREIGN KEY(template_id) REFERENCES service_templates(id) ON DELETE CASCADE,
          FOREIGN KEY(duty_type_id) REFERENCES duty_types(id) ON DELETE CASCADE
        )""")
        cur.execute("""
        CREATE TABLE IF NOT EXISTS patterns (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          template_id INTEGER NOT NULL,
          pattern_type TEXT NOT NULL,
          day_of_week INTEGER,
          week_of_month INTEGER,
          interval_weeks INTEGER,
          start_date TEXT NOT NULL,
          end_date TEXT,
          last_generated_date TEXT,
          is_active INTEGER NOT NULL DEFAULT 1,
          FOREIGN KEY(template_id) REFERENCES service_templates(id) ON DELETE CASCADE
        )""")
        cur.execute("""
        CREATE TABLE IF NOT EXISTS services (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          template_id INTEGER,
          name TEXT NOT NULL,
          date TEXT NOT NULL,
          time TEXT,
          FOREIGN KEY(template_id) REFERENCES service_templates(id) ON DELETE SET NULL
        )""")
        cur.execute("""
        CREATE TABLE IF NOT EXISTS assignments (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          service_id INTEGER NOT NULL,
          duty_type_id INTEGER NOT NULL,
          member_id TEXT NOT NULL,
          status TEXT NOT NULL DEFAULT 'scheduled',
          notes TEXT,
          UNIQUE(service_id, duty_type_id),
          FOREIGN KEY(service_id) REFERENCES services(id) ON DELETE CASCADE,
          FOREIGN KEY(duty_type_id) REFERENCES duty_types(id) ON DELETE CASCADE
        )""")
        # Prüfen und ggf. Spalte updated_at hinzufügen (ältere Datenbanken)
        cur.execute("PRAGMA table_info(assignments)")
        cols = [row['name'] for row in cur.fetchall()]
        if 'updated_at' not in cols:
            cur.execute("ALTER TABLE assignments ADD COLUMN updated_at TEXT")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_services_template_date ON services(template_id, date)")
        self.conn.commit()

    @contextmanager
    def _guard(self, action: str):
        """Cursor mit Commit; sqlite-Fehler werden geloggt und als RepositoryError weitergereicht."""
        cur = self.conn.cursor()
        try:
            yield cur
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            logging.error(f"Database error while {action}: {e}")
            raise RepositoryError(f"{action} failed: {e}") from e
        finally:
            cur.close()

    # Vorlagen
    def save_template(self, tpl: ServiceTemplate) -> ServiceTemplate:
        values = (tpl.name, tpl.description or '', _iso(tpl.default_time), int(tpl.is_active))
        with self._guard("saving template") as cur:
            if tpl.id is not None:
                cur.execute(
                    "UPDATE service_templates SET name=?, description=?, default_time=?, is_active=? WHERE id=?",
                    values + (tpl.id,)
                )
            else:
                cur.execute(
                    "INSERT INTO service_templates (name, description, default_time, is_active) VALUES (?,?,?,?)",
                    values
                )
                tpl.id = cur.lastrowid
        return tpl

    def _row_to_template(self, row) -> ServiceTemplate:
        return ServiceTemplate(
            name=row['name'],
            default_time=_t(row['default_time']),
            description=row['description'],
            is_active=bool(row['is_active']),
            id=row['id'],
        )

    def get_template(self, template_id) -> ServiceTemplate:
        with self._guard("loading template") as cur:
            cur.execute("SELECT * FROM service_templates WHERE id=?", (template_id,))
            row = cur.fetchone()
        if row is None:
            raise TemplateNotFoundError(f"Template not found: {template_id}")
        return self._row_to_template(row)

    def load_templates(self, active_only: bool = False) -> List[ServiceTemplate]:
        query = "SELECT * FROM service_templates"
        if active_only:
            query += " WHERE is_active=1"
        with self._guard("loading templates") as cur:
            cur.execute(query + " ORDER BY name, id")
            return [self._row_to_template(r) for r in cur.fetchall()]

    # Dienstarten
    def save_duty_type(self, dt: DutyType) -> DutyType:
        with self._guard("saving duty type") as cur:
            if dt.id is not None:
                cur.execute("UPDATE duty_types SET name=?, is_active=? WHERE id=?",
                            (dt.name, int(dt.is_active), dt.id))
            else:
                cur.execute("INSERT INTO duty_types (name, is_active) VALUES (?,?)",
                            (dt.name, int(dt.is_active)))
                dt.id = cur.lastrowid
        return dt

    def load_duty_types(self, active_only: bool = False) -> List[DutyType]:
        query = "SELECT id, name, is_active FROM duty_types"
        if active_only:
            query += " WHERE is_active=1"
        with self._guard("loading duty types") as cur:
            cur.execute(query + " ORDER BY name, id")
            return [DutyType(r['name'], bool(r['is_active']), r['id']) for r in cur.fetchall()]

    def add_template_duty_type(self, template_id, duty_type_id, is_required: bool = True):
        with self._guard("linking duty type to template") as cur:
            cur.execute(
                "INSERT INTO template_duty_types (template_id, duty_type_id, is_required) VALUES (?,?,?)",
                (template_id, duty_type_id, int(is_required))
            )

    def remove_template_duty_type(self, template_id, duty_type_id):
        with self._guard("unlinking duty type from template") as cur:
            cur.execute("DELETE FROM template_duty_types WHERE template_id=? AND duty_type_id=?",
                        (template_id, duty_type_id))

    def load_template_duty_types(self, template_id) -> List[DutyType]:
        with self._guard("loading template duty types") as cur:
            cur.execute("""
                SELECT d.id, d.name, d.is_active FROM template_duty_types t
                JOIN duty_types d ON d.id = t.duty_type_id
                WHERE t.template_id=? ORDER BY t.id
            """, (template_id,))
            return [DutyType(r['name'], bool(r['is_active']), r['id']) for r in cur.fetchall()]

    # Muster
    def _row_to_pattern(self, row) -> RecurrencePattern:
        rule = rule_from_fields(row['pattern_type'], row['day_of_week'],
                                row['week_of_month'], row['interval_weeks'])
        return RecurrencePattern(
            template_id=row['template_id'],
            rule=rule,
            start_date=_d(row['start_date']),
            end_date=_d(row['end_date']),
            last_generated_date=_d(row['last_generated_date']),
            is_active=bool(row['is_active']),
            id=row['id'],
        )

    def save_pattern(self, pat: RecurrencePattern) -> RecurrencePattern:
        f = pat.to_fields()
        values = (pat.template_id, f['pattern_type'], f['day_of_week'], f['week_of_month'],
                  f['interval_weeks'], _iso(pat.start_date), _iso(pat.end_date),
                  _iso(pat.last_generated_date), int(pat.is_active))
        with self._guard("saving pattern") as cur:
            if pat.id is not None:
                cur.execute("""
                    UPDATE patterns SET template_id=?, pattern_type=?, day_of_week=?, week_of_month=?,
                    interval_weeks=?, start_date=?, end_date=?, last_generated_date=?, is_active=?
                    WHERE id=?""", values + (pat.id,))
            else:
                cur.execute("""
                    INSERT INTO patterns (template_id, pattern_type, day_of_week, week_of_month,
                    interval_weeks, start_date, end_date, last_generated_date, is_active)
                    VALUES (?,?,?,?,?,?,?,?,?)""", values)
                pat.id = cur.lastrowid
        logging.info(f"Saved pattern id={pat.id}")
        return pat

    def get_pattern(self, pattern_id) -> Optional[RecurrencePattern]:
        with self._guard("loading pattern") as cur:
            cur.execute("SELECT * FROM patterns WHERE id=?", (pattern_id,))
            row = cur.fetchone()
        return self._row_to_pattern(row) if row else None

    def load_patterns(self, active_only: bool = False) -> List[RecurrencePattern]:
        query = "SELECT * FROM patterns"
        if active_only:
            query += " WHERE is_active=1"
        with self._guard("loading patterns") as cur:
            cur.execute(query + " ORDER BY id")
            rows = cur.fetchall()
        return [self._row_to_pattern(r) for r in rows]

    def load_due_patterns(self) -> Tuple[List[RecurrencePattern], List[SweepResult]]:
        """
        Aktive Muster für die automatische Generierung. Fehlerhafte Zeilen
        halten den Lauf nicht auf, sie kommen als SweepResult mit Fehler zurück.
        """
        with self._guard("loading patterns") as cur:
            cur.execute("""
                SELECT p.*, t.name AS template_name FROM patterns p
                LEFT JOIN service_templates t ON t.id = p.template_id
                WHERE p.is_active=1 ORDER BY p.id
            """)
            rows = cur.fetchall()
        patterns, broken = [], []
        for r in rows:
            try:
                patterns.append(self._row_to_pattern(r))
            except ValueError as e:
                logging.error(f"[RotaCompass] Skipping malformed pattern id={r['id']}: {e}")
                broken.append(SweepResult(r['id'], r['template_name'] or 'Unknown', error=str(e)))
        return patterns, broken

    def delete_pattern(self, pattern_id):
        with self._guard("deleting pattern") as cur:
            cur.execute("DELETE FROM patterns WHERE id=?", (pattern_id,))

    def update_watermark(self, pattern_id, day: date) -> bool:
        """
        Wasserstand nur vorwärts bewegen. Liefert False, wenn bereits ein
        gleicher oder späterer Stand gespeichert ist.
        """
        with self._guard("updating watermark") as cur:
            cur.execute("""
                UPDATE patterns SET last_generated_date=?
                WHERE id=? AND (last_generated_date IS NULL OR last_generated_date < ?)
            """, (day.isoformat(), pattern_id, day.isoformat()))
            return cur.rowcount > 0

    # Dienste
    def _row_to_service(self, row) -> ServiceOccurrence:
        return ServiceOccurrence(
            name=row['name'],
            date=_d(row['date']),
            time=_t(row['time']),
            template_id=row['template_id'],
            id=row['id'],
        )

    def list_occurrences(self, template_id=None,
                         date_range: Tuple[Optional[date], Optional[date]] = (None, None)) -> List[ServiceOccurrence]:
        """Dienste im Zeitraum, aufsteigend nach Datum; template_id=None liefert alle Vorlagen."""
        start, end = date_range
        query = "SELECT * FROM services WHERE 1=1"
        params = []
        if template_id is not None:
            query += " AND template_id=?"
            params.append(template_id)
        if start is not None:
            query += " AND date >= ?"
            params.append(start.isoformat())
        if end is not None:
            query += " AND date <= ?"
            params.append(end.isoformat())
        with self._guard("listing services") as cur:
            cur.execute(query + " ORDER BY date, time, id", params)
            return [self._row_to_service(r) for r in cur.fetchall()]

    def list_services(self, start: date, end: date) -> List[ServiceOccurrence]:
        return self.list_occurrences(None, (start, end))

    def create_occurrence(self, occ: ServiceOccurrence) -> int:
        with self._guard(f"creating service on {occ.date.isoformat()}") as cur:
            cur.execute(
                "INSERT INTO services (template_id, name, date, time) VALUES (?,?,?,?)",
                (occ.template_id, occ.name, occ.date.isoformat(), _iso(occ.time))
            )
            return cur.lastrowid

    def delete_occurrence(self, service_id):
        with self._guard("deleting service") as cur:
            cur.execute("DELETE FROM services WHERE id=?", (service_id,))

    # Zuweisungen
    def _row_to_assignment(self, row) -> Assignment:
        return Assignment(
            service_id=row['service_id'],
            duty_type_id=row['duty_type_id'],
            member_id=row['member_id'],
            status=row['status'],
            notes=row['notes'],
            updated_at=datetime.fromisoformat(row['updated_at']) if row['updated_at'] else None,
            id=row['id'],
        )

    def list_assignments(self, service_ids: Iterable) -> List[Assignment]:
        ids = list(service_ids)
        if not ids:
            return []
        marks = ','.join('?' * len(ids))
        with self._guard("listing assignments") as cur:
            cur.execute(
                f"SELECT * FROM assignments WHERE service_id IN ({marks}) ORDER BY service_id, duty_type_id",
                ids
            )
            return [self._row_to_assignment(r) for r in cur.fetchall()]

    def upsert_assignment(self, service_id, duty_type_id, member_id, notes=None,
                          status: str = 'scheduled') -> Assignment:
        """Setzt die Zelle (Dienst, Dienstart); der letzte Schreiber gewinnt."""
        check_assignment_status(status)
        now = datetime.now().isoformat(timespec='microseconds')
        with self._guard("saving assignment") as cur:
            cur.execute("""
                INSERT INTO assignments (service_id, duty_type_id, member_id, status, notes, updated_at)
                VALUES (?,?,?,?,?,?)
                ON CONFLICT(service_id, duty_type_id) DO UPDATE SET
                  member_id=excluded.member_id, status=excluded.status,
                  notes=excluded.notes, updated_at=excluded.updated_at
            """, (service_id, duty_type_id, member_id, status, notes, now))
            cur.execute("SELECT * FROM assignments WHERE service_id=? AND duty_type_id=?",
                        (service_id, duty_type_id))
            return self._row_to_assignment(cur.fetchone())

    def delete_assignment(self, assignment_id):
        with self._guard("deleting assignment") as cur:
            cur.execute("DELETE FROM assignments WHERE id=?", (assignment_id,))

    def close(self):
        """Schließe die Datenbankverbindung sauber"""
        if self.conn:
            self.conn.close()
            self.conn = None
