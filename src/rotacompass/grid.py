import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .errors import DataIntegrityWarning
from .models import Assignment, AssignmentDraft, DutyType, ServiceOccurrence


@dataclass
class RotaGrid:
    """Dichte Matrix: cells[dienstart_index][dienst_index] -> Assignment oder None."""
    services: List[ServiceOccurrence]
    duty_types: List[DutyType]
    cells: List[List[Optional[Assignment]]]
    warnings: List[DataIntegrityWarning] = field(default_factory=list)

    def cell(self, duty_type_id, service_id) -> Optional[Assignment]:
        for row, dt in enumerate(self.duty_types):
            if dt.id != duty_type_id:
                continue
            for col, svc in enumerate(self.services):
                if svc.id == service_id:
                    return self.cells[row][col]
        return None

    def rows(self):
        """(DutyType, [Assignment|None, ...]) in Zeilenreihenfolge."""
        return zip(self.duty_types, self.cells)


def _service_sort_key(svc: ServiceOccurrence):
    return svc.date, svc.time or time.min


def _recency_key(item: Tuple[int, Assignment]):
    pos, a = item
    return (a.updated_at is not None, a.updated_at or datetime.min, pos)


def index_assignments(assignments: Iterable[Assignment]) -> Tuple[Dict[tuple, Assignment], List[DataIntegrityWarning]]:
    """
    (service_id, duty_type_id) -> Assignment. Bei mehreren Treffern gewinnt
    die zuletzt geänderte Zuweisung (bei Gleichstand die spätere in der Liste).
    """
    buckets: Dict[tuple, List[Tuple[int, Assignment]]] = {}
    for pos, a in enumerate(assignments):
        buckets.setdefault((a.service_id, a.duty_type_id), []).append((pos, a))

    index = {}
    warnings = []
    for key, entries in buckets.items():
        winner = max(entries, key=_recency_key)[1]
        index[key] = winner
        if len(entries) > 1:
            w = DataIntegrityWarning(key[0], key[1], [a.id for _, a in entries], winner.id)
            logging.warning(f"[RotaCompass] Data integrity: {w}")
            warnings.append(w)
    return index, warnings


def build_grid(services: Iterable[ServiceOccurrence],
               duty_types: Sequence[DutyType],
               assignments: Iterable[Assignment]) -> RotaGrid:
    """
    Baut die Dienstplan-Matrix. Zeilen folgen der übergebenen Reihenfolge der
    Dienstarten, Spalten den Diensten aufsteigend nach Datum. Die Matrix hat
    immer len(duty_types) x len(services) Zellen, egal wie dünn `assignments` ist.
    """
    cols = sorted(services, key=_service_sort_key)
    rows = list(duty_types)
    index, warnings = index_assignments(assignments)
    cells = [
        [index.get((svc.id, dt.id)) for svc in cols]
        for dt in rows
    ]
    return RotaGrid(cols, rows, cells, warnings)


def _same_template(a: ServiceOccurrence, b: ServiceOccurrence) -> bool:
    if a.template_id is not None or b.template_id is not None:
        return a.template_id == b.template_id
    # manuell angelegte Dienste ohne Vorlage
    return a.name == b.name


def previous_service(target: ServiceOccurrence,
                     services: Iterable[ServiceOccurrence]) -> Optional[ServiceOccurrence]:
    """Dienst derselben Vorlage genau 7 Tage vor `target`."""
    prev_date = target.date - timedelta(days=7)
    for svc in services:
        if svc.date == prev_date and _same_template(svc, target):
            return svc
    return None


def copy_from_previous(target: ServiceOccurrence,
                       duty_type_id,
                       services: Iterable[ServiceOccurrence],
                       assignments: Iterable[Assignment]) -> Optional[AssignmentDraft]:
    """
    Übernahme-Vorschlag aus der Vorwoche. None, wenn es keinen Vorwochen-Dienst
    oder dort keine Zuweisung für die Dienstart gibt.
    """
    prev = previous_service(target, services)
    if prev is None:
        return None
    index, _ = index_assignments(a for a in assignments if a.service_id == prev.id)
    found = index.get((prev.id, duty_type_id))
    if found is None:
        return None
    return AssignmentDraft(member_id=found.member_id, notes=found.notes)


class RotaBoard:
    """Lesesicht auf den Dienstplan plus durchgereichte Schreibzugriffe."""

    def __init__(self, services, assignments):
        self.services = services
        self.assignments = assignments

    def load(self, template_id, start, end, duty_types: Sequence[DutyType]) -> RotaGrid:
        svcs = self.services.list_occurrences(template_id, (start, end))
        assigned = self.assignments.list_assignments([s.id for s in svcs])
        return build_grid(svcs, duty_types, assigned)

    def draft_from_previous(self, target: ServiceOccurrence, duty_type_id) -> Optional[AssignmentDraft]:
        prev_date = target.date - timedelta(days=7)
        candidates = self.services.list_occurrences(target.template_id, (prev_date, prev_date))
        prev = previous_service(target, candidates)
        if prev is None:
            return None
        return copy_from_previous(target, duty_type_id, [prev], self.assignments.list_assignments([prev.id]))

    def assign(self, service_id, duty_type_id, member_id, notes=None, status='scheduled') -> Assignment:
        return self.assignments.upsert_assignment(service_id, duty_type_id, member_id, notes=notes, status=status)

    def unassign(self, assignment_id) -> None:
        self.assignments.delete_assignment(assignment_id)
