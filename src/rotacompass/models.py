# src/rotacompass/models.py
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import List, Optional, Union

from .errors import InvalidAssignmentError, InvalidPatternError

PATTERN_TYPES = ('weekly', 'biweekly', 'monthly', 'custom')

# ältere Datensätze schreiben "bi_weekly"
_PATTERN_TYPE_ALIASES = {'bi_weekly': 'biweekly', 'bi-weekly': 'biweekly'}

ASSIGNMENT_STATUSES = ('scheduled', 'confirmed', 'declined')


def _is_int(value):
    return isinstance(value, int) and not isinstance(value, bool)


def check_assignment_status(status):
    if status not in ASSIGNMENT_STATUSES:
        raise InvalidAssignmentError(
            f"status must be one of {', '.join(ASSIGNMENT_STATUSES)}, got {status!r}"
        )


def _check_day_of_week(day_of_week):
    if not _is_int(day_of_week) or not 0 <= day_of_week <= 6:
        raise InvalidPatternError(f"day_of_week must be 0..6 (0=Sunday), got {day_of_week!r}")


@dataclass(frozen=True)
class WeeklyRule:
    """Jede Woche am gleichen Wochentag."""
    day_of_week: int              # 0=Sonntag … 6=Samstag

    def __post_init__(self):
        _check_day_of_week(self.day_of_week)

    @property
    def interval_weeks(self) -> int:
        return 1


@dataclass(frozen=True)
class BiweeklyRule:
    """Alle zwei Wochen, Phase über start_date verankert."""
    day_of_week: int

    def __post_init__(self):
        _check_day_of_week(self.day_of_week)

    @property
    def interval_weeks(self) -> int:
        return 2


@dataclass(frozen=True)
class MonthlyRule:
    """Der n-te Wochentag im Monat (5 = fünfter, entfällt wenn es keinen gibt)."""
    day_of_week: int
    week_of_month: int

    def __post_init__(self):
        _check_day_of_week(self.day_of_week)
        if not _is_int(self.week_of_month) or not 1 <= self.week_of_month <= 5:
            raise InvalidPatternError(f"week_of_month must be 1..5, got {self.week_of_month!r}")


@dataclass(frozen=True)
class CustomRule:
    """Alle X Wochen."""
    day_of_week: int
    interval_weeks: int

    def __post_init__(self):
        _check_day_of_week(self.day_of_week)
        if not _is_int(self.interval_weeks) or self.interval_weeks < 1:
            raise InvalidPatternError(f"interval_weeks must be >= 1, got {self.interval_weeks!r}")


Rule = Union[WeeklyRule, BiweeklyRule, MonthlyRule, CustomRule]

_RULE_TYPES = {
    WeeklyRule: 'weekly',
    BiweeklyRule: 'biweekly',
    MonthlyRule: 'monthly',
    CustomRule: 'custom',
}


def normalize_pattern_type(pattern_type: str) -> str:
    key = (pattern_type or '').strip().lower()
    key = _PATTERN_TYPE_ALIASES.get(key, key)
    if key not in PATTERN_TYPES:
        raise InvalidPatternError(
            f"pattern_type must be one of {', '.join(PATTERN_TYPES)}, got {pattern_type!r}"
        )
    return key


def rule_from_fields(pattern_type: str,
                     day_of_week: Optional[int] = None,
                     week_of_month: Optional[int] = None,
                     interval_weeks: Optional[int] = None) -> Rule:
    """
    Baut aus der flachen Speicherform (pattern_type + optionale Felder) die
    passende Regel. Felder, die für den Typ keine Bedeutung haben, werden ignoriert.
    """
    kind = normalize_pattern_type(pattern_type)
    if day_of_week is None:
        raise InvalidPatternError(f"day_of_week is required for {kind} patterns")
    if kind == 'weekly':
        return WeeklyRule(day_of_week)
    if kind == 'biweekly':
        return BiweeklyRule(day_of_week)
    if kind == 'monthly':
        if week_of_month is None:
            raise InvalidPatternError("week_of_month is required for monthly patterns")
        return MonthlyRule(day_of_week, week_of_month)
    if interval_weeks is None:
        raise InvalidPatternError("interval_weeks is required for custom patterns")
    return CustomRule(day_of_week, interval_weeks)


def rule_type(rule: Rule) -> str:
    try:
        return _RULE_TYPES[type(rule)]
    except KeyError:
        raise InvalidPatternError(f"unknown rule {rule!r}") from None


@dataclass
class RecurrencePattern:
    """Ein wiederkehrendes Dienst-Muster (z. B. jeden 2. Sonntag)."""
    template_id: int
    rule: Rule
    start_date: date = field(default_factory=date.today)
    end_date: Optional[date] = None
    last_generated_date: Optional[date] = None   # Wasserstand der Generierung
    is_active: bool = True
    id: Optional[int] = None                     # db-Primärschlüssel

    def __post_init__(self):
        if type(self.rule) not in _RULE_TYPES:
            raise InvalidPatternError(f"unknown rule {self.rule!r}")
        if self.last_generated_date is not None and self.last_generated_date < self.start_date:
            raise InvalidPatternError(
                f"last_generated_date {self.last_generated_date} lies before start_date {self.start_date}"
            )

    @property
    def pattern_type(self) -> str:
        return rule_type(self.rule)

    def to_fields(self) -> dict:
        """Flache Darstellung für die Datenbank."""
        return {
            'pattern_type': self.pattern_type,
            'day_of_week': self.rule.day_of_week,
            'week_of_month': getattr(self.rule, 'week_of_month', None),
            'interval_weeks': self.rule.interval_weeks if isinstance(self.rule, CustomRule) else None,
        }


@dataclass
class ServiceTemplate:
    """Vorlage eines Gottesdienstes/Dienstes mit Standardzeit."""
    name: str
    default_time: Optional[time] = None
    description: str = ''
    is_active: bool = True
    id: Optional[int] = None


@dataclass
class ServiceOccurrence:
    """Ein konkreter Dienst an einem Datum."""
    name: str
    date: date
    time: Optional[time] = None
    template_id: Optional[int] = None   # None bei manuell angelegten Diensten
    id: Optional[int] = None


@dataclass
class DutyType:
    name: str
    is_active: bool = True
    id: Optional[int] = None


@dataclass
class Assignment:
    """Eine Zelle im Dienstplan: Mitglied für (Dienst, Dienstart)."""
    service_id: int
    duty_type_id: int
    member_id: str
    status: str = 'scheduled'
    notes: Optional[str] = None
    updated_at: Optional[datetime] = None
    id: Optional[int] = None

    def __post_init__(self):
        check_assignment_status(self.status)


@dataclass(frozen=True)
class AssignmentDraft:
    """Vorschlag aus der Vorwoche, noch nicht gespeichert."""
    member_id: str
    notes: Optional[str] = None


@dataclass(frozen=True)
class Outcome:
    """Ergebnis der Generierung für genau ein Datum."""
    date: date
    status: str                                   # created | skipped | failed | cancelled
    occurrence: Optional[ServiceOccurrence] = None
    reason: Optional[str] = None


@dataclass
class GenerationResult:
    pattern_id: Optional[int]
    outcomes: List[Outcome] = field(default_factory=list)
    watermark_before: Optional[date] = None
    watermark_after: Optional[date] = None

    def _with_status(self, status):
        return [o for o in self.outcomes if o.status == status]

    @property
    def created(self) -> List[ServiceOccurrence]:
        return [o.occurrence for o in self._with_status('created')]

    @property
    def skipped(self) -> List[ServiceOccurrence]:
        return [o.occurrence for o in self._with_status('skipped')]

    @property
    def failed(self) -> List[Outcome]:
        return self._with_status('failed')

    @property
    def cancelled(self) -> List[date]:
        return [o.date for o in self._with_status('cancelled')]

    @property
    def ok(self) -> bool:
        return not self.failed and not self.cancelled

    def counts(self) -> dict:
        return {
            'created': len(self._with_status('created')),
            'skipped': len(self._with_status('skipped')),
            'failed': len(self.failed),
            'cancelled': len(self.cancelled),
        }


@dataclass
class SweepResult:
    """Zusammenfassung der automatischen Generierung für ein Muster."""
    pattern_id: Optional[int]
    template_name: str
    generated: int = 0
    result: Optional[GenerationResult] = None
    error: Optional[str] = None
