from datetime import date, timedelta
from typing import List

from .calendar_logic import (
    DAY_NAMES,
    clamp_window,
    first_weekday_on_or_after,
    iter_month_starts,
    nth_weekday_of_month,
)
from .errors import InvalidPatternError
from .models import (
    BiweeklyRule,
    CustomRule,
    MonthlyRule,
    RecurrencePattern,
    WeeklyRule,
)

_ORDINALS = {1: '1st', 2: '2nd', 3: '3rd', 4: '4th', 5: '5th'}


def _validate(pattern: RecurrencePattern) -> None:
    if not isinstance(pattern.rule, (WeeklyRule, BiweeklyRule, MonthlyRule, CustomRule)):
        raise InvalidPatternError(f"pattern {pattern.id}: unknown rule {pattern.rule!r}")
    if not isinstance(pattern.start_date, date):
        raise InvalidPatternError(f"pattern {pattern.id}: start_date is required")
    if pattern.end_date is not None and not isinstance(pattern.end_date, date):
        raise InvalidPatternError(f"pattern {pattern.id}: end_date must be a date")


def _interval_dates(pattern: RecurrencePattern, start: date, end: date) -> List[date]:
    # Phase hängt nur am ersten Treffer ab start_date, nie am Fensteranfang
    step_days = 7 * pattern.rule.interval_weeks
    anchor = first_weekday_on_or_after(pattern.start_date, pattern.rule.day_of_week)
    if start <= anchor:
        current = anchor
    else:
        steps = -(-(start - anchor).days // step_days)
        current = anchor + timedelta(days=steps * step_days)

    dates: List[date] = []
    while current <= end:
        dates.append(current)
        current += timedelta(days=step_days)
    return dates


def _monthly_dates(rule: MonthlyRule, start: date, end: date) -> List[date]:
    dates: List[date] = []
    for month_start in iter_month_starts(start, end):
        d = nth_weekday_of_month(month_start.year, month_start.month, rule.day_of_week, rule.week_of_month)
        if d is not None and start <= d <= end:
            dates.append(d)
    return dates


def resolve(pattern: RecurrencePattern, range_start: date, range_end: date) -> List[date]:
    """
    Alle Kandidaten-Termine des Musters im Fenster [range_start, range_end],
    aufsteigend und ohne Duplikate. Inaktive Muster und leere Fenster liefern [].
    """
    _validate(pattern)
    if not pattern.is_active:
        return []
    window = clamp_window(range_start, range_end, pattern.start_date, pattern.end_date)
    if window is None:
        return []
    start, end = window

    if isinstance(pattern.rule, MonthlyRule):
        dates = _monthly_dates(pattern.rule, start, end)
    else:
        dates = _interval_dates(pattern, start, end)
    return sorted(set(dates))


def resolve_pending(pattern: RecurrencePattern, range_start: date, range_end: date) -> List[date]:
    """Wie resolve(), aber erst ab dem Tag nach dem Wasserstand."""
    if pattern.last_generated_date is not None:
        range_start = max(range_start, pattern.last_generated_date + timedelta(days=1))
    return resolve(pattern, range_start, range_end)


def describe(pattern: RecurrencePattern) -> str:
    """Kurzbeschreibung für Listen, z. B. 'Every 2nd Sunday'."""
    rule = pattern.rule
    day = DAY_NAMES[rule.day_of_week]
    if isinstance(rule, WeeklyRule):
        return f"Every {day}"
    if isinstance(rule, BiweeklyRule):
        return f"Every other {day}"
    if isinstance(rule, MonthlyRule):
        return f"Every {_ORDINALS[rule.week_of_month]} {day} of the month"
    if rule.interval_weeks == 1:
        return f"Every {day}"
    return f"Every {rule.interval_weeks} weeks on {day}"
