from datetime import date, timedelta
from typing import Iterator, Optional, Tuple

from dateutil.relativedelta import relativedelta, MO, TU, WE, TH, FR, SA, SU

# indiziert nach Python-Wochentag
_RD_WEEKDAYS = (MO, TU, WE, TH, FR, SA, SU)

# Wochentage wie in der Konsole: 0=Sonntag … 6=Samstag
DAY_NAMES = ['Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday']


def to_weekday(day_of_week: int) -> int:
    """Konsolen-Wochentag (0=So) -> Python-Wochentag (0=Mo)."""
    return (day_of_week + 6) % 7


def day_of_week(d: date) -> int:
    """Python-Datum -> Konsolen-Wochentag (0=So)."""
    return (d.weekday() + 1) % 7


def first_weekday_on_or_after(d: date, dow: int) -> date:
    delta_days = (to_weekday(dow) - d.weekday() + 7) % 7
    return d + timedelta(days=delta_days)


def nth_weekday_of_month(year: int, month: int, dow: int, n: int) -> Optional[date]:
    """
    Der n-te Wochentag `dow` im Monat, z. B. n=2, dow=0 -> zweiter Sonntag.
    None, wenn der Monat weniger als n solcher Tage hat.
    """
    first = date(year, month, 1)
    candidate = first + relativedelta(weekday=_RD_WEEKDAYS[to_weekday(dow)](n))
    if candidate.month != month:
        return None
    return candidate


def iter_month_starts(start: date, end: date) -> Iterator[date]:
    """Erster Tag jedes Monats, der [start, end] überlappt."""
    cursor = start.replace(day=1)
    while cursor <= end:
        yield cursor
        cursor += relativedelta(months=1)


def clamp_window(range_start: date, range_end: date,
                 floor: date, ceiling: Optional[date] = None) -> Optional[Tuple[date, date]]:
    """Fenster auf [floor, ceiling] beschneiden; None bei leerem/umgekehrtem Fenster."""
    start = max(range_start, floor)
    end = range_end if ceiling is None else min(range_end, ceiling)
    if start > end:
        return None
    return start, end


def week_start(d: date) -> date:
    """Sonntag, mit dem die Woche von `d` beginnt."""
    return d - timedelta(days=day_of_week(d))


def shift_window(start: date, end: date, weeks: int) -> Tuple[date, date]:
    """Fenster um ganze Wochen verschieben, Länge bleibt gleich."""
    offset = timedelta(weeks=weeks)
    return start + offset, end + offset


def default_grid_window(today: date, days: int = 56) -> Tuple[date, date]:
    return today, today + timedelta(days=days)
