import logging
from datetime import date, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from .errors import InvalidPatternError, InvalidSelectionError, RepositoryError
from .models import (
    GenerationResult,
    Outcome,
    RecurrencePattern,
    ServiceOccurrence,
    ServiceTemplate,
    SweepResult,
)
from .recurrence import resolve, resolve_pending


def _index_existing(occurrences: Iterable[ServiceOccurrence], template_id) -> Dict[date, ServiceOccurrence]:
    index = {}
    for occ in occurrences:
        if occ.template_id == template_id and occ.date not in index:
            index[occ.date] = occ
    return index


def net_new_dates(candidates: Iterable[date],
                  existing: Iterable[ServiceOccurrence],
                  template_id) -> List[date]:
    """Kandidaten, für die es zu dieser Vorlage noch keinen Dienst gibt."""
    taken = _index_existing(existing, template_id)
    return sorted({d for d in candidates if d not in taken})


class OccurrenceGenerator:
    """
    Legt aus bestätigten Kandidaten-Terminen konkrete Dienste an.

    Jeder Termin wird einzeln gespeichert (commit-per-item); das Ergebnis
    enthält pro Datum einen Status, sodass nach einem Fehler nur die
    fehlgeschlagenen Termine erneut angestoßen werden müssen.
    """

    def __init__(self, services, patterns, templates):
        self.services = services
        self.patterns = patterns
        self.templates = templates

    def generate(self,
                 pattern: RecurrencePattern,
                 selected_dates: Iterable[date],
                 existing_occurrences: Optional[Iterable[ServiceOccurrence]] = None,
                 should_cancel: Optional[Callable[[], bool]] = None,
                 template: Optional[ServiceTemplate] = None) -> GenerationResult:
        dates = sorted(set(selected_dates))
        result = GenerationResult(
            pattern_id=pattern.id,
            watermark_before=pattern.last_generated_date,
            watermark_after=pattern.last_generated_date,
        )
        if not dates:
            return result

        candidates = set(resolve(pattern, dates[0], dates[-1]))
        invalid = [d for d in dates if d not in candidates]
        if invalid:
            raise InvalidSelectionError(
                f"{len(invalid)} selected date(s) do not belong to pattern {pattern.id}: "
                + ", ".join(d.isoformat() for d in invalid),
                invalid,
            )

        if template is None:
            template = self.templates.get_template(pattern.template_id)
        if existing_occurrences is None:
            existing_occurrences = self.services.list_occurrences(pattern.template_id, (dates[0], dates[-1]))
        existing = _index_existing(existing_occurrences, pattern.template_id)

        processed_through = None
        prefix_intact = True
        for pos, d in enumerate(dates):
            outcome = self._process_date(d, existing, template, pattern.template_id)
            result.outcomes.append(outcome)
            if outcome.status == 'failed':
                prefix_intact = False
            elif prefix_intact:
                processed_through = d

            if should_cancel is not None and pos < len(dates) - 1 and should_cancel():
                rest = dates[pos + 1:]
                logging.info(f"[RotaCompass] Generation for pattern {pattern.id} cancelled, {len(rest)} date(s) left")
                result.outcomes.extend(Outcome(r, 'cancelled') for r in rest)
                break

        self._advance_watermark(pattern, processed_through, result)
        logging.info(f"[RotaCompass] Pattern {pattern.id}: {result.counts()}")
        return result

    def _process_date(self, d, existing, template, template_id) -> Outcome:
        if d in existing:
            return Outcome(d, 'skipped', existing[d], 'occurrence already exists')
        occ = ServiceOccurrence(
            name=template.name,
            date=d,
            time=template.default_time,
            template_id=template_id,
        )
        try:
            occ.id = self.services.create_occurrence(occ)
        except RepositoryError as e:
            logging.error(f"Failed to create service {template.name} on {d.isoformat()}: {e}")
            return Outcome(d, 'failed', None, str(e))
        existing[d] = occ
        return Outcome(d, 'created', occ)

    def _advance_watermark(self, pattern, processed_through, result):
        before = pattern.last_generated_date
        if processed_through is None or (before is not None and processed_through <= before):
            return
        if pattern.id is not None:
            try:
                self.patterns.update_watermark(pattern.id, processed_through)
            except RepositoryError as e:
                raise RepositoryError(
                    f"services generated but watermark of pattern {pattern.id} not saved: {e}",
                    result=result,
                ) from e
        pattern.last_generated_date = processed_through
        result.watermark_after = processed_through

    def generate_due(self,
                     patterns: Iterable[RecurrencePattern],
                     today: date,
                     horizon_days: int = 30) -> List[SweepResult]:
        """
        Automatische Generierung: für jedes aktive Muster alle noch offenen
        Termine bis today + horizon_days anlegen. Ein Fehler bei einem Muster
        hält die übrigen nicht auf.
        """
        horizon = today + timedelta(days=horizon_days)
        results = []
        for pattern in patterns:
            if not pattern.is_active:
                continue
            template_name = 'Unknown'
            try:
                template = self.templates.get_template(pattern.template_id)
                template_name = template.name
                dates = resolve_pending(pattern, today, horizon)
                gen = self.generate(pattern, dates, template=template)
            except (RepositoryError, InvalidPatternError) as e:
                logging.error(f"[RotaCompass] Error processing pattern {pattern.id}: {e}")
                # Teilergebnis, falls schon Dienste angelegt wurden
                partial = getattr(e, 'result', None)
                generated = len(partial.created) if partial is not None else 0
                results.append(SweepResult(pattern.id, template_name, generated, partial, str(e)))
                continue
            error = None
            if gen.failed:
                error = "; ".join(f"{o.date.isoformat()}: {o.reason}" for o in gen.failed)
            results.append(SweepResult(pattern.id, template_name, len(gen.created), gen, error))
        total = sum(r.generated for r in results)
        logging.info(f"[RotaCompass] Generated {total} service(s) from {len(results)} pattern(s)")
        return results
