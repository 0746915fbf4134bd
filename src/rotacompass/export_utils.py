import csv
import io
import logging
from datetime import date
from typing import Dict, Iterable, Optional, Sequence

from rotacompass.grid import RotaGrid, build_grid
from rotacompass.models import Assignment, DutyType, ServiceOccurrence

EXPORT_HEADER = ["Date", "Service Name", "Time", "Duty Type", "Member", "Notes"]
UNASSIGNED = "Unassigned"

# ISO 8601, unabhängig von der Locale
DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"


def format_date(d: date) -> str:
    return d.strftime(DATE_FORMAT)


def format_time(t) -> str:
    return t.strftime(TIME_FORMAT) if t is not None else ""


def _member_label(assignment: Optional[Assignment], member_names: Optional[Dict]) -> str:
    if assignment is None:
        return UNASSIGNED
    if member_names:
        return member_names.get(assignment.member_id) or str(assignment.member_id)
    return str(assignment.member_id)


def grid_rows(grid: RotaGrid, member_names: Optional[Dict] = None):
    """Eine Zeile je (Dienst, Dienstart): außen Dienste, innen Dienstarten."""
    for col, svc in enumerate(grid.services):
        for row, dt in enumerate(grid.duty_types):
            a = grid.cells[row][col]
            yield [
                format_date(svc.date),
                svc.name,
                format_time(svc.time),
                dt.name,
                _member_label(a, member_names),
                (a.notes or "") if a is not None else "",
            ]


def grid_to_delimited_text(grid: RotaGrid, member_names: Optional[Dict] = None) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(EXPORT_HEADER)
    writer.writerows(grid_rows(grid, member_names))
    return buf.getvalue()


def to_delimited_text(services: Iterable[ServiceOccurrence],
                      duty_types: Sequence[DutyType],
                      assignments: Iterable[Assignment],
                      member_names: Optional[Dict] = None) -> str:
    """
    Dienstplan als CSV-Text. Header fest, Felder mit Komma, Anführungszeichen
    oder Zeilenumbruch werden gequotet. Gleiche Eingaben liefern byte-gleiche Ausgabe.
    """
    return grid_to_delimited_text(build_grid(services, duty_types, assignments), member_names)


def default_export_name(start: date, end: date, suffix: str = "csv") -> str:
    return f"rota-{start.isoformat()}-to-{end.isoformat()}.{suffix}"


def export_rota_csv(filename: str, services, duty_types, assignments, member_names=None) -> str:
    text = to_delimited_text(services, duty_types, assignments, member_names)
    with open(filename, 'w', newline='', encoding='utf-8') as f:
        f.write(text)
    logging.info(f"[RotaCompass] CSV export written to {filename}")
    return filename


def export_rota_pdf(grid: RotaGrid, filename: str, title: str = "Service Rota",
                    member_names: Optional[Dict] = None) -> str:
    """Druckbare Dienstplan-Liste (ein Eintrag je Dienst und Dienstart)."""
    from reportlab.lib.pagesizes import A4
    from reportlab.pdfgen import canvas

    c = canvas.Canvas(filename, pagesize=A4)
    w, h = A4
    columns = [40, 110, 250, 300, 400, 500]

    def header(y):
        c.setFont('Helvetica-Bold', 10)
        for x, label in zip(columns, EXPORT_HEADER):
            c.drawString(x, y, label)
        c.setFont('Helvetica', 9)
        return y - 18

    y = h - 40
    c.setFont('Helvetica-Bold', 14)
    c.drawString(40, y, title)
    y -= 20
    c.setFont('Helvetica', 10)
    if grid.services:
        c.drawString(40, y, f"Zeitraum: {format_date(grid.services[0].date)} bis {format_date(grid.services[-1].date)}")
    else:
        c.drawString(40, y, "Keine Dienste im Zeitraum")
    y -= 30
    y = header(y)
    for values in grid_rows(grid, member_names):
        if y < 50:
            c.showPage()
            y = header(h - 40)
        for x, text in zip(columns, values):
            # Zeilenumbrüche in Notizen passen nicht in eine Tabellenzeile
            c.drawString(x, y, text.replace("\n", " ")[:40])
        y -= 14
    c.save()
    logging.info(f"[RotaCompass] PDF export written to {filename}")
    return filename
