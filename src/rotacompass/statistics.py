from typing import Dict

from rotacompass.grid import RotaGrid


def coverage_by_duty_type(grid: RotaGrid) -> Dict[str, Dict[str, int]]:
    """
    Je Dienstart:
      assigned   : Anzahl Dienste mit Zuweisung
      unassigned : Anzahl Dienste ohne Zuweisung
    """
    out = {}
    for dt, row in grid.rows():
        assigned = sum(1 for cell in row if cell is not None)
        out[dt.name] = {
            'assigned': assigned,
            'unassigned': len(row) - assigned,
        }
    return out


def summarize_coverage(grid: RotaGrid) -> Dict[str, float]:
    total = len(grid.services) * len(grid.duty_types)
    assigned = sum(1 for _, row in grid.rows() for cell in row if cell is not None)
    assigned_pct = round(assigned / total * 100, 1) if total else 0.0
    return {
        'total': total,
        'assigned': assigned,
        'unassigned': total - assigned,
        'assigned_pct': assigned_pct,
    }


def assignments_per_member(grid: RotaGrid) -> Dict[str, int]:
    """Wie oft jedes Mitglied im Zeitraum eingeteilt ist, häufigste zuerst."""
    counts: Dict[str, int] = {}
    for _, row in grid.rows():
        for cell in row:
            if cell is not None:
                counts[cell.member_id] = counts.get(cell.member_id, 0) + 1
    return dict(sorted(counts.items(), key=lambda kv: (-kv[1], str(kv[0]))))
