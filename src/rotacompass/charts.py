# src/rotacompass/charts.py

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

COLOR_ASSIGNED = '#A0FFA0'
COLOR_UNASSIGNED = '#FFADAD'


def create_coverage_chart(values: list[int], labels: list[str], filename: str,
                          colors: list[str] = None, subtitle: str = None) -> str:
    """
    Erstellt ein Tortendiagramm der Dienstplan-Abdeckung und speichert es als PNG.
    :param values: Liste der Werte (z.B. [Besetzt, Offen]).
    :param labels: Zugehörige Labels (z.B. ["Assigned", "Unassigned"]).
    :param filename: Pfad zur Ausgabedatei, z.B. "coverage.png".
    :param colors: (Optional) Liste von Farben für die Segmente.
    :param subtitle: (Optional) Text, der unter das Diagramm geschrieben wird.
    """
    fig, ax = plt.subplots()
    if sum(values) == 0:
        # Platzhalter, wenn es keine Zellen gibt
        ax.text(0.5, 0.5, "No data", ha="center", va="center", fontsize=14)
        ax.axis("off")
    else:
        ax.pie(values, labels=labels, autopct="%1.1f%%",
               colors=colors or [COLOR_ASSIGNED, COLOR_UNASSIGNED][:len(values)])
        ax.axis("equal")
    if subtitle:
        fig.text(0.5, 0.02, subtitle, ha="center", va="bottom", fontsize=16, fontweight='bold')
    fig.savefig(filename, bbox_inches="tight")
    plt.close(fig)
    return filename


def create_grid_coverage_chart(summary: dict, filename: str, subtitle: str = None) -> str:
    """Diagramm direkt aus statistics.summarize_coverage()."""
    return create_coverage_chart(
        [summary['assigned'], summary['unassigned']],
        ["Assigned", "Unassigned"],
        filename,
        subtitle=subtitle,
    )
