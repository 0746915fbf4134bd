class RotaError(Exception):
    """Basisklasse aller Fehler der Dienstplan-Engine."""


class InvalidPatternError(RotaError, ValueError):
    """Ein Wiederholungsmuster erfüllt die Pflichtfelder seines Typs nicht."""


class InvalidSelectionError(RotaError, ValueError):
    """Ausgewählte Termine passen nicht zum Muster."""

    def __init__(self, message, dates=None):
        super().__init__(message)
        self.dates = list(dates or [])


class InvalidAssignmentError(RotaError, ValueError):
    """Unbekannter Status einer Zuweisung."""


class RepositoryError(RotaError):
    """Kapselt jeden I/O-Fehler eines Repositories.

    `result` trägt ggf. das bis dahin erreichte Teilergebnis (z. B. ein
    GenerationResult), damit der Aufrufer nur die Fehlschläge wiederholt.
    """

    def __init__(self, message, result=None):
        super().__init__(message)
        self.result = result


class TemplateNotFoundError(RepositoryError):
    pass


class DataIntegrityWarning(UserWarning):
    """Mehrere Zuweisungen für dieselbe Zelle (Dienst × Dienstart)."""

    def __init__(self, service_id, duty_type_id, assignment_ids, kept_id):
        super().__init__(
            f"{len(assignment_ids)} assignments for service={service_id} "
            f"duty_type={duty_type_id}; keeping {kept_id}"
        )
        self.service_id = service_id
        self.duty_type_id = duty_type_id
        self.assignment_ids = list(assignment_ids)
        self.kept_id = kept_id
