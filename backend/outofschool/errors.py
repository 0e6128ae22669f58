"""Exception types raised by services and translated by the HTTP layer."""


class WorkshopValidationError(ValueError):
    """Input rejected before it reaches any store."""


class WorkshopNotFoundError(LookupError):
    """No workshop exists with the requested id."""

    def __init__(self, workshop_id: int):
        super().__init__(f"workshop {workshop_id} not found")
        self.workshop_id = workshop_id


class SearchIndexError(RuntimeError):
    """The search index rejected a request as malformed.

    Outages and missing indices are reported as a failed result instead.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
