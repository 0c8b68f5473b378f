"""
Engine-wide exception hierarchy.

Every service raises one of these types; blueprints register handlers
against them once and get consistent HTTP status codes everywhere.

    ValidationError        422  business-rule violation, nothing was mutated
      InvalidRangeError    422  schedule end date before start date
      InvalidDateError     422  date string that is not YYYY-MM-DD
      DependencyCycleError 422  template dependency graph is not a DAG
    NotFoundError          404  unknown activity / unit activity / measurement
    AlreadyReviewedError   409  approve/reject on a terminal measurement

Usage:
    from buildtrack.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Measurement", resource_id=42)
    raise ValidationError("progress must be between 0 and 100", details={"progress": 150})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    A record belonging to another project is reported the same way as a
    missing one.

    Args:
        resource: Human-readable entity name (e.g. "ProjectActivity", "Measurement").
        resource_id: The key that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Always raised before any mutation: a ValidationError means no row was
    created or changed.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level (or item-level) breakdown for
                 structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class InvalidRangeError(ValidationError):
    """Raised when a date range ends before it starts."""

    def __init__(self, start, end) -> None:
        self.start = start
        self.end = end
        super().__init__(
            f"end date {end} is before start date {start}",
            details={"startDate": str(start), "endDate": str(end)},
        )


class InvalidDateError(ValidationError):
    """Raised when a date value cannot be parsed as an ISO YYYY-MM-DD date."""

    def __init__(self, value, field: str | None = None) -> None:
        self.value = value
        self.field = field
        label = f"{field} " if field else ""
        super().__init__(
            f"{label}value {value!r} is not a valid YYYY-MM-DD date",
            details={field or "date": str(value)},
        )


class DependencyCycleError(ValidationError):
    """Raised when template activity dependencies contain a cycle.

    Args:
        cycle: The offending path of activity keys; first and last entries
               are the same key.
    """

    def __init__(self, cycle: list) -> None:
        self.cycle = list(cycle)
        path = " -> ".join(str(k) for k in self.cycle)
        super().__init__(
            f"Dependency cycle detected: {path}",
            details={"cycle": [str(k) for k in self.cycle]},
        )


class AlreadyReviewedError(Exception):
    """Raised when approve/reject targets a measurement that is no longer PENDING.

    Measurement history is an append-only audit log: a second review is an
    error, never a silent no-op.

    Args:
        measurement_id: The measurement that was reviewed.
        status: Its current (terminal) status, when known.
    """

    def __init__(self, measurement_id: int, status: str | None = None) -> None:
        self.measurement_id = measurement_id
        self.status = status
        msg = f"Measurement id={measurement_id} has already been reviewed"
        if status:
            msg += f" (status={status})"
        super().__init__(msg)
