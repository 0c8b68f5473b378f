"""Standardised API error responses.

Usage
-----
    from buildtrack.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Measurement id=4 not found")
    return api_error(E.VALIDATION_INVALID, "progress must be between 0 and 100",
                     details={"progress": 150})
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Machine-readable error code constants (``ERR_`` prefix)."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    INVALID_RANGE = "ERR_INVALID_RANGE"
    INVALID_DATE = "ERR_INVALID_DATE"
    DEPENDENCY_CYCLE = "ERR_DEPENDENCY_CYCLE"

    NOT_FOUND = "ERR_NOT_FOUND"

    ALREADY_REVIEWED = "ERR_ALREADY_REVIEWED"

    INTERNAL = "ERR_INTERNAL"


_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 422,
    E.INVALID_RANGE: 422,
    E.INVALID_DATE: 422,
    E.DEPENDENCY_CYCLE: 422,
    E.NOT_FOUND: 404,
    E.ALREADY_REVIEWED: 409,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation.
    status : int, optional
        HTTP status override; falls back to ``_DEFAULT_STATUS[code]``, then 400.
    details : dict, optional
        Extra structured payload (failing fields, batch item indexes, cycle path).

    Returns
    -------
    tuple[Response, int]
    """
    http_status = status or _DEFAULT_STATUS.get(code, 400)
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), http_status


def register_error_handlers(bp):
    """Attach the engine's exception → HTTP mapping to a blueprint."""
    from buildtrack.core.exceptions import (
        AlreadyReviewedError,
        DependencyCycleError,
        InvalidDateError,
        InvalidRangeError,
        NotFoundError,
        ValidationError,
    )

    _codes = (
        (DependencyCycleError, E.DEPENDENCY_CYCLE),
        (InvalidRangeError, E.INVALID_RANGE),
        (InvalidDateError, E.INVALID_DATE),
    )

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error):
        code = next((c for cls, c in _codes if isinstance(error, cls)), E.VALIDATION_INVALID)
        return api_error(code, str(error), status=422, details=error.details)

    @bp.errorhandler(AlreadyReviewedError)
    def _handle_already_reviewed(error):
        return api_error(
            E.ALREADY_REVIEWED, str(error),
            details={"measurementId": error.measurement_id, "status": error.status},
        )

    return bp
