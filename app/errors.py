"""
Error taxonomy of the points core.

Services raise these; the HTTP layer maps each one to a status code and a
stable ``code`` so callers can tell them apart. None of them is retried by
the core.
"""


class PointsError(Exception):
    code = "POINTS_ERROR"
    status_code = 400

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class ValidationError(PointsError):
    """Malformed or out-of-range input: points outside bounds, bad names, missing fields."""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(PointsError):
    """Unknown or inactive table / QR token."""

    code = "NOT_FOUND"
    status_code = 404


class ConflictError(PointsError):
    """Duplicate table number or QR token on create."""

    code = "CONFLICT"
    status_code = 409


class InvalidStateError(PointsError):
    """Balance would go negative."""

    code = "INVALID_STATE"
    status_code = 400
