"""
Domain errors raised by the service layer.

Each carries the HTTP status it is translated to by the handler in api/main.py.
"""


class DomainError(ValueError):
    """Base class for expected, user-facing service failures."""

    status_code = 400


class NotFoundError(DomainError):
    """Raised when a league, event, user, membership, rule or invitation does not exist."""

    status_code = 404


class ForbiddenError(DomainError):
    """Raised when the caller lacks visibility or admin rights, or supplied a bad invite code."""

    status_code = 403


class ConflictError(DomainError):
    """Raised on duplicate membership or admin, full capacity, or an unusable invitation."""

    status_code = 409


class BadRequestError(DomainError):
    """Raised when input passes schema validation but breaks a domain rule."""

    status_code = 400
