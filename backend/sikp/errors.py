"""Service-level error taxonomy.

Services raise these exceptions; the HTTP layer maps each one to its
`status_code` and returns `{"error": message}`.
"""


class ServiceError(Exception):
    """Base class for business-rule failures surfaced to the caller."""
    status_code = 400

    def __init__(self, message: str, details=None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(ServiceError):
    """Malformed or out-of-range input."""
    status_code = 400


class AccessDeniedError(ServiceError):
    """An access-level or eligibility gate is not met."""
    status_code = 403


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    """Overlapping booking or duplicate resource."""
    status_code = 409
