"""
Error Taxonomy

Every failure raised by the adjudication core derives from AdjudicationError
and carries the HTTP status it maps to on the wire, so the service and the
client agree on one vocabulary.
"""
from typing import Dict, Type


class AdjudicationError(Exception):
    """Base class for adjudication core errors."""

    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AdjudicationError):
    """Raised when input is malformed or violates a rule, before any mutation."""

    status_code = 400


class AuthenticationError(AdjudicationError):
    """Raised when a credential is missing, expired or invalid."""

    status_code = 401


class AuthorizationError(AdjudicationError):
    """Raised when the identity's role does not permit the operation."""

    status_code = 403


class NotFoundError(AdjudicationError):
    """Raised when a referenced policy, claim, notification or user is absent."""

    status_code = 404


class StateError(AdjudicationError):
    """Raised on an illegal state transition."""

    status_code = 409


class DependencyError(AdjudicationError):
    """Raised when an external collaborator or the audit store fails.

    The triggering domain write is never committed; callers may retry.
    """

    status_code = 503
    retryable = True


_ERRORS_BY_STATUS: Dict[int, Type[AdjudicationError]] = {
    cls.status_code: cls
    for cls in (
        ValidationError,
        AuthenticationError,
        AuthorizationError,
        NotFoundError,
        StateError,
        DependencyError,
    )
}


def error_for_status(status_code: int, message: str) -> AdjudicationError:
    """Rebuild the domain error matching an HTTP error response."""
    if status_code in _ERRORS_BY_STATUS:
        return _ERRORS_BY_STATUS[status_code](message)
    if status_code == 422:
        return ValidationError(message)
    if status_code >= 500:
        return DependencyError(message)
    return AdjudicationError(message)
