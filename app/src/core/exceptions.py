"""
Error taxonomy for issue lifecycle and delivery operations.

NotFound, PreconditionFailed, InvalidTransition and Validation errors are
caller mistakes and always reach the caller. TransportFailure and
PersistenceFailure describe infrastructure trouble.
"""

from typing import Iterable, Optional


class NewsletterError(Exception):
    """Base class for all domain errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(NewsletterError):
    """Issue, topic, user or sequence row is missing."""


class PreconditionFailedError(NewsletterError):
    """The target exists but is not in a state that allows the operation."""


class InvalidTransitionError(NewsletterError):
    """An issue status change that the state machine does not allow."""

    def __init__(self, from_status: str, to_status: str, allowed: Iterable[str]):
        self.from_status = from_status
        self.to_status = to_status
        self.allowed = list(allowed)
        allowed_text = ", ".join(self.allowed) if self.allowed else "none"
        super().__init__(
            f"Invalid status transition from '{from_status}' to '{to_status}'. "
            f"Allowed transitions: {allowed_text}"
        )


class ValidationError(NewsletterError):
    """Malformed identifiers or input."""


class TransportFailure(NewsletterError):
    """The email transport failed for a whole request."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class PersistenceFailure(NewsletterError):
    """A database round trip failed."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class SequenceConflictError(PersistenceFailure):
    """The sequence counter moved underneath an in-flight broadcast."""
