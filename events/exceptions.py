"""
Exceptions raised by the event occurrence engine.

Services raise these framework-agnostic errors; the API layer maps them
to HTTP responses in ``events.views.exception_handler``.
"""


class EventsError(Exception):
    """Base class for occurrence engine errors."""


class ValidationFailed(EventsError):
    """Input was rejected before anything was persisted."""

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.errors = errors or {}


class NotFound(EventsError):
    """The referenced occurrence or series does not exist."""


class Conflict(EventsError):
    """The operation is not allowed in the occurrence's current state."""


class ExternalSyncFailed(EventsError):
    """A call to the external calendar failed. Never reaches the caller."""
