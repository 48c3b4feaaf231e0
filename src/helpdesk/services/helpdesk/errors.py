"""Typed failures raised by the helpdesk engine.

Each error carries a stable ``code`` that the API layer and bulk
operations surface to clients.
"""


class HelpdeskError(Exception):
    """Base class for helpdesk engine failures."""

    code = "HELPDESK_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(HelpdeskError, ValueError):
    """Malformed input, invalid transition or terminal-state violation."""

    code = "VALIDATION_ERROR"


class NotFoundError(HelpdeskError, LookupError):
    """Ticket does not exist."""

    code = "NOT_FOUND"


class AuthorizationError(HelpdeskError):
    """Actor lacks the capability for the requested action."""

    code = "FORBIDDEN"


class ConflictError(HelpdeskError):
    """Stale version: the ticket changed since it was read."""

    code = "CONFLICT"
