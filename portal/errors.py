"""
Error types raised by the portal service layer.

Every error carries a human-readable message suitable for showing to the
instructor. The web layer maps them to HTTP status codes.
"""


class PortalError(Exception):
    """Base class for recoverable portal errors."""

    status_code = 400

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ValidationError(PortalError):
    """A value is out of bounds, malformed, or a required field is missing."""

    status_code = 400


class AuthorizationError(PortalError):
    """The caller does not own the target class or assessment."""

    status_code = 403


class NotFoundError(PortalError):
    """The referenced record does not exist."""

    status_code = 404
