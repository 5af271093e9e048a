"""
Errors raised by the role/permission core.
Storage failures are not wrapped: SQLAlchemy errors propagate unchanged.
"""


class AuthorizationCoreError(Exception):
    """Base class for business errors of the authorization core."""


class ValidationError(AuthorizationCoreError):
    """Malformed input to a mutating call."""


class ConflictError(AuthorizationCoreError):
    """Business-rule violation on write (e.g. duplicate active role)."""
