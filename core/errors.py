"""
core/errors.py -- Error taxonomy shared by the identity, authorization, task
and audit layers.

Every error is terminal for the current operation. Nothing in the core retries
on these: they describe logic outcomes (duplicate email, wrong role, missing
row), not transient faults. The HTTP adapter maps each class to a stable
status code through AppError.status_code and AppError.code.

Layer rule: no imports from api/, auth/, tasks/, or audit/.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for domain errors surfaced to the transport layer."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class Conflict(AppError):
    """Uniqueness violation -- duplicate email or organization name."""

    status_code = 409
    code = "conflict"
    default_message = "Resource already exists."


class Unauthorized(AppError):
    """Missing, invalid or expired credential or token.

    The message is always generic. Callers must not pass a message that says
    which precondition failed (unknown email vs. wrong password vs. expired).
    """

    status_code = 401
    code = "unauthorized"
    default_message = "Invalid credentials."


class Forbidden(AppError):
    """Authenticated, but the role or tenancy rules deny the operation."""

    status_code = 403
    code = "forbidden"
    default_message = "Access denied."


class NotFound(AppError):
    """Target absent, or filtered out before its existence was checked."""

    status_code = 404
    code = "not_found"
    default_message = "Resource not found."
