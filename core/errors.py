"""
core/errors.py -- Error taxonomy shared by the store, auth, and api layers.

Every failure a caller can see is one of these. Services raise them; the
exception handlers in api/main.py turn them into the {ok: false, error}
envelope with the status_code declared on the class. Nothing here is retried.

Layer rule: core/ is the kernel. No imports from api/, auth/, or store/.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class. ``message`` is user-facing and returned verbatim."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    """Missing or malformed input. Raised before any store access."""

    status_code = 400


class AuthError(ServiceError):
    """Wrong password, missing/expired/invalid token, or insufficient role."""

    status_code = 401


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    """Duplicate email on signup, or an admin already exists on bootstrap claim."""

    status_code = 409


class UpstreamError(ServiceError):
    """Backing store unreachable or misconfigured. Requests fail closed."""

    status_code = 503
