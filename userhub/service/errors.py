from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for service-layer exceptions mapped to HTTP responses.

    Each subclass carries an HTTP ``status_code`` and a stable ``error_code``:
    - bad_request (400)
    - unauthorized (401)
    - not_found (404)
    - conflict (409)
    - server_error (500)
    """

    status_code: int = 400
    error_code: str = "bad_request"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[dict] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail or {}


class BadRequestError(ServiceError):
    """Request is missing required input or carries invalid values (400)."""
    status_code = 400
    error_code = "bad_request"


class AuthenticationError(ServiceError):
    """Bad credentials, missing auth, or an unusable token (401)."""
    status_code = 401
    error_code = "unauthorized"


class TokenError(AuthenticationError):
    """A signed token failed verification."""
    pass


class InvalidTokenError(TokenError):
    """Malformed token, bad signature, or wrong issuer/audience/kind."""
    pass


class ExpiredTokenError(TokenError):
    """Token signature is valid but its ``exp`` has passed."""
    pass


class NotFoundError(ServiceError):
    """Requested resource not found (404)."""
    status_code = 404
    error_code = "not_found"


class ConflictError(ServiceError):
    """Uniqueness violation, e.g. duplicate username or email (409)."""
    status_code = 409
    error_code = "conflict"


class ServerError(ServiceError):
    """Unexpected store inconsistency (500)."""
    status_code = 500
    error_code = "server_error"


__all__ = [
    "ServiceError",
    "BadRequestError",
    "AuthenticationError",
    "TokenError",
    "InvalidTokenError",
    "ExpiredTokenError",
    "NotFoundError",
    "ConflictError",
    "ServerError",
]
