from __future__ import annotations

from typing import Optional


class AuthSystemError(Exception):
    """Base class for authentication-layer exceptions.

    Every subclass carries a stable ``error_code`` so callers binding this
    layer to a transport can map failures without string matching:
    - unauthorized
    - invalid_session_state
    - store_unavailable
    - deserialization_failure
    - validation_error
    """

    error_code: str = "auth_error"

    def __init__(
        self,
        message: str,
        *,
        detail: Optional[dict] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail or {}


class AuthenticationFailure(AuthSystemError):
    """Credential rejected by the verification strategy."""
    error_code = "unauthorized"


class InvalidSessionState(AuthSystemError):
    """Identifier operation invoked without a fulfilled identity."""
    error_code = "invalid_session_state"


class StoreUnavailable(AuthSystemError):
    """Backing store read, write or destroy failed."""
    error_code = "store_unavailable"


class DeserializationFailure(AuthSystemError):
    """Stored identity payload could not be decoded into claims."""
    error_code = "deserialization_failure"


class ValidationError(AuthSystemError):
    """Claim or credential input is malformed."""
    error_code = "validation_error"


__all__ = [
    "AuthSystemError",
    "AuthenticationFailure",
    "InvalidSessionState",
    "StoreUnavailable",
    "DeserializationFailure",
    "ValidationError",
]
