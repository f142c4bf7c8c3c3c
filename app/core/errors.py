"""
Error classes for the auth API.

Every error carries a machine-readable code, a human-readable message and the
HTTP status it maps to. The exception handlers in main.py render them as:

    {"success": false, "error": "<code>", "details": "<message or extra>"}

Service code raises these; endpoints never build error responses by hand.
"""

from typing import Any, Optional


class AuthServiceError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 400
    code: str = "BadRequest"
    message: str = "Bad request"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        code: Optional[str] = None,
        details: Any = None,
    ) -> None:
        if message is not None:
            self.message = message
        if code is not None:
            self.code = code
        self.details = details
        super().__init__(self.message)

    def to_body(self) -> dict:
        return {
            "success": False,
            "error": self.code,
            "details": self.details if self.details is not None else self.message,
        }


class ValidationError(AuthServiceError):
    """Malformed input (400). Never retried."""

    status_code = 400
    code = "ValidationError"
    message = "Invalid request"


class InvalidAddressFormat(ValidationError):
    code = "InvalidAddressFormat"
    message = "Valid wallet address required"


class NoActiveChallenge(ValidationError):
    code = "NoActiveChallenge"
    message = "No active nonce found. Please start authentication process again"


class AuthenticationError(AuthServiceError):
    """Bad or missing credentials (401)."""

    status_code = 401
    code = "Unauthorized"
    message = "Authentication required"


class InvalidSignature(AuthenticationError):
    code = "InvalidSignature"
    message = "Invalid signature"


class InvalidCredentials(AuthenticationError):
    code = "InvalidCredentials"
    message = "Invalid email or password"


class InvalidRefreshToken(AuthenticationError):
    code = "InvalidRefreshToken"
    message = "Invalid refresh token"


class RefreshTokenExpired(AuthenticationError):
    code = "RefreshTokenExpired"
    message = "Refresh token expired"


class ForbiddenError(AuthServiceError):
    """Valid request refused (403)."""

    status_code = 403
    code = "Forbidden"
    message = "Access denied"


class AddressMismatch(ForbiddenError):
    code = "AddressMismatch"
    message = "Wallet address does not match registered user"


class InvalidToken(ForbiddenError):
    code = "InvalidToken"
    message = "Invalid token"


class TokenExpired(ForbiddenError):
    code = "TokenExpired"
    message = "Token expired"


class NotFoundError(AuthServiceError):
    status_code = 404
    code = "NotFound"
    message = "Not found"


class AccountNotFound(NotFoundError):
    code = "AccountNotFound"
    message = "User not found"


class ConflictError(AuthServiceError):
    """State conflict (409), never silently ignored."""

    status_code = 409
    code = "Conflict"
    message = "Conflicting state"


class WalletAlreadyBound(ConflictError):
    code = "WalletAlreadyBound"
    message = "Wallet address is already linked to another account"


class EmailExists(ConflictError):
    code = "EmailExists"
    message = "Email already exists"


class UsernameTaken(ConflictError):
    code = "UsernameTaken"
    message = "Username already taken"


class LastAuthMethod(ConflictError):
    code = "LastAuthMethod"
    message = "Cannot disconnect the only sign-in method of this account"


class UpstreamError(AuthServiceError):
    """A dependency (database, RPC, email) failed (5xx)."""

    status_code = 502
    code = "UpstreamError"
    message = "Upstream service error"
