"""
JWT Token Utilities

This module handles JSON Web Token (JWT) creation and verification for both login paths.
After a user proves a password or a wallet signature, the session manager asks the codec
for an access/refresh pair.

Flow:
1. User authenticates -> mint_access_token() + mint_refresh_token()
2. User makes API request with the access token in Authorization header -> verify_access_token()
3. User exchanges the refresh token for a new pair -> verify_refresh_token() (see session_manager.py)

Every token contains:
- sub: The account id
- type: "access" or "refresh", checked on verification so the two kinds can't be swapped
- iat / exp: Issued at and expiration timestamps
- jti: Random id, keeps two tokens minted in the same second distinct
- email / wallet_address: Optional identity claims

Access and refresh tokens are signed with different secrets.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from app.core.config import Settings
from app.core.errors import InvalidToken, TokenExpired

ACCESS = "access"
REFRESH = "refresh"


class TokenCodec:
    """Encodes and decodes signed, expiring session claims."""

    def __init__(self, settings: Settings) -> None:
        if not settings.ACCESS_TOKEN_SECRET or not settings.REFRESH_TOKEN_SECRET:
            raise RuntimeError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must be configured")
        if settings.ACCESS_TOKEN_SECRET == settings.REFRESH_TOKEN_SECRET:
            raise RuntimeError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must differ")

        self._secrets = {
            ACCESS: settings.ACCESS_TOKEN_SECRET,
            REFRESH: settings.REFRESH_TOKEN_SECRET,
        }
        self._lifetimes = {
            ACCESS: timedelta(seconds=settings.ACCESS_TOKEN_EXPIRE_SECONDS),
            REFRESH: timedelta(seconds=settings.REFRESH_TOKEN_EXPIRE_SECONDS),
        }
        self.algorithm = settings.ENCODE_ALGORITHM

    def lifetime(self, kind: str) -> timedelta:
        return self._lifetimes[kind]

    def _mint(self, kind: str, claims: Dict[str, Any], now: Optional[datetime] = None) -> str:
        if not claims.get("sub"):
            raise ValueError("sub claim is required")

        now = now or datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            key: value for key, value in claims.items() if value is not None
        }
        payload.update(
            {
                "type": kind,
                "iat": int(now.timestamp()),
                "exp": int((now + self._lifetimes[kind]).timestamp()),
                "jti": uuid.uuid4().hex,
            }
        )
        return jwt.encode(payload, self._secrets[kind], algorithm=self.algorithm)

    def mint_access_token(self, claims: Dict[str, Any], now: Optional[datetime] = None) -> str:
        """
        Create a short-lived access token.

        Args:
            claims: Must include "sub"; "type", "iat", "exp" and "jti" are always overwritten
            now: Issue time, defaults to the current UTC time

        Returns:
            A JWT string for the Authorization: Bearer <token> header
        """
        return self._mint(ACCESS, claims, now)

    def mint_refresh_token(self, claims: Dict[str, Any], now: Optional[datetime] = None) -> str:
        """Create a long-lived refresh token. The caller persists it."""
        return self._mint(REFRESH, claims, now)

    def _verify(self, kind: str, token: str) -> Dict[str, Any]:
        if not token:
            raise InvalidToken("Missing token")

        try:
            payload = jwt.decode(
                token,
                self._secrets[kind],
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpired()
        except jwt.InvalidTokenError:
            raise InvalidToken()

        if payload.get("type") != kind:
            raise InvalidToken("Invalid token type")

        return payload

    def verify_access_token(self, token: str) -> Dict[str, Any]:
        """
        Verify and decode an access token.

        Checks signature, expiration, required claims and the "access" type.

        Raises:
            TokenExpired: If the token is past its exp claim
            InvalidToken: If the signature, claims or type are wrong
        """
        return self._verify(ACCESS, token)

    def verify_refresh_token(self, token: str) -> Dict[str, Any]:
        """Verify and decode a refresh token, same checks as verify_access_token()."""
        return self._verify(REFRESH, token)
