"""
FastAPI Authentication Dependencies
This module provides FastAPI dependency functions that can be injected into route handlers
to extract and validate access tokens from the Authorization header, and to reach the
components built at startup (see main.py lifespan).
Usage in endpoints:
    @router.get("/protected")
    def protected_route(account_id: str = Depends(get_current_account_id)):
        # account_id is extracted from the access token
        return {"user": account_id}
Flow:
1. Client sends request with Authorization: Bearer <token> header
2. FastAPI calls get_current_claims() dependency
3. _extract_bearer() pulls the token out of the header (401 if absent or malformed)
4. TokenCodec.verify_access_token() validates the JWT (403 if invalid or expired)
5. Returns the claims to the route handler
"""

from typing import Any, Dict, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from app.core.errors import AuthenticationError
from app.core.jwt_utils import TokenCodec
from app.db.session import get_db
from app.services.credential_store import CredentialStore
from app.services.session_manager import SessionManager


def get_token_codec(request: Request) -> TokenCodec:
    return request.app.state.token_codec


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def get_store(db: Session = Depends(get_db)) -> CredentialStore:
    return CredentialStore(db)


def _extract_bearer(authorization: Optional[str]) -> str:
    """
    Extract the token from an Authorization header.
    Args:
        authorization: The Authorization header value (e.g., "Bearer eyJ...")
    Returns:
        The extracted token string
    Raises:
        AuthenticationError 401: If the header is missing or not "Bearer <token>"
    """
    if not authorization or not authorization.strip():
        raise AuthenticationError("Authentication token required")

    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        raise AuthenticationError("Invalid authorization header")

    return token


def get_current_claims(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    codec: TokenCodec = Depends(get_token_codec),
) -> Dict[str, Any]:
    return codec.verify_access_token(_extract_bearer(authorization))


def get_optional_claims(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    codec: TokenCodec = Depends(get_token_codec),
) -> Optional[Dict[str, Any]]:
    """
    Same as get_current_claims() but an absent header yields None.
    A header that is present must still be valid.
    """
    if authorization is None:
        return None
    return codec.verify_access_token(_extract_bearer(authorization))


def get_current_account_id(claims: Dict[str, Any] = Depends(get_current_claims)) -> str:
    """
    returning account id.
    """
    return claims["sub"]
