from typing import Any, Dict, List, Optional, Union
from enum import Enum

from fastapi import APIRouter, Depends, status

from app.core.dependencies import (
    get_current_account_id,
    get_optional_claims,
    get_session_manager,
    get_store,
)
from app.core.errors import ValidationError
from app.schemas.my_base_model import ErrorResponse
import app.schemas.auth as schemas
from app.services.credential_store import CredentialStore
from app.services.session_manager import SessionManager, TokenPair, WalletChallenge

router = APIRouter()
group_tags: List[str | Enum] = ["Auth"]

error_responses: Dict[Union[int, str], Dict[str, Any]] = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


def _user(pair_or_account) -> schemas.UserResponse:
    account = pair_or_account.account if isinstance(pair_or_account, TokenPair) else pair_or_account
    return schemas.UserResponse.from_record(account)


@router.post(
    "/connect-wallet",
    tags=group_tags,
    response_model=None,
    responses={
        200: {"description": "NonceResponse without a signature, WalletAuthResponse with one"},
        **error_responses,
    },
)
def connect_wallet(
    body: schemas.ConnectWalletRequest,
    claims: Optional[Dict[str, Any]] = Depends(get_optional_claims),
    store: CredentialStore = Depends(get_store),
    manager: SessionManager = Depends(get_session_manager),
):
    """
    Wallet login in two calls.

    1. `{walletAddress}` -> `{nonce, message}`; sign `message` in the wallet
    2. `{walletAddress, signature}` -> `{token, accessToken, refreshToken}`

    With a bearer access token the wallet is linked to that account,
    otherwise the account bound to the wallet is used (created on first login).
    """
    account_id = claims["sub"] if claims else None
    result = manager.connect_wallet(store, body.wallet_address, body.signature, account_id)

    if isinstance(result, WalletChallenge):
        return schemas.NonceResponse(nonce=result.nonce, message=result.message)

    return schemas.WalletAuthResponse(
        token=result.access_token,
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        wallet_address=result.account.wallet_address,
    )


@router.post(
    "/disconnect-wallet",
    tags=group_tags,
    response_model=schemas.ProfileResponse,
    responses=error_responses,
)
def disconnect_wallet(
    account_id: str = Depends(get_current_account_id),
    store: CredentialStore = Depends(get_store),
    manager: SessionManager = Depends(get_session_manager),
) -> schemas.ProfileResponse:
    """Unbind the wallet of the current account. Requires a password to remain."""
    account = manager.disconnect_wallet(store, account_id)
    return schemas.ProfileResponse(user=_user(account))


@router.post(
    "/signup",
    tags=group_tags,
    response_model=schemas.TokenPairResponse,
    status_code=status.HTTP_201_CREATED,
    responses=error_responses,
)
def signup(
    body: schemas.SignupRequest,
    store: CredentialStore = Depends(get_store),
    manager: SessionManager = Depends(get_session_manager),
) -> schemas.TokenPairResponse:
    """Create an email/password account and return a token pair."""
    pair = manager.signup(store, body.email, body.password, body.confirm_password, body.username)
    return schemas.TokenPairResponse(
        access_token=pair.access_token, refresh_token=pair.refresh_token, user=_user(pair)
    )


@router.post(
    "/login",
    tags=group_tags,
    response_model=schemas.TokenPairResponse,
    responses=error_responses,
)
def login(
    body: schemas.LoginRequest,
    store: CredentialStore = Depends(get_store),
    manager: SessionManager = Depends(get_session_manager),
) -> schemas.TokenPairResponse:
    """Email/password login."""
    pair = manager.password_login(store, body.email, body.password)
    return schemas.TokenPairResponse(
        access_token=pair.access_token, refresh_token=pair.refresh_token, user=_user(pair)
    )


@router.post(
    "/refresh",
    tags=group_tags,
    response_model=schemas.RefreshResponse,
    responses=error_responses,
)
@router.post(
    "/login/refresh-token",
    tags=group_tags,
    response_model=schemas.RefreshResponse,
    responses=error_responses,
    include_in_schema=False,
)
def refresh(
    body: schemas.RefreshRequest,
    store: CredentialStore = Depends(get_store),
    manager: SessionManager = Depends(get_session_manager),
) -> schemas.RefreshResponse:
    """Exchange a refresh token for a new access token. The refresh token is rotated."""
    pair = manager.refresh(store, body.refresh_token)
    return schemas.RefreshResponse(
        access_token=pair.access_token, refresh_token=pair.refresh_token
    )


@router.post(
    "/logout",
    tags=group_tags,
    response_model=schemas.LogoutResponse,
    responses={400: {"model": ErrorResponse}},
)
def logout(
    body: schemas.RefreshRequest,
    store: CredentialStore = Depends(get_store),
    manager: SessionManager = Depends(get_session_manager),
) -> schemas.LogoutResponse:
    """Revoke a refresh token. Succeeds for unknown or already revoked tokens too."""
    if not body.refresh_token.strip():
        raise ValidationError("Refresh token required")
    manager.revoke(store, body.refresh_token)
    return schemas.LogoutResponse()


@router.get(
    "/me",
    tags=group_tags,
    response_model=schemas.ProfileResponse,
    responses=error_responses,
)
def me(
    account_id: str = Depends(get_current_account_id),
    store: CredentialStore = Depends(get_store),
    manager: SessionManager = Depends(get_session_manager),
) -> schemas.ProfileResponse:
    """Current account, resolved from the access token."""
    return schemas.ProfileResponse(user=_user(manager.get_profile(store, account_id)))
