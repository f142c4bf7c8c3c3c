from typing import Optional

from pydantic import Field

from app.schemas.my_base_model import CustomBaseModel


class ConnectWalletRequest(CustomBaseModel):
    """Request model for POST /connect-wallet - nonce request when signature is absent"""

    wallet_address: Optional[str] = Field(default=None, description="0x-prefixed wallet address")
    signature: Optional[str] = Field(default=None, description="Personal-sign signature of the challenge message")


class NonceResponse(CustomBaseModel):
    """Response model for nonce generation - output"""

    success: bool = True
    nonce: str = ""
    message: str = ""


class UserResponse(CustomBaseModel):
    """Public view of an account"""

    id: str
    email: Optional[str] = None
    username: Optional[str] = None
    wallet_address: Optional[str] = None


class WalletAuthResponse(CustomBaseModel):
    """Response model for a verified wallet signature - output"""

    success: bool = True
    token: str
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    wallet_address: str


class LoginRequest(CustomBaseModel):
    """Request model for password login - input validation"""

    email: str = Field(..., description="Account email")
    password: str = Field(..., description="Account password")


class SignupRequest(CustomBaseModel):
    """Request model for email/password signup - input validation"""

    email: str = Field(..., description="Account email")
    password: str = Field(..., description="6-15 characters, at least one number and one special character")
    confirm_password: str = Field(..., description="Must equal password")
    username: Optional[str] = Field(default=None, description="3-50 characters")


class TokenPairResponse(CustomBaseModel):
    """Response model for login and signup - output"""

    success: bool = True
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserResponse


class RefreshRequest(CustomBaseModel):
    """Request model for refresh and logout"""

    refresh_token: str = Field(..., description="Refresh token issued at login")


class RefreshResponse(CustomBaseModel):
    """Response model for token refresh - output"""

    success: bool = True
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class LogoutResponse(CustomBaseModel):
    success: bool = True


class ProfileResponse(CustomBaseModel):
    """Response model for the current account"""

    success: bool = True
    user: UserResponse
