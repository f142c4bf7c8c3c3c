import uuid

from sqlalchemy import BigInteger, Column, String
from sqlalchemy.orm import relationship

from app.db.base import Base


def _new_account_id() -> str:
    return uuid.uuid4().hex


class Account(Base):
    """Model for accounts table
    Example:
    {
        "id": "9f1c2e7d4b5a4c3e8f0a1b2c3d4e5f60",
        "email": "ada@gmail.com",
        "username": "ada",
        "password_hash": "$2b$12$...",
        "wallet_address": "0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed",
        "pending_nonce": "a1b2c3...",
        "pending_nonce_expires_at": 1763461800,
        "pending_nonce_address": "0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed",
        "created_at": 1763461500,
        "last_login_at": 1763461520
    }
    Every account holds a password_hash, a wallet_address, or both.
    pending_nonce is the challenge issued to a logged-in account linking a wallet;
    wallet logins without a bearer token keep theirs in wallet_challenges.
    """

    __tablename__ = "accounts"

    id = Column(String(32), primary_key=True, default=_new_account_id)
    email = Column(String(255), nullable=True, unique=True, index=True)  # stored lowercase
    username = Column(String(50), nullable=True, unique=True)
    password_hash = Column(String(255), nullable=True)
    wallet_address = Column(String(42), nullable=True, unique=True, index=True)  # lowercase hex
    pending_nonce = Column(String(128), nullable=True)
    pending_nonce_expires_at = Column(BigInteger, nullable=True)
    pending_nonce_address = Column(String(42), nullable=True)
    created_at = Column(BigInteger, nullable=False)
    last_login_at = Column(BigInteger, nullable=True)

    refresh_tokens = relationship(
        "RefreshToken",
        back_populates="account",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RefreshToken.issued_at",
    )
