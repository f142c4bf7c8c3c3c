from sqlalchemy import BigInteger, Column, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from app.db.base import Base


class RefreshToken(Base):
    """Model for storing active refresh tokens, one row per session.
    Rows are inserted on login, deleted on logout, rotation or expiry detection.
    """

    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token = Column(Text, nullable=False, unique=True)
    account_id = Column(
        String(32), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    issued_at = Column(BigInteger, nullable=False)
    expires_at = Column(BigInteger, nullable=False)

    account = relationship("Account", back_populates="refresh_tokens")


class AddressChallenge(Base):
    """Model for the outstanding challenge of a wallet login without a bearer token.
    Keyed by lowercase address, at most one row per address.
    No account exists for the address until a signature over this nonce verifies.
    Example:
    {
        "address": "0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed",
        "nonce": "a1b2c3...",
        "expires_at": 1763461800
    }
    """

    __tablename__ = "wallet_challenges"

    address = Column(String(42), primary_key=True)
    nonce = Column(String(128), nullable=False)
    expires_at = Column(BigInteger, nullable=False, index=True)
