import os

# settings are read at import time
os.environ.setdefault("ACCESS_TOKEN_SECRET", "test-access-secret")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test-refresh-secret")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from typing import Generator

from main import app
from app.core.config import settings
from app.core.jwt_utils import TokenCodec
from app.db.session import get_db, init_db
from app.services.credential_store import CredentialStore
from app.services.nonce_issuer import NonceIssuer
from app.services.session_manager import SessionManager


class FakeClock:
    """Settable replacement for time.time"""
    def __init__(self, now: float = 1_763_461_800.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def store(db_session) -> CredentialStore:
    return CredentialStore(db_session)


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(settings)


@pytest.fixture
def clock() -> FakeClock:
    import time
    return FakeClock(time.time())


@pytest.fixture
def manager(codec, clock) -> SessionManager:
    return SessionManager(settings, codec, NonceIssuer(settings, clock=clock), clock=clock)


@pytest.fixture
def client(session_factory) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI application"""
    def override_get_db() -> Generator:
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def wallet():
    """A fresh Ethereum key pair"""
    return Account.create()


@pytest.fixture
def other_wallet():
    return Account.create()


def sign(wallet, message: str) -> str:
    """Personal-sign `message` the way a browser wallet does"""
    signature = wallet.sign_message(encode_defunct(text=message)).signature.hex()
    if not signature.startswith("0x"):
        signature = "0x" + signature
    return signature
