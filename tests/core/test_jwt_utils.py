from datetime import datetime, timedelta, timezone

import jwt
import pytest

from app.core.config import Settings
from app.core.errors import InvalidToken, TokenExpired
from app.core.jwt_utils import TokenCodec


def make_settings(**overrides) -> Settings:
    values = {
        "ACCESS_TOKEN_SECRET": "access-secret",
        "REFRESH_TOKEN_SECRET": "refresh-secret",
    }
    values.update(overrides)
    return Settings(**values)


class TestTokenCodec:
    def test_requires_both_secrets(self):
        with pytest.raises(RuntimeError):
            TokenCodec(make_settings(REFRESH_TOKEN_SECRET=None))

    def test_requires_distinct_secrets(self):
        with pytest.raises(RuntimeError):
            TokenCodec(make_settings(REFRESH_TOKEN_SECRET="access-secret"))

    def test_access_token_claims(self):
        codec = TokenCodec(make_settings())
        token = codec.mint_access_token({"sub": "acc1", "wallet_address": "0xabc", "email": None})
        claims = codec.verify_access_token(token)

        assert claims["sub"] == "acc1"
        assert claims["type"] == "access"
        assert claims["wallet_address"] == "0xabc"
        assert "email" not in claims
        assert claims["exp"] - claims["iat"] == 900

    def test_refresh_token_lifetime(self):
        codec = TokenCodec(make_settings())
        claims = codec.verify_refresh_token(codec.mint_refresh_token({"sub": "acc1"}))
        assert claims["type"] == "refresh"
        assert claims["exp"] - claims["iat"] == 7 * 24 * 3600

    def test_tokens_minted_together_differ(self):
        codec = TokenCodec(make_settings())
        now = datetime.now(timezone.utc)
        assert codec.mint_refresh_token({"sub": "a"}, now=now) != codec.mint_refresh_token({"sub": "a"}, now=now)

    def test_sub_is_required(self):
        codec = TokenCodec(make_settings())
        with pytest.raises(ValueError):
            codec.mint_access_token({"email": "a@b.co"})

    def test_access_token_rejected_as_refresh(self):
        codec = TokenCodec(make_settings())
        with pytest.raises(InvalidToken):
            codec.verify_refresh_token(codec.mint_access_token({"sub": "acc1"}))

    def test_refresh_token_rejected_as_access(self):
        codec = TokenCodec(make_settings())
        with pytest.raises(InvalidToken):
            codec.verify_access_token(codec.mint_refresh_token({"sub": "acc1"}))

    def test_type_claim_checked_even_with_right_secret(self):
        codec = TokenCodec(make_settings())
        now = datetime.now(timezone.utc)
        forged = jwt.encode(
            {"sub": "acc1", "type": "refresh", "iat": int(now.timestamp()),
             "exp": int((now + timedelta(minutes=5)).timestamp())},
            "access-secret",
            algorithm="HS256",
        )
        with pytest.raises(InvalidToken):
            codec.verify_access_token(forged)

    def test_expired_token(self):
        codec = TokenCodec(make_settings())
        issued = datetime.now(timezone.utc) - timedelta(hours=1)
        with pytest.raises(TokenExpired):
            codec.verify_access_token(codec.mint_access_token({"sub": "acc1"}, now=issued))

    def test_garbage_token(self):
        codec = TokenCodec(make_settings())
        for token in ("", "abc", "a.b.c"):
            with pytest.raises(InvalidToken):
                codec.verify_access_token(token)

    def test_other_secret_rejected(self):
        codec = TokenCodec(make_settings())
        other = TokenCodec(make_settings(ACCESS_TOKEN_SECRET="another", REFRESH_TOKEN_SECRET="again"))
        with pytest.raises(InvalidToken):
            codec.verify_access_token(other.mint_access_token({"sub": "acc1"}))
