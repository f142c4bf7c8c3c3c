"""
Session manager: password login, wallet login, token issuance, rotation and revocation.

Wallet login is a small state machine per account or, before any account
exists, per address:

    NoChallenge --request_challenge--> ChallengeIssued
    ChallengeIssued --submit_signature--> Verified | Rejected
    Verified --bind or check address--> Bound | Rejected
    Bound --issue_tokens--> access + refresh pair

The pending nonce is consumed (compare-and-swap) before the signature is
checked, so it is gone after the first submission whatever the outcome and a
replayed signature always meets NoActiveChallenge.

Which account a wallet request targets:
- with a bearer access token: the token's account (linking a wallet to an
  email/password account)
- without one: the challenge is kept per address; on the first verified
  signature the account bound to the address is used, or created bound to it
"""

import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from app.core.config import Settings
from app.core.errors import (
    AccountNotFound,
    AddressMismatch,
    ConflictError,
    EmailExists,
    InvalidAddressFormat,
    InvalidCredentials,
    InvalidRefreshToken,
    InvalidSignature,
    InvalidToken,
    LastAuthMethod,
    NoActiveChallenge,
    RefreshTokenExpired,
    TokenExpired,
    UsernameTaken,
    ValidationError,
)
from app.core.eth_auth import (
    AddressMismatchError,
    SignatureVerificationError,
    build_challenge_message,
    is_valid_address,
    normalize_address,
    verify_signature,
)
from app.core.jwt_utils import REFRESH, TokenCodec
from app.core.passwords import (
    PASSWORD_RULES,
    check_password,
    hash_password,
    is_valid_email,
    is_valid_password,
)
from app.models.users import Account
from app.services.credential_store import CredentialStore
from app.services.nonce_issuer import NonceIssuer

logger = logging.getLogger(__name__)


@dataclass
class WalletChallenge:
    account_id: Optional[str]
    nonce: str
    message: str


@dataclass
class TokenPair:
    account: Account
    access_token: str
    refresh_token: str


class SessionManager:
    def __init__(
        self,
        settings: Settings,
        codec: TokenCodec,
        nonce_issuer: NonceIssuer,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.codec = codec
        self.nonce_issuer = nonce_issuer
        self.clock = clock

    def _now(self) -> int:
        return int(self.clock())

    # ------------------------------------------------------------------
    # Wallet login
    # ------------------------------------------------------------------

    @staticmethod
    def _checked_address(wallet_address: Optional[str]) -> str:
        if not wallet_address or not is_valid_address(wallet_address):
            raise InvalidAddressFormat()
        return normalize_address(wallet_address)

    def connect_wallet(
        self,
        store: CredentialStore,
        wallet_address: Optional[str],
        signature: Optional[str] = None,
        account_id: Optional[str] = None,
    ):
        """Single entry point of POST /connect-wallet: challenge without a signature, login with one."""
        if not signature:
            return self.request_challenge(store, wallet_address, account_id)
        return self.submit_signature(store, wallet_address, signature, account_id)

    def request_challenge(
        self,
        store: CredentialStore,
        wallet_address: Optional[str],
        account_id: Optional[str] = None,
    ) -> WalletChallenge:
        """
        Issue a nonce for `wallet_address`, replacing any outstanding one.

        Without `account_id` the challenge is kept per address and no account
        is touched or created.

        Raises:
            InvalidAddressFormat: If the address is not a well-formed hex address
            AccountNotFound: If `account_id` names no account
        """
        address = self._checked_address(wallet_address)
        account = None
        if account_id:
            account = store.get_account(account_id)
            if account is None:
                raise AccountNotFound()

        nonce = self.nonce_issuer.issue_nonce(store, address, account)
        return WalletChallenge(
            account_id=account.id if account else None,
            nonce=nonce,
            message=build_challenge_message(nonce),
        )

    def submit_signature(
        self,
        store: CredentialStore,
        wallet_address: Optional[str],
        signature: str,
        account_id: Optional[str] = None,
    ) -> TokenPair:
        """
        Redeem the pending nonce with a wallet signature and log in.

        Without `account_id` the account bound to the address is used and
        one is created, already bound, on the first verified signature.

        Raises:
            InvalidAddressFormat: Malformed address
            NoActiveChallenge: No nonce, nonce expired, already consumed, or
                issued for another address
            InvalidSignature: Malformed signature or signed by another address
            AddressMismatch: Account is bound to a different address
            WalletAlreadyBound: Address belongs to another account
        """
        address = self._checked_address(wallet_address)
        if account_id:
            nonce, expires_at = self._take_account_nonce(store, account_id, address)
        else:
            nonce, expires_at = self._take_address_nonce(store, address)

        if expires_at is None or expires_at <= self._now():
            logger.warning("expired nonce presented for %s", account_id or address)
            raise NoActiveChallenge("Nonce expired. Please start authentication process again")

        message = build_challenge_message(nonce)
        try:
            verify_signature(message, signature, address)
        except AddressMismatchError as exc:
            logger.warning(
                "signature for %s recovered %s, claimed %s",
                account_id or address, exc.recovered_address, exc.claimed_address,
            )
            raise InvalidSignature()
        except SignatureVerificationError:
            logger.warning("malformed signature for %s", account_id or address)
            raise InvalidSignature()

        if account_id:
            self._bind_or_check(store, account_id, address)
            account = store.get_account(account_id)
        else:
            account = self._wallet_owner(store, address)
        return self.issue_tokens(store, account)

    def _take_account_nonce(
        self, store: CredentialStore, account_id: str, address: str
    ) -> Tuple[str, Optional[int]]:
        account = store.get_account(account_id)
        if account is None:
            raise AccountNotFound()
        if not account.pending_nonce:
            raise NoActiveChallenge()

        nonce = account.pending_nonce
        expires_at = account.pending_nonce_expires_at
        issued_for = account.pending_nonce_address

        if not store.consume_nonce(account_id, nonce):
            # another request redeemed or replaced it between our read and write
            raise NoActiveChallenge()
        if issued_for and issued_for != address:
            logger.warning(
                "nonce of account %s was issued for %s, presented for %s",
                account_id, issued_for, address,
            )
            raise NoActiveChallenge()
        return nonce, expires_at

    def _take_address_nonce(self, store: CredentialStore, address: str) -> Tuple[str, int]:
        challenge = store.get_address_challenge(address)
        if challenge is None:
            raise NoActiveChallenge()

        nonce, expires_at = challenge.nonce, challenge.expires_at
        if not store.consume_address_challenge(address, nonce):
            raise NoActiveChallenge()
        return nonce, expires_at

    def _wallet_owner(self, store: CredentialStore, address: str) -> Account:
        account = store.get_by_wallet(address)
        if account is not None:
            return account

        try:
            account = store.create_account(now=self._now(), wallet_address=address)
        except ConflictError:
            # bound by a concurrent request between the lookup and the insert
            account = store.get_by_wallet(address)
            if account is None:
                raise
            return account

        logger.info("account %s created for wallet %s", account.id, address)
        return account

    def _bind_or_check(self, store: CredentialStore, account_id: str, address: str) -> None:
        account = store.get_account(account_id)
        if account is None:
            raise AccountNotFound()

        if account.wallet_address is None:
            if store.bind_wallet(account_id, address):
                logger.info("wallet %s bound to account %s", address, account_id)
                return
            # bound concurrently, fall through to the comparison
            account = store.get_account(account_id)

        if account.wallet_address != address:
            logger.warning(
                "account %s is bound to %s, rejected signature from %s",
                account_id, account.wallet_address, address,
            )
            raise AddressMismatch()

    def disconnect_wallet(self, store: CredentialStore, account_id: str) -> Account:
        """
        Unbind the wallet of an account. Only allowed while a password remains.

        Raises:
            AccountNotFound: Unknown account
            LastAuthMethod: The wallet is the account's only credential
        """
        account = store.get_account(account_id)
        if account is None:
            raise AccountNotFound()
        if account.wallet_address is None:
            return account
        if not account.password_hash or not store.unbind_wallet(account_id):
            raise LastAuthMethod()

        logger.info("wallet unbound from account %s", account_id)
        return store.get_account(account_id)

    # ------------------------------------------------------------------
    # Password login
    # ------------------------------------------------------------------

    def password_login(self, store: CredentialStore, email: str, password: str) -> TokenPair:
        """
        Verify email + password and issue a token pair.

        Raises:
            ValidationError: Missing fields or bad email format
            InvalidCredentials: Unknown email or wrong password
            AccountNotFound: Unknown email, only with LOGIN_REVEAL_UNKNOWN_ACCOUNT
        """
        if not email or not password:
            raise ValidationError("Email and password required")
        if not is_valid_email(email):
            raise ValidationError("Invalid email format")

        account = store.get_by_email(email)
        if account is None or not account.password_hash:
            check_password(password, None)
            if account is None and self.settings.LOGIN_REVEAL_UNKNOWN_ACCOUNT:
                raise AccountNotFound()
            raise InvalidCredentials()

        if not check_password(password, account.password_hash):
            logger.warning("wrong password for account %s", account.id)
            raise InvalidCredentials()

        return self.issue_tokens(store, account)

    def signup(
        self,
        store: CredentialStore,
        email: str,
        password: str,
        confirm_password: str,
        username: Optional[str] = None,
    ) -> TokenPair:
        """
        Create an email/password account and log it in.

        Raises:
            ValidationError: Missing fields, mismatch, weak password, bad username
            EmailExists / UsernameTaken: Duplicates (UsernameTaken carries suggestions)
        """
        if not email or not password or not confirm_password:
            raise ValidationError("Email, password, and password confirmation are required")
        if not is_valid_email(email):
            raise ValidationError("Invalid email format")
        if password != confirm_password:
            raise ValidationError("Passwords do not match")
        if not is_valid_password(password):
            raise ValidationError(PASSWORD_RULES)
        if username is not None and not 3 <= len(username) <= 50:
            raise ValidationError("Username must be between 3 and 50 characters")

        if store.get_by_email(email) is not None:
            raise EmailExists()
        if username and store.get_by_username(username) is not None:
            raise UsernameTaken(details={"suggestions": self._username_suggestions(username)})

        account = store.create_account(
            now=self._now(),
            email=email,
            username=username,
            password_hash=hash_password(password, self.settings.BCRYPT_ROUNDS),
        )
        logger.info("account %s signed up", account.id)
        return self.issue_tokens(store, account)

    @staticmethod
    def _username_suggestions(username: str) -> List[str]:
        n = secrets.randbelow(1000)
        return [f"{username}{n}", f"{username}_{n}", f"{n}{username}"]

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def issue_tokens(self, store: CredentialStore, account: Account) -> TokenPair:
        """Mint an access/refresh pair for `account` and persist the refresh token."""
        now = self._now()
        issued = datetime.fromtimestamp(now, tz=timezone.utc)
        claims = {
            "sub": account.id,
            "email": account.email,
            "wallet_address": account.wallet_address,
        }
        access_token = self.codec.mint_access_token(claims, now=issued)
        refresh_token = self.codec.mint_refresh_token({"sub": account.id}, now=issued)

        store.add_refresh_token(
            account.id,
            refresh_token,
            issued_at=now,
            expires_at=now + int(self.codec.lifetime(REFRESH).total_seconds()),
            max_active=self.settings.MAX_ACTIVE_SESSIONS,
        )
        store.touch_login(account.id, now)
        logger.info("tokens issued for account %s", account.id)
        return TokenPair(account=account, access_token=access_token, refresh_token=refresh_token)

    def refresh(self, store: CredentialStore, refresh_token: str) -> TokenPair:
        """
        Exchange a refresh token for a new access token and a rotated refresh token.

        The presented token is removed; reusing it afterwards fails.

        Raises:
            ValidationError: Missing token
            InvalidRefreshToken: Unknown, forged, or already rotated
            RefreshTokenExpired: Past its stored expiry (and removed)
        """
        if not refresh_token:
            raise ValidationError("Refresh token required")

        record = store.find_refresh_token(refresh_token)
        if record is None:
            raise InvalidRefreshToken()

        account_id = record.account_id
        if record.expires_at <= self._now():
            store.remove_refresh_token(refresh_token)
            logger.info("expired refresh token removed for account %s", account_id)
            raise RefreshTokenExpired()

        try:
            claims = self.codec.verify_refresh_token(refresh_token)
        except TokenExpired:
            store.remove_refresh_token(refresh_token)
            raise RefreshTokenExpired()
        except InvalidToken:
            store.remove_refresh_token(refresh_token)
            raise InvalidRefreshToken()

        if claims.get("sub") != account_id:
            store.remove_refresh_token(refresh_token)
            raise InvalidRefreshToken()

        account = store.get_account(account_id)
        if account is None:
            raise InvalidRefreshToken()

        now = self._now()
        issued = datetime.fromtimestamp(now, tz=timezone.utc)
        access_token = self.codec.mint_access_token(
            {"sub": account.id, "email": account.email, "wallet_address": account.wallet_address},
            now=issued,
        )
        new_refresh = self.codec.mint_refresh_token({"sub": account.id}, now=issued)
        rotated = store.rotate_refresh_token(
            refresh_token,
            account.id,
            new_refresh,
            issued_at=now,
            expires_at=now + int(self.codec.lifetime(REFRESH).total_seconds()),
        )
        if not rotated:
            logger.warning("refresh token of account %s was already rotated", account_id)
            raise InvalidRefreshToken()

        logger.info("refresh token rotated for account %s", account_id)
        return TokenPair(account=account, access_token=access_token, refresh_token=new_refresh)

    def revoke(self, store: CredentialStore, refresh_token: Optional[str]) -> bool:
        """Logout. Removing an unknown or already removed token is not an error."""
        if not refresh_token:
            return False
        removed = store.remove_refresh_token(refresh_token)
        if removed:
            logger.info("refresh token revoked")
        return removed

    def get_profile(self, store: CredentialStore, account_id: str) -> Account:
        account = store.get_account(account_id)
        if account is None:
            raise AccountNotFound()
        return account
