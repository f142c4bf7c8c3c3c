"""
Credential store: the only shared mutable state of the auth core.

Accounts, their outstanding nonce and their active refresh tokens live in the
database. Every mutation the session manager relies on for correctness is a
single conditional statement whose rowcount says whether it won:

    consume_nonce      UPDATE accounts SET pending_nonce = NULL
                       WHERE id = :id AND pending_nonce = :nonce
    consume_challenge  DELETE FROM wallet_challenges
                       WHERE address = :addr AND nonce = :nonce
    bind_wallet        UPDATE accounts SET wallet_address = :addr
                       WHERE id = :id AND wallet_address IS NULL
    rotate_refresh     DELETE FROM refresh_tokens WHERE token = :old  (then INSERT)

so two requests racing on the same account can't both consume one nonce or
both rotate one refresh token.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, WalletAlreadyBound
from app.models.auth import AddressChallenge, RefreshToken
from app.models.users import Account

logger = logging.getLogger(__name__)


class CredentialStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Account lookups
    # ------------------------------------------------------------------

    def get_account(self, account_id: str) -> Optional[Account]:
        return self.db.query(Account).filter(Account.id == account_id).first()

    def get_by_email(self, email: str) -> Optional[Account]:
        return self.db.query(Account).filter(Account.email == email.strip().lower()).first()

    def get_by_username(self, username: str) -> Optional[Account]:
        return self.db.query(Account).filter(Account.username == username).first()

    def get_by_wallet(self, address: str) -> Optional[Account]:
        return self.db.query(Account).filter(Account.wallet_address == address).first()

    # ------------------------------------------------------------------
    # Account writes
    # ------------------------------------------------------------------

    def create_account(
        self,
        now: int,
        email: Optional[str] = None,
        username: Optional[str] = None,
        password_hash: Optional[str] = None,
        wallet_address: Optional[str] = None,
    ) -> Account:
        """
        Insert a new account.

        Raises:
            ConflictError: If the email, username or wallet address is already taken
        """
        account = Account(
            email=email.strip().lower() if email else None,
            username=username,
            password_hash=password_hash,
            wallet_address=wallet_address,
            created_at=now,
        )
        self.db.add(account)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("Account already exists")
        self.db.refresh(account)
        return account

    def touch_login(self, account_id: str, now: int) -> None:
        self.db.query(Account).filter(Account.id == account_id).update(
            {Account.last_login_at: now}, synchronize_session=False
        )
        self.db.commit()

    # ------------------------------------------------------------------
    # Nonce
    # ------------------------------------------------------------------

    def set_pending_nonce(
        self, account_id: str, nonce: str, expires_at: int, address: Optional[str] = None
    ) -> bool:
        """Overwrite the outstanding challenge of an account. False if it does not exist."""
        updated = (
            self.db.query(Account)
            .filter(Account.id == account_id)
            .update(
                {
                    Account.pending_nonce: nonce,
                    Account.pending_nonce_expires_at: expires_at,
                    Account.pending_nonce_address: address,
                },
                synchronize_session=False,
            )
        )
        self.db.commit()
        return updated == 1

    def consume_nonce(self, account_id: str, nonce: str) -> bool:
        """
        Clear the pending nonce only if it still holds `nonce`.

        Returns True for exactly one caller per issued nonce.
        """
        updated = (
            self.db.query(Account)
            .filter(Account.id == account_id, Account.pending_nonce == nonce)
            .update(
                {
                    Account.pending_nonce: None,
                    Account.pending_nonce_expires_at: None,
                    Account.pending_nonce_address: None,
                },
                synchronize_session=False,
            )
        )
        self.db.commit()
        return updated == 1

    # ------------------------------------------------------------------
    # Address challenges (wallet login without a bearer token)
    # ------------------------------------------------------------------

    def get_address_challenge(self, address: str) -> Optional[AddressChallenge]:
        return (
            self.db.query(AddressChallenge).filter(AddressChallenge.address == address).first()
        )

    def set_address_challenge(self, address: str, nonce: str, expires_at: int, now: int) -> None:
        """
        Overwrite the outstanding challenge of an address, pruning expired
        challenges of all addresses first.
        """
        self.db.query(AddressChallenge).filter(AddressChallenge.expires_at <= now).delete(
            synchronize_session=False
        )
        values = {AddressChallenge.nonce: nonce, AddressChallenge.expires_at: expires_at}
        updated = (
            self.db.query(AddressChallenge)
            .filter(AddressChallenge.address == address)
            .update(values, synchronize_session=False)
        )
        if updated == 0:
            self.db.add(AddressChallenge(address=address, nonce=nonce, expires_at=expires_at))
        try:
            self.db.commit()
        except IntegrityError:
            # inserted concurrently, overwrite it
            self.db.rollback()
            self.db.query(AddressChallenge).filter(AddressChallenge.address == address).update(
                values, synchronize_session=False
            )
            self.db.commit()

    def consume_address_challenge(self, address: str, nonce: str) -> bool:
        """
        Delete the challenge of an address only if it still holds `nonce`.

        Returns True for exactly one caller per issued nonce.
        """
        deleted = (
            self.db.query(AddressChallenge)
            .filter(AddressChallenge.address == address, AddressChallenge.nonce == nonce)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted == 1

    def purge_expired_challenges(self, now: int) -> int:
        deleted = (
            self.db.query(AddressChallenge)
            .filter(AddressChallenge.expires_at <= now)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted

    # ------------------------------------------------------------------
    # Wallet binding
    # ------------------------------------------------------------------

    def bind_wallet(self, account_id: str, address: str) -> bool:
        """
        Bind `address` to an account that has no wallet yet.

        Returns False if the account already has a wallet (the bound value is
        left untouched).

        Raises:
            WalletAlreadyBound: If another account holds this address
        """
        try:
            updated = (
                self.db.query(Account)
                .filter(Account.id == account_id, Account.wallet_address.is_(None))
                .update({Account.wallet_address: address}, synchronize_session=False)
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise WalletAlreadyBound()
        return updated == 1

    def unbind_wallet(self, account_id: str) -> bool:
        """Remove the wallet of an account that keeps a password. False otherwise."""
        updated = (
            self.db.query(Account)
            .filter(
                Account.id == account_id,
                Account.wallet_address.isnot(None),
                Account.password_hash.isnot(None),
            )
            .update(
                {
                    Account.wallet_address: None,
                    Account.pending_nonce: None,
                    Account.pending_nonce_expires_at: None,
                    Account.pending_nonce_address: None,
                },
                synchronize_session=False,
            )
        )
        self.db.commit()
        return updated == 1

    # ------------------------------------------------------------------
    # Refresh tokens
    # ------------------------------------------------------------------

    def list_refresh_tokens(self, account_id: str) -> List[RefreshToken]:
        return (
            self.db.query(RefreshToken)
            .filter(RefreshToken.account_id == account_id)
            .order_by(RefreshToken.issued_at, RefreshToken.id)
            .all()
        )

    def find_refresh_token(self, token: str) -> Optional[RefreshToken]:
        return self.db.query(RefreshToken).filter(RefreshToken.token == token).first()

    def add_refresh_token(
        self,
        account_id: str,
        token: str,
        issued_at: int,
        expires_at: int,
        max_active: int,
    ) -> RefreshToken:
        """
        Record a refresh token, pruning the account's expired tokens and
        evicting the oldest ones beyond `max_active`.
        """
        self.db.query(RefreshToken).filter(
            RefreshToken.account_id == account_id,
            RefreshToken.expires_at <= issued_at,
        ).delete(synchronize_session=False)

        record = RefreshToken(
            token=token, account_id=account_id, issued_at=issued_at, expires_at=expires_at
        )
        self.db.add(record)
        self.db.flush()
        self._evict_overflow(account_id, max_active)
        self.db.commit()
        self.db.refresh(record)
        return record

    def _evict_overflow(self, account_id: str, max_active: int) -> None:
        if max_active <= 0:
            return
        overflow = [
            row.id
            for row in self.db.query(RefreshToken.id)
            .filter(RefreshToken.account_id == account_id)
            .order_by(RefreshToken.issued_at.desc(), RefreshToken.id.desc())
            .offset(max_active)
            .all()
        ]
        if overflow:
            self.db.query(RefreshToken).filter(RefreshToken.id.in_(overflow)).delete(
                synchronize_session=False
            )
            logger.info("evicted %d oldest sessions of account %s", len(overflow), account_id)

    def remove_refresh_token(self, token: str) -> bool:
        """Delete a refresh token. False if no account held it."""
        deleted = (
            self.db.query(RefreshToken)
            .filter(RefreshToken.token == token)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted == 1

    def rotate_refresh_token(
        self,
        old_token: str,
        account_id: str,
        new_token: str,
        issued_at: int,
        expires_at: int,
    ) -> bool:
        """
        Replace `old_token` with `new_token` for the same account.

        Returns False (and stores nothing) if `old_token` was already gone,
        i.e. another request rotated or revoked it first.
        """
        deleted = (
            self.db.query(RefreshToken)
            .filter(RefreshToken.token == old_token, RefreshToken.account_id == account_id)
            .delete(synchronize_session=False)
        )
        if deleted != 1:
            self.db.rollback()
            return False

        self.db.add(
            RefreshToken(
                token=new_token, account_id=account_id, issued_at=issued_at, expires_at=expires_at
            )
        )
        self.db.commit()
        return True

    def purge_expired_refresh_tokens(self, now: int) -> int:
        deleted = (
            self.db.query(RefreshToken)
            .filter(RefreshToken.expires_at <= now)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted
