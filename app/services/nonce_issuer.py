"""
Issues the single-use challenge a wallet signs to log in.

One challenge per target: issuing a new nonce overwrites the previous one,
so an older nonce can never be redeemed once a newer one exists.
The target is the account when a logged-in user links a wallet, otherwise
the wallet address itself; no account is created for an unverified address.
"""

import logging
import time
from typing import Callable, Optional

from app.core.config import Settings
from app.core.errors import AccountNotFound
from app.core.eth_auth import generate_nonce
from app.models.users import Account
from app.services.credential_store import CredentialStore

logger = logging.getLogger(__name__)


class NonceIssuer:
    def __init__(self, settings: Settings, clock: Callable[[], float] = time.time) -> None:
        self.ttl = settings.NONCE_EXPIRY_SECONDS
        self.clock = clock

    def issue_nonce(
        self, store: CredentialStore, address: str, account: Optional[Account] = None
    ) -> str:
        """
        Generate a nonce and store it as the pending challenge.

        Args:
            store: Credential store bound to the current db session
            address: Lowercase wallet address the challenge is requested for
            account: Logged-in account linking the wallet, None for a wallet login

        Returns:
            The nonce value to hand to the client

        Raises:
            AccountNotFound: If the account vanished before the write
        """
        nonce = generate_nonce()
        now = int(self.clock())
        expires_at = now + self.ttl

        if account is None:
            store.set_address_challenge(address, nonce, expires_at, now)
            logger.info("nonce issued for address %s", address)
            return nonce

        if not store.set_pending_nonce(account.id, nonce, expires_at, address):
            raise AccountNotFound()
        logger.info("nonce issued for account %s (address %s)", account.id, address)
        return nonce
