"""
Ethereum Wallet Authentication Utilities

This module handles the Ethereum-specific cryptographic operations for wallet authentication.
Signatures follow the "personal sign" scheme (EIP-191): the wallet prefixes the message with
"\\x19Ethereum Signed Message:\\n<len>" and hashes it before signing.

Authentication Flow:
1. Backend generates a random nonce -> generate_nonce()
2. Backend returns the nonce; the wallet signs build_challenge_message(nonce)
3. Frontend sends: walletAddress, signature
4. Backend rebuilds the message from the STORED nonce and verifies: verify_signature()
   - Recovers the signer address from the signature
   - Compares it to the claimed address (lowercase)

The message is never taken from the client, otherwise a signature over any other text
could be replayed here.
"""

import re
import secrets

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import is_address


NONCE_NUM_BYTES = 16  # 16 bytes = 32 hex characters
CHALLENGE_TEMPLATE = "Sign this nonce to authenticate: {nonce}"

_HEX_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{40}$")


class SignatureVerificationError(Exception):
    """Base class for signature verification failures."""


class InvalidSignatureError(SignatureVerificationError):
    """The signature could not be decoded or no address could be recovered."""


class AddressMismatchError(SignatureVerificationError):
    """The signature is valid but was produced by a different address."""

    def __init__(self, recovered_address: str, claimed_address: str) -> None:
        super().__init__("Recovered address does not match claimed address")
        self.recovered_address = recovered_address
        self.claimed_address = claimed_address


def generate_nonce(num_bytes: int = NONCE_NUM_BYTES) -> str:
    """
    Generate a cryptographically secure random nonce for wallet authentication.

    Args:
        num_bytes: Number of random bytes to generate (default: 16 = 32 hex chars, never less)

    Returns:
        Hex-encoded random string (e.g., "a1b2c3d4...")
    """
    if num_bytes < NONCE_NUM_BYTES:
        num_bytes = NONCE_NUM_BYTES
    return secrets.token_hex(num_bytes)


def build_challenge_message(nonce: str) -> str:
    """Message the wallet must sign for a given nonce."""
    return CHALLENGE_TEMPLATE.format(nonce=nonce)


def is_valid_address(address: str) -> bool:
    """
    Check that a string is a well-formed 0x-prefixed Ethereum address.

    All-lowercase and all-uppercase hex are accepted; mixed case must carry a valid
    EIP-55 checksum.
    """
    if not isinstance(address, str):
        return False
    address = address.strip()
    return bool(_HEX_ADDRESS.match(address)) and is_address(address)


def normalize_address(address: str) -> str:
    """Lowercase form used everywhere in storage and comparison."""
    return address.strip().lower()


def recover_address(message: str, signature: str) -> str:
    """
    Recover the lowercase address that signed `message` with personal sign.

    Raises:
        InvalidSignatureError: If the signature is malformed
    """
    if not signature or not isinstance(signature, str):
        raise InvalidSignatureError("Signature is required")

    try:
        recovered = Account.recover_message(encode_defunct(text=message), signature=signature.strip())
    except Exception as exc:
        # eth-account raises ValueError, TypeError or eth_keys errors depending on the defect
        raise InvalidSignatureError(str(exc)) from exc

    return normalize_address(recovered)


def verify_signature(message: str, signature: str, claimed_address: str) -> bool:
    """
    Verify that `signature` over `message` was produced by `claimed_address`.

    This is the check used by the session manager once it has rebuilt the
    challenge message from the stored nonce.

    Args:
        message: The exact text the wallet signed
        signature: 65-byte signature, 0x-prefixed hex
        claimed_address: Address the client says signed it (any case)

    Returns:
        True when the recovered address matches

    Raises:
        InvalidSignatureError: Malformed signature
        AddressMismatchError: Valid signature from another address
    """
    recovered = recover_address(message, signature)
    claimed = normalize_address(claimed_address)
    if recovered != claimed:
        raise AddressMismatchError(recovered, claimed)
    return True
