"""Password hashing and format rules for email/password accounts."""

import re

import bcrypt

PASSWORD_REGEX = re.compile(r"^(?=.*[0-9])(?=.*[!@#$%^&*])[a-zA-Z0-9!@#$%^&*]{6,15}$")
EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

PASSWORD_RULES = "Password must be 6-15 characters and contain at least one number and one special character"

# Compared against when the email is unknown so both paths cost one bcrypt check.
DUMMY_HASH = b"$2b$12$ZP2PVB8yI35X.mkRqcUPUuSzJA1CNRt4dZ7X3cyrfJu.2S3w.Qen2"


def is_valid_email(email: str) -> bool:
    return bool(email) and bool(EMAIL_REGEX.match(email))


def is_valid_password(password: str) -> bool:
    return bool(password) and bool(PASSWORD_REGEX.match(password))


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def check_password(password: str, password_hash: str | None) -> bool:
    """Constant-time comparison through bcrypt; a missing hash still costs one check."""
    if not password_hash:
        bcrypt.checkpw(password.encode(), DUMMY_HASH)
        return False
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # stored value is not a bcrypt hash
        return False
