"""Password hashing for user accounts."""

from typing import Optional, Tuple

from passlib.context import CryptContext

MIN_PASSWORD_LENGTH = 6

# "2b" ident keeps passlib compatible with the pinned bcrypt release
PWD_CONTEXT = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__ident="2b",
    bcrypt__rounds=12,
)


def hash_password(plain_password: str) -> str:
    return PWD_CONTEXT.hash(plain_password)


def verify_and_upgrade(plain_password: str, password_hash: str) -> Tuple[bool, Optional[str]]:
    """Check a password; also return a fresh hash when the stored one uses outdated settings."""
    return PWD_CONTEXT.verify_and_update(plain_password, password_hash)
