"""Password hashing (Argon2id)"""
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

# Memory: 64 MiB, Time: 3 iterations, Parallelism: 4
ph = PasswordHasher(
    time_cost=3,
    memory_cost=65536,
    parallelism=4,
    hash_len=32,
    salt_len=16,
)

_dummy_hash: Optional[str] = None


def hash_password(password: str) -> str:
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time check of ``password`` against a stored Argon2 hash."""
    try:
        return ph.verify(password_hash, password)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


def burn_password_check(password: str) -> None:
    """Spend the time of a real verification when the account does not exist."""
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = ph.hash("scriptdesk-dummy-password")
    verify_password(password, _dummy_hash)
