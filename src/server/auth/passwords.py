from __future__ import annotations

from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

_PH = PasswordHasher()


def hash_password(plain: str) -> str:
    if not plain:
        raise ValueError("Password is required")
    return _PH.hash(plain)


def verify_password(hash_value: str, plain: str) -> bool:
    if not hash_value or not plain:
        return False
    try:
        return _PH.verify(hash_value, plain)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


def needs_rehash(hash_value: str) -> bool:
    return _PH.check_needs_rehash(hash_value)


_DUMMY_HASH: Optional[str] = None


def verify_dummy_password(plain: str) -> bool:
    """Run a full verify against a throwaway hash. Always returns False."""
    global _DUMMY_HASH
    if _DUMMY_HASH is None:
        _DUMMY_HASH = _PH.hash("unused-placeholder-password")
    verify_password(_DUMMY_HASH, plain or "x")
    return False
