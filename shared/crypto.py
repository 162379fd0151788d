"""
Cryptographic helpers — password hashing and OTP hashing.

Uses argon2 for passwords (via argon2-cffi) and SHA-256 for OTP codes.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

_password_hasher = PasswordHasher()


def hash_password(plain_password: str) -> str:
    """Hash *plain_password* with argon2id.

    Returns:
        Argon2 hash string (includes algorithm parameters and salt).
    """
    return _password_hasher.hash(plain_password)


def verify_password(plain_password: str, password_hash: Optional[str]) -> bool:
    """Verify *plain_password* against an argon2 *password_hash*.

    Returns:
        ``True`` if the password matches, ``False`` for any failure
        (wrong password, missing or invalid hash).
    """
    if not password_hash:
        return False
    try:
        _password_hasher.verify(password_hash, plain_password)
        return True
    except (VerificationError, InvalidHashError):
        return False


def hash_token(token: str) -> str:
    """Return the hex-encoded SHA-256 digest of *token*.

    Used to hash OTP codes before storing them in the database so the
    plaintext is never persisted.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def tokens_match(token_hash: str, candidate: str) -> bool:
    """Constant-time comparison of a stored hash against a plaintext candidate."""
    return hmac.compare_digest(token_hash, hash_token(candidate))
