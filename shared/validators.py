"""
Input validators — framework-agnostic, pure functions.

Services call these before touching the store; every failure is reported
back as a ValidationError by the caller.
"""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_OTP_RE = re.compile(r"^\d{6}$")

MIN_AGE = 13
MAX_AGE = 120
MAX_NAME_LENGTH = 50
MAX_ABOUT_LENGTH = 500


def normalize_email(email: Optional[str]) -> str:
    """Trim and lower-case an email address (``""`` for ``None``)."""
    return (email or "").strip().lower()


def validate_email(email: str) -> bool:
    """Return True if *email* looks like ``local@domain.tld``."""
    return bool(_EMAIL_RE.match(email))


def validate_otp_format(code: str) -> bool:
    """Return True if *code* is exactly six decimal digits."""
    return bool(_OTP_RE.match(code or ""))


def validate_age(age: object) -> Optional[int]:
    """Coerce *age* to ``int`` and check the allowed range.

    Returns:
        The age as an int, or ``None`` when it is not a whole number in
        ``[MIN_AGE, MAX_AGE]``.
    """
    try:
        value = int(age)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if value < MIN_AGE or value > MAX_AGE:
        return None
    return value


def validate_name_part(value: str) -> bool:
    """Return True if a first/last name is non-empty and not too long."""
    value = value.strip()
    return 0 < len(value) <= MAX_NAME_LENGTH


def validate_password(password: str) -> Tuple[bool, List[str]]:
    """
    Validate a password against the account password policy.

    Returns:
        Tuple[bool, List[str]]: (is_valid, missing_requirements)
    """
    if not password:
        return False, ["Password is required"]

    missing = []

    if len(password) < 8:
        missing.append("At least 8 characters")

    if len(password) > 128:
        missing.append("Maximum 128 characters")

    if not re.search(r"[A-Z]", password):
        missing.append("At least one uppercase letter")

    if not re.search(r"[a-z]", password):
        missing.append("At least one lowercase letter")

    if not re.search(r"[0-9]", password):
        missing.append("At least one number")

    if not re.search(r'[!@#$%^&*()_+\-=\[\]{};\':"\\|,.<>\/?~`]', password):
        missing.append("At least one special character")

    return len(missing) == 0, missing


def get_password_requirements() -> List[str]:
    """Get list of all password requirements."""
    return [
        "At least 8 characters",
        "Maximum 128 characters",
        "At least one uppercase letter",
        "At least one lowercase letter",
        "At least one number",
        "At least one special character",
    ]
