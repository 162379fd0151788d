"""
Random code generators — pure, side-effect-free functions.

All generators use the cryptographically secure ``secrets`` module.
"""

from __future__ import annotations

import secrets
import string


def generate_otp_code(length: int = 6) -> str:
    """Generate a cryptographically secure numeric OTP.

    The first digit is never ``0`` so the code always has exactly *length*
    significant digits.

    Args:
        length: Number of digits (default 6).

    Returns:
        String of random decimal digits.
    """
    first = secrets.choice(string.digits[1:])
    rest = "".join(secrets.choice(string.digits) for _ in range(length - 1))
    return first + rest
