"""Index definitions for the auth collections, applied once at startup."""

from __future__ import annotations

from typing import Any

from pymongo import ASCENDING, IndexModel

from schemas.models.otp import OTP_TTL_SECONDS
from shared.logging import get_logger

log = get_logger(__name__)

USERS_COLLECTION = "users"
OTPS_COLLECTION = "otps"

USER_INDEXES = [
    IndexModel([("email", ASCENDING)], unique=True, name="email_unique"),
    IndexModel(
        [("is_email_verified", ASCENDING), ("registration_expires", ASCENDING)],
        name="unverified_expiry",
    ),
    IndexModel([("block_expires", ASCENDING)], name="block_expires", sparse=True),
]

OTP_INDEXES = [
    IndexModel(
        [("created_at", ASCENDING)],
        expireAfterSeconds=OTP_TTL_SECONDS,
        name="created_at_ttl",
    ),
    IndexModel(
        [("email", ASCENDING), ("otp_type", ASCENDING)],
        unique=True,
        name="email_type_unique",
    ),
]


async def ensure_indexes(db: Any) -> None:
    """Create (or confirm) every index the repositories rely on."""
    await db[USERS_COLLECTION].create_indexes(USER_INDEXES)
    await db[OTPS_COLLECTION].create_indexes(OTP_INDEXES)
    log.info(
        "mongodb_indexes_ensured",
        collections=[USERS_COLLECTION, OTPS_COLLECTION],
    )
