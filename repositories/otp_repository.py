"""
Repository for the `otps` collection.

At most one record exists per (email, otp_type): issuing a code upserts over
the previous one. Every read takes a ``cutoff`` and only matches records
created after it, so a code is dead the moment its lifetime ends even if the
TTL monitor has not purged it yet.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from repositories.base import BaseRepository
from schemas.models.base import to_object_id
from schemas.models.otp import OTP_MAX_ATTEMPTS, OtpDoc
from shared.logging import get_logger

log = get_logger(__name__)


class OtpRepository(BaseRepository):
    collection_name = "otps"

    async def upsert(
        self,
        email: str,
        otp_type: str,
        code_hash: str,
        ip_address: Optional[str],
        now: datetime,
    ) -> None:
        """Store a fresh code for (email, otp_type), superseding any previous one."""
        query = {"email": email, "otp_type": otp_type}
        update = {
            "$set": {
                "code_hash": code_hash,
                "ip_address": ip_address,
                "attempts": 0,
                "verified": False,
                "created_at": now,
            }
        }
        try:
            await self._run("upsert", self._col.update_one(query, update, upsert=True))
        except DuplicateKeyError:
            # Two concurrent upserts raced on the unique index; the second
            # attempt finds the winner's document and updates it.
            log.debug("otp_upsert_retry", otp_type=otp_type)
            await self._run("upsert", self._col.update_one(query, update, upsert=True))

    async def consume(
        self, email: str, otp_type: str, code_hash: str, cutoff: datetime
    ) -> Optional[OtpDoc]:
        doc = await self._run(
            "consume",
            self._col.find_one_and_delete(
                {
                    "email": email,
                    "otp_type": otp_type,
                    "code_hash": code_hash,
                    "created_at": {"$gt": cutoff},
                }
            ),
        )
        return OtpDoc.from_mongo(doc)

    async def claim_attempt(
        self, email: str, otp_type: str, cutoff: datetime
    ) -> Optional[OtpDoc]:
        """Atomically count one attempt against a live, non-exhausted record.

        Returns the record after the increment, or None when there is no
        claimable record.
        """
        doc = await self._run(
            "claim_attempt",
            self._col.find_one_and_update(
                {
                    "email": email,
                    "otp_type": otp_type,
                    "created_at": {"$gt": cutoff},
                    "attempts": {"$lt": OTP_MAX_ATTEMPTS},
                },
                {"$inc": {"attempts": 1}},
                return_document=ReturnDocument.AFTER,
            ),
        )
        return OtpDoc.from_mongo(doc)

    async def find_active(
        self, email: str, otp_type: str, cutoff: datetime
    ) -> Optional[OtpDoc]:
        doc = await self._run(
            "find_active",
            self._col.find_one(
                {"email": email, "otp_type": otp_type, "created_at": {"$gt": cutoff}}
            ),
        )
        return OtpDoc.from_mongo(doc)

    async def mark_verified(self, otp_id: Any) -> None:
        await self._run(
            "mark_verified",
            self._col.update_one(
                {"_id": to_object_id(otp_id)}, {"$set": {"verified": True}}
            ),
        )

    async def consume_by_id(self, otp_id: Any, code_hash: str) -> Optional[OtpDoc]:
        doc = await self._run(
            "consume_by_id",
            self._col.find_one_and_delete(
                {"_id": to_object_id(otp_id), "code_hash": code_hash}
            ),
        )
        return OtpDoc.from_mongo(doc)

    async def delete_by_id(self, otp_id: Any) -> None:
        await self._run(
            "delete_by_id", self._col.delete_one({"_id": to_object_id(otp_id)})
        )

    async def delete_for_email(self, email: str) -> int:
        result = await self._run(
            "delete_for_email", self._col.delete_many({"email": email})
        )
        return result.deleted_count
