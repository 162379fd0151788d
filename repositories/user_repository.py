"""
Repository for the `users` collection.

All methods are async. Lockout counters are changed with atomic ``$inc`` so
concurrent failed logins cannot lose increments, and the cleanup claim is a
conditional update so two sweeps never delete the same account twice.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from errors import ConflictError
from repositories.base import BaseRepository
from schemas.models.base import to_object_id
from schemas.models.user import UserDoc


def _unverified_expired_query(now: datetime) -> dict:
    return {
        "is_email_verified": False,
        "registration_expires": {"$ne": None, "$lte": now},
        "pending_deletion": {"$ne": True},
    }


class UserRepository(BaseRepository):
    collection_name = "users"

    async def get_by_email(self, email: str) -> Optional[UserDoc]:
        doc = await self._run("get_by_email", self._col.find_one({"email": email}))
        return UserDoc.from_mongo(doc)

    async def get_by_id(self, user_id: Any) -> Optional[UserDoc]:
        oid = to_object_id(user_id)
        if oid is None:
            return None
        doc = await self._run("get_by_id", self._col.find_one({"_id": oid}))
        return UserDoc.from_mongo(doc)

    async def create(self, user: UserDoc) -> UserDoc:
        """Insert *user* and return it with its generated id.

        Raises:
            ConflictError: the email is already registered (unique index).
        """
        try:
            result = await self._run("create", self._col.insert_one(user.to_mongo()))
        except DuplicateKeyError as exc:
            raise ConflictError(
                "User with this email already exists", field="email"
            ) from exc
        return user.model_copy(update={"id": result.inserted_id})

    async def mark_verified(self, email: str, now: datetime) -> Optional[UserDoc]:
        doc = await self._run(
            "mark_verified",
            self._col.find_one_and_update(
                {"email": email},
                {
                    "$set": {
                        "is_email_verified": True,
                        "registration_expires": None,
                        "updated_at": now,
                    }
                },
                return_document=ReturnDocument.AFTER,
            ),
        )
        return UserDoc.from_mongo(doc)

    async def extend_registration(
        self, email: str, until: datetime, now: datetime
    ) -> bool:
        result = await self._run(
            "extend_registration",
            self._col.update_one(
                {"email": email, "is_email_verified": False},
                {"$set": {"registration_expires": until, "updated_at": now}},
            ),
        )
        return result.modified_count == 1

    async def record_failed_login(self, user_id: Any, now: datetime) -> int:
        """Atomically bump login_attempts and return the new value."""
        doc = await self._run(
            "record_failed_login",
            self._col.find_one_and_update(
                {"_id": to_object_id(user_id)},
                {"$inc": {"login_attempts": 1}, "$set": {"updated_at": now}},
                projection={"login_attempts": 1},
                return_document=ReturnDocument.AFTER,
            ),
        )
        return int(doc.get("login_attempts", 0)) if doc else 0

    async def lock(self, user_id: Any, until: datetime, now: datetime) -> None:
        await self._run(
            "lock",
            self._col.update_one(
                {"_id": to_object_id(user_id)},
                {"$set": {"block_expires": until, "updated_at": now}},
            ),
        )

    async def reset_login_state(
        self, user_id: Any, now: datetime, *, successful_login: bool = False
    ) -> None:
        fields: dict = {"login_attempts": 0, "block_expires": None, "updated_at": now}
        if successful_login:
            fields["last_login"] = now
        await self._run(
            "reset_login_state",
            self._col.update_one({"_id": to_object_id(user_id)}, {"$set": fields}),
        )

    async def update_password(
        self,
        user_id: Any,
        password_hash: str,
        now: datetime,
        *,
        reset_lockout: bool = False,
        auth_method: Optional[str] = None,
    ) -> None:
        fields: dict = {"password_hash": password_hash, "updated_at": now}
        if reset_lockout:
            fields.update({"login_attempts": 0, "block_expires": None})
        if auth_method is not None:
            fields["auth_method"] = auth_method
        await self._run(
            "update_password",
            self._col.update_one({"_id": to_object_id(user_id)}, {"$set": fields}),
        )

    async def add_auth_provider(
        self, user_id: Any, provider: str, now: datetime, *, mark_verified: bool = False
    ) -> Optional[UserDoc]:
        fields: dict = {"updated_at": now, "last_login": now}
        if mark_verified:
            fields.update({"is_email_verified": True, "registration_expires": None})
        doc = await self._run(
            "add_auth_provider",
            self._col.find_one_and_update(
                {"_id": to_object_id(user_id)},
                {"$addToSet": {"auth_providers": provider}, "$set": fields},
                return_document=ReturnDocument.AFTER,
            ),
        )
        return UserDoc.from_mongo(doc)

    async def update_profile(
        self, user_id: Any, fields: dict, now: datetime
    ) -> Optional[UserDoc]:
        doc = await self._run(
            "update_profile",
            self._col.find_one_and_update(
                {"_id": to_object_id(user_id)},
                {"$set": {**fields, "updated_at": now}},
                return_document=ReturnDocument.AFTER,
            ),
        )
        return UserDoc.from_mongo(doc)

    async def list_expired_unverified(
        self, now: datetime, limit: int = 500
    ) -> list[UserDoc]:
        cursor = self._col.find(
            _unverified_expired_query(now), {"_id": 1, "email": 1, "name": 1}
        )
        docs = await self._run("list_expired_unverified", cursor.to_list(length=limit))
        return [UserDoc.model_validate({"name": "", **doc}) for doc in docs]

    async def claim_for_deletion(self, user_id: Any, now: datetime) -> bool:
        result = await self._run(
            "claim_for_deletion",
            self._col.update_one(
                {"_id": to_object_id(user_id), "pending_deletion": {"$ne": True}},
                {"$set": {"pending_deletion": True, "updated_at": now}},
            ),
        )
        return result.modified_count == 1

    async def release_deletion_claim(self, user_id: Any, now: datetime) -> None:
        await self._run(
            "release_deletion_claim",
            self._col.update_one(
                {"_id": to_object_id(user_id), "pending_deletion": True},
                {"$set": {"pending_deletion": False, "updated_at": now}},
            ),
        )

    async def delete(self, user_id: Any) -> bool:
        result = await self._run(
            "delete", self._col.delete_one({"_id": to_object_id(user_id)})
        )
        return result.deleted_count == 1

    async def count_unverified(self) -> int:
        return await self._run(
            "count_unverified",
            self._col.count_documents({"is_email_verified": False}),
        )

    async def count_expired_unverified(self, now: datetime) -> int:
        return await self._run(
            "count_expired_unverified",
            self._col.count_documents(
                {"is_email_verified": False, "registration_expires": {"$lte": now}}
            ),
        )

    async def count_pending_expiry(self, now: datetime) -> int:
        return await self._run(
            "count_pending_expiry",
            self._col.count_documents(
                {"is_email_verified": False, "registration_expires": {"$gt": now}}
            ),
        )

    async def clear_expired_lockouts(self, now: datetime) -> int:
        result = await self._run(
            "clear_expired_lockouts",
            self._col.update_many(
                {"block_expires": {"$ne": None, "$lte": now}},
                {"$set": {"login_attempts": 0, "block_expires": None, "updated_at": now}},
            ),
        )
        return result.modified_count
