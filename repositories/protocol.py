"""Store protocols — services depend on these, not on the MongoDB repositories."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Protocol

from schemas.models.otp import OtpDoc
from schemas.models.user import UserDoc


class UserStore(Protocol):
    async def get_by_email(self, email: str) -> Optional[UserDoc]: ...

    async def get_by_id(self, user_id: Any) -> Optional[UserDoc]: ...

    async def create(self, user: UserDoc) -> UserDoc: ...

    async def mark_verified(self, email: str, now: datetime) -> Optional[UserDoc]: ...

    async def extend_registration(
        self, email: str, until: datetime, now: datetime
    ) -> bool: ...

    async def record_failed_login(self, user_id: Any, now: datetime) -> int: ...

    async def lock(self, user_id: Any, until: datetime, now: datetime) -> None: ...

    async def reset_login_state(
        self, user_id: Any, now: datetime, *, successful_login: bool = False
    ) -> None: ...

    async def update_password(
        self,
        user_id: Any,
        password_hash: str,
        now: datetime,
        *,
        reset_lockout: bool = False,
        auth_method: Optional[str] = None,
    ) -> None: ...

    async def add_auth_provider(
        self, user_id: Any, provider: str, now: datetime, *, mark_verified: bool = False
    ) -> Optional[UserDoc]: ...

    async def update_profile(
        self, user_id: Any, fields: dict, now: datetime
    ) -> Optional[UserDoc]: ...

    async def list_expired_unverified(
        self, now: datetime, limit: int = 500
    ) -> list[UserDoc]: ...

    async def claim_for_deletion(self, user_id: Any, now: datetime) -> bool: ...

    async def release_deletion_claim(self, user_id: Any, now: datetime) -> None: ...

    async def delete(self, user_id: Any) -> bool: ...

    async def count_unverified(self) -> int: ...

    async def count_expired_unverified(self, now: datetime) -> int: ...

    async def count_pending_expiry(self, now: datetime) -> int: ...

    async def clear_expired_lockouts(self, now: datetime) -> int: ...


class OtpStore(Protocol):
    async def upsert(
        self,
        email: str,
        otp_type: str,
        code_hash: str,
        ip_address: Optional[str],
        now: datetime,
    ) -> None: ...

    async def consume(
        self, email: str, otp_type: str, code_hash: str, cutoff: datetime
    ) -> Optional[OtpDoc]: ...

    async def claim_attempt(
        self, email: str, otp_type: str, cutoff: datetime
    ) -> Optional[OtpDoc]: ...

    async def find_active(
        self, email: str, otp_type: str, cutoff: datetime
    ) -> Optional[OtpDoc]: ...

    async def mark_verified(self, otp_id: Any) -> None: ...

    async def consume_by_id(self, otp_id: Any, code_hash: str) -> Optional[OtpDoc]: ...

    async def delete_by_id(self, otp_id: Any) -> None: ...

    async def delete_for_email(self, email: str) -> int: ...
