"""Profile read/update and self-service account deletion."""

from __future__ import annotations

from typing import Optional

from errors import NotFoundError, ValidationError
from repositories.protocol import OtpStore, UserStore
from schemas.models.user import UserDoc
from shared.datetime_utils import Clock, utcnow
from shared.logging import get_logger
from shared.validators import MAX_ABOUT_LENGTH, validate_age, validate_name_part

log = get_logger(__name__)


def public_profile(user: UserDoc) -> dict:
    """Response projection of a user; credential and lockout fields never appear."""
    return {
        "id": str(user.id),
        "name": user.name,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "email": user.email,
        "age": user.age,
        "about": user.about,
        "auth_method": user.auth_method,
        "auth_providers": list(user.auth_providers),
        "is_email_verified": user.is_email_verified,
        "has_password": user.has_local_password,
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "last_login": user.last_login.isoformat() if user.last_login else None,
    }


class AccountService:
    def __init__(self, users: UserStore, otps: OtpStore, clock: Clock = utcnow) -> None:
        self._users = users
        self._otps = otps
        self._clock = clock

    async def get_profile(self, user_id: str) -> dict:
        user = await self._users.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return public_profile(user)

    async def update_profile(
        self,
        user_id: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        age: object = None,
        about: Optional[str] = None,
    ) -> dict:
        """Apply the given profile changes; omitted fields keep their value.

        The stored ``name`` is recomposed from the current first/last parts
        so changing one half keeps the other.
        """
        user = await self._users.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        fields: dict = {}
        if first_name is not None or last_name is not None:
            first = user.first_name if first_name is None else first_name.strip()
            last = user.last_name if last_name is None else last_name.strip()
            if not validate_name_part(first):
                raise ValidationError("First name must be 1-50 characters", field="first_name")
            if last and not validate_name_part(last):
                raise ValidationError("Last name must be 1-50 characters", field="last_name")
            fields["name"] = f"{first} {last}".strip()
        if age is not None:
            age_value = validate_age(age)
            if age_value is None:
                raise ValidationError("Age must be between 13 and 120", field="age")
            fields["age"] = age_value
        if about is not None:
            if len(about) > MAX_ABOUT_LENGTH:
                raise ValidationError(
                    f"About must be at most {MAX_ABOUT_LENGTH} characters", field="about"
                )
            fields["about"] = about

        if not fields:
            return public_profile(user)

        updated = await self._users.update_profile(user.id, fields, self._clock())
        if updated is None:
            raise NotFoundError("User not found")
        log.info("profile_updated", user_id=user_id, fields=sorted(fields))
        return public_profile(updated)

    async def delete_account(self, user_id: str) -> None:
        user = await self._users.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        otps_deleted = await self._otps.delete_for_email(user.email)
        await self._users.delete(user.id)
        log.info("account_deleted", user_id=user_id, otps_deleted=otps_deleted)
