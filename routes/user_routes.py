"""
Profile routes under /api/users (bearer token required).

GET    /profile — current user's public profile
PUT    /profile — update name / age / about
DELETE /me      — delete the account and its pending OTPs
"""

from __future__ import annotations

from fastapi import APIRouter

from dependencies import AccountServiceDep, CurrentUser
from schemas.dto.requests.user import UpdateProfileRequest
from schemas.dto.responses.common import MessageResponse
from schemas.dto.responses.user import ProfileEnvelope, ProfileResponse

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/profile", response_model=ProfileEnvelope)
async def get_profile(user: CurrentUser, accounts: AccountServiceDep) -> ProfileEnvelope:
    profile = await accounts.get_profile(user.id)
    return ProfileEnvelope(user=ProfileResponse(**profile))


@router.put("/profile", response_model=ProfileEnvelope)
async def update_profile(
    body: UpdateProfileRequest, user: CurrentUser, accounts: AccountServiceDep
) -> ProfileEnvelope:
    profile = await accounts.update_profile(
        user.id,
        first_name=body.first_name,
        last_name=body.last_name,
        age=body.age,
        about=body.about,
    )
    return ProfileEnvelope(user=ProfileResponse(**profile))


@router.delete("/me", response_model=MessageResponse)
async def delete_account(user: CurrentUser, accounts: AccountServiceDep) -> MessageResponse:
    await accounts.delete_account(user.id)
    return MessageResponse(success=True, message="Account deleted")
