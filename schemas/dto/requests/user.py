"""Request DTOs for the user profile endpoints."""

from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class UpdateProfileRequest(BaseModel):
    """Request body for PUT /api/users/profile. Omitted fields are left unchanged."""

    model_config = ConfigDict(populate_by_name=True)

    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    age: Optional[Union[int, str]] = None
    about: Optional[str] = None
