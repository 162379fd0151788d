"""IdentityAdapter protocol — resolves a third-party profile to a local identity."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class ExternalIdentity:
    email: str
    display_name: str
    provider: str
    provider_user_id: str


class ExternalIdentityError(Exception):
    """The provider profile cannot be used (no verified email, bad payload).

    Not user-recoverable: the OAuth callback aborts with an error redirect.
    """

    def __init__(self, reason: str, message: str = "") -> None:
        super().__init__(message or reason)
        self.reason = reason


class IdentityAdapter(Protocol):
    provider: str

    def resolve(self, profile: dict[str, Any]) -> ExternalIdentity: ...
