"""
Bearer-token authentication for protected routes.

The token only proves who the caller was when it was issued; the account is
re-read on every request so deleted or unverified users are refused even
while their token is still within its lifetime.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from errors import AuthenticationError, ForbiddenError
from repositories.protocol import UserStore
from services.token_service import TokenService
from shared.logging import get_logger

log = get_logger(__name__)

BEARER_PREFIX = "bearer "


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    email: str
    name: str
    is_email_verified: bool


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token from an ``Authorization: Bearer <token>`` header value."""
    if not authorization:
        return None
    if not authorization.lower().startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


class RequestAuthenticator:
    def __init__(self, tokens: TokenService, users: UserStore) -> None:
        self._tokens = tokens
        self._users = users

    async def authenticate(self, authorization: Optional[str]) -> AuthenticatedUser:
        """Resolve the caller behind *authorization*.

        Raises:
            AuthenticationError: no bearer token, or the account is gone.
            TokenExpiredError / TokenInvalidError / TokenNotActiveError:
                the token itself is unusable.
            ForbiddenError: the account has not verified its email.
        """
        token = extract_bearer_token(authorization)
        if token is None:
            raise AuthenticationError(
                "Authentication required", details={"expired": False}
            )

        claims = self._tokens.validate(token)

        user = await self._users.get_by_id(claims.user_id)
        if user is None:
            log.warning("auth_user_not_found", user_id=claims.user_id)
            raise AuthenticationError("User not found", details={"expired": False})
        if not user.is_email_verified:
            raise ForbiddenError("Email not verified")

        return AuthenticatedUser(
            id=str(user.id),
            email=user.email,
            name=user.name,
            is_email_verified=user.is_email_verified,
        )
