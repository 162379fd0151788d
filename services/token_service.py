"""
Access token issuing and validation.

Tokens are stateless JWTs: validity is proven by the signature and the time
claims alone. HS256 with JWT_SECRET by default, RS256 when a key pair is
configured.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from config import JWTSettings
from errors import TokenExpiredError, TokenInvalidError, TokenNotActiveError
from shared.datetime_utils import Clock, utcnow


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    email: str
    issued_at: datetime
    expires_at: datetime


class TokenService:
    def __init__(self, settings: JWTSettings, clock: Clock = utcnow) -> None:
        self._settings = settings
        self._clock = clock
        if settings.use_rs256:
            self._algorithm = "RS256"
            # Support keys provided via env with literal \n sequences
            self._signing_key = settings.jwt_private_key.replace("\\n", "\n")
            self._verify_key = settings.jwt_public_key.replace("\\n", "\n")
        else:
            if not settings.jwt_secret:
                raise RuntimeError(
                    "JWT_SECRET must be set when RS256 keys are not provided"
                )
            self._algorithm = "HS256"
            self._signing_key = settings.jwt_secret
            self._verify_key = settings.jwt_secret

    @property
    def algorithm(self) -> str:
        return self._algorithm

    def issue(self, user_id: str, email: str, now: Optional[datetime] = None) -> str:
        now = now or self._clock()
        claims = {
            "id": str(user_id),
            "email": email,
            "sub": str(user_id),
            "iss": self._settings.jwt_issuer,
            "aud": self._settings.jwt_audience,
            "iat": int(now.timestamp()),
            "nbf": int(now.timestamp()),
            "exp": int(
                (now + timedelta(seconds=self._settings.token_ttl_seconds)).timestamp()
            ),
        }
        return jwt.encode(claims, self._signing_key, algorithm=self._algorithm)

    def validate(self, token: str) -> TokenClaims:
        """Decode *token* and return its claims.

        Raises:
            TokenExpiredError: ``exp`` has passed.
            TokenNotActiveError: ``nbf`` is in the future.
            TokenInvalidError: bad signature, wrong issuer/audience, malformed
                token or missing identity claims.
        """
        try:
            # Time claims are checked below against the injected clock.
            claims = jwt.decode(
                token,
                self._verify_key,
                algorithms=[self._algorithm],
                audience=self._settings.jwt_audience,
                issuer=self._settings.jwt_issuer,
                options={
                    "require": ["exp", "iat", "sub"],
                    "verify_exp": False,
                    "verify_nbf": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidTokenError as exc:
            raise TokenInvalidError(
                "Invalid token", details={"expired": False}
            ) from exc

        now = int(self._clock().timestamp())
        try:
            exp = int(claims["exp"])
            nbf = int(claims.get("nbf", claims["iat"]))
        except (TypeError, ValueError) as exc:
            raise TokenInvalidError(
                "Invalid token", details={"expired": False}
            ) from exc
        if exp <= now:
            raise TokenExpiredError("Token has expired", details={"expired": True})
        if nbf > now:
            raise TokenNotActiveError(
                "Token is not yet valid", details={"expired": False}
            )

        user_id = claims.get("id") or claims.get("sub")
        email = claims.get("email")
        if not user_id or not email:
            raise TokenInvalidError("Invalid token", details={"expired": False})

        return TokenClaims(
            user_id=str(user_id),
            email=email,
            issued_at=datetime.fromtimestamp(claims["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
        )
