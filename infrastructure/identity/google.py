"""Google OpenID Connect identity adapter and Authlib client initialisation.

The OAuth dance itself is Authlib's Starlette client (state and nonce live in
the session cookie). Once the callback has a token, the userinfo claims go
through GoogleIdentityAdapter which insists on a verified email.
"""

from __future__ import annotations

from typing import Any, Optional

from authlib.integrations.starlette_client import OAuth

from config import OAuthProviderSettings
from infrastructure.identity.protocol import ExternalIdentity, ExternalIdentityError
from shared.logging import get_logger
from shared.validators import normalize_email, validate_email

log = get_logger(__name__)

GOOGLE_PROVIDER = "google"
GOOGLE_METADATA_URL = "https://accounts.google.com/.well-known/openid-configuration"


def init_oauth(settings: OAuthProviderSettings) -> Optional[OAuth]:
    """Register the Google client with Authlib.

    Returns None (and logs a warning) when Google credentials are not
    configured; the Google routes then answer 503.
    """
    if not (settings.google_oauth_client_id and settings.google_oauth_client_secret):
        log.warning("oauth_no_providers_configured")
        return None

    oauth = OAuth()
    oauth.register(
        name=GOOGLE_PROVIDER,
        client_id=settings.google_oauth_client_id,
        client_secret=settings.google_oauth_client_secret,
        server_metadata_url=GOOGLE_METADATA_URL,
        client_kwargs={
            "scope": "openid email profile",
            "prompt": "select_account",
        },
    )
    log.info("oauth_provider_initialized", provider=GOOGLE_PROVIDER)
    return oauth


def extract_user_info_from_google(userinfo: dict[str, Any]) -> dict[str, Any]:
    return {
        "provider_user_id": str(userinfo.get("sub", "")),
        "email": normalize_email(userinfo.get("email")),
        "email_verified": bool(userinfo.get("email_verified", False)),
        "name": userinfo.get("name", "") or "",
        "given_name": userinfo.get("given_name", "") or "",
        "family_name": userinfo.get("family_name", "") or "",
    }


class GoogleIdentityAdapter:
    provider = GOOGLE_PROVIDER

    def resolve(self, profile: dict[str, Any]) -> ExternalIdentity:
        info = extract_user_info_from_google(profile)

        if not info["email"] or not validate_email(info["email"]):
            raise ExternalIdentityError("no_email", "Google profile has no email")
        if not info["email_verified"]:
            raise ExternalIdentityError(
                "email_not_verified", "Google email address is not verified"
            )

        display_name = info["name"].strip() or " ".join(
            part for part in (info["given_name"], info["family_name"]) if part
        )
        if not display_name:
            display_name = info["email"].split("@", 1)[0]

        return ExternalIdentity(
            email=info["email"],
            display_name=display_name,
            provider=self.provider,
            provider_user_id=info["provider_user_id"],
        )
