"""Integration tests for the auth, password-reset, profile and admin routes.

The app is wired with the in-memory stores and a recording sender through a
test lifespan; no database or email provider is contacted.
"""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs, urlparse

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app import include_routers, wire_services
from config import AppSettings, JWTSettings, RateLimitSettings
from errors import StoreTimeoutError, register_error_handlers
from tests.fakes import (
    TEST_JWT_SECRET,
    FakeClock,
    InMemoryOtpStore,
    InMemoryUserStore,
    RecordingSender,
)

EMAIL = "ada@example.com"
PASSWORD = "Passw0rd!"
REGISTER_BODY = {
    "firstName": "Ada",
    "lastName": "Lovelace",
    "email": EMAIL,
    "password": PASSWORD,
    "age": 20,
}


def _build_test_app(admin_token: str = "", oauth=None, endpoint_points: int = 50):
    users = InMemoryUserStore()
    otps = InMemoryOtpStore()
    sender = RecordingSender()
    settings = AppSettings(
        admin_token=admin_token,
        client_url="https://blog.example",
        jwt=JWTSettings(jwt_secret=TEST_JWT_SECRET),
        rate_limit=RateLimitSettings(endpoint_points=endpoint_points),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        wire_services(app, settings, users, otps, sender, oauth=oauth, clock=FakeClock())
        yield

    app = FastAPI(lifespan=lifespan)
    register_error_handlers(app)
    include_routers(app)
    return app, users, sender


def _signed_up(client, sender) -> str:
    """Register and verify EMAIL; return the bearer token."""
    assert client.post("/api/auth/register", json=REGISTER_BODY).status_code == 201
    resp = client.post(
        "/api/auth/verify-signup",
        json={"email": EMAIL, "otp": sender.last_code(EMAIL, "signup")},
    )
    assert resp.status_code == 200
    return resp.json()["token"]


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestRegistrationRoutes:
    def test_register_returns_201_without_token(self):
        app, users, _ = _build_test_app()
        with TestClient(app) as client:
            resp = client.post("/api/auth/register", json=REGISTER_BODY)
        assert resp.status_code == 201
        body = resp.json()
        assert body["success"] is True
        assert body["email"] == EMAIL
        assert body["expires_in"] == 300
        assert "token" not in body

    def test_register_validation_error_shape(self):
        app, _, _ = _build_test_app()
        with TestClient(app) as client:
            resp = client.post("/api/auth/register", json={**REGISTER_BODY, "password": "weak"})
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert body["code"] == "validation_error"
        assert body["field"] == "password"
        assert "missing_requirements" in body["details"]

    def test_duplicate_register_conflicts(self):
        app, _, _ = _build_test_app()
        with TestClient(app) as client:
            client.post("/api/auth/register", json=REGISTER_BODY)
            resp = client.post("/api/auth/register", json=REGISTER_BODY)
        assert resp.status_code == 409
        assert resp.json()["code"] == "conflict"

    def test_verify_signup_returns_token_and_user(self):
        app, _, sender = _build_test_app()
        with TestClient(app) as client:
            client.post("/api/auth/register", json=REGISTER_BODY)
            resp = client.post(
                "/api/auth/verify-signup",
                json={"email": EMAIL, "otp": sender.last_code(EMAIL)},
            )
        assert resp.status_code == 200
        body = resp.json()
        assert body["token"]
        assert body["user"]["email"] == EMAIL
        assert body["user"]["name"] == "Ada Lovelace"
        assert "password_hash" not in body["user"]

    def test_verify_signup_wrong_code(self):
        app, _, _ = _build_test_app()
        with TestClient(app) as client:
            client.post("/api/auth/register", json=REGISTER_BODY)
            resp = client.post(
                "/api/auth/verify-signup", json={"email": EMAIL, "otp": "999999"}
            )
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_or_expired_otp"

    def test_resend_uses_type_field(self):
        app, _, sender = _build_test_app()
        with TestClient(app) as client:
            client.post("/api/auth/register", json=REGISTER_BODY)
            resp = client.post("/api/auth/resend-otp", json={"email": EMAIL, "type": "signup"})
        assert resp.status_code == 200
        assert resp.json()["message"] == "OTP resent successfully"
        assert len(sender.sent) == 2


class TestLoginRoutes:
    def test_login_success(self):
        app, _, sender = _build_test_app()
        with TestClient(app) as client:
            _signed_up(client, sender)
            resp = client.post("/api/auth/login", json={"email": EMAIL, "password": PASSWORD})
        assert resp.status_code == 200
        assert resp.json()["user"]["auth_method"] == "local"

    def test_unverified_login_forbidden(self):
        app, _, _ = _build_test_app()
        with TestClient(app) as client:
            client.post("/api/auth/register", json=REGISTER_BODY)
            resp = client.post("/api/auth/login", json={"email": EMAIL, "password": PASSWORD})
        assert resp.status_code == 403

    def test_lockout_sets_retry_after(self):
        app, _, sender = _build_test_app()
        with TestClient(app) as client:
            _signed_up(client, sender)
            for _ in range(4):
                resp = client.post(
                    "/api/auth/login", json={"email": EMAIL, "password": "Wrong-pass1"}
                )
                assert resp.status_code == 401
                assert resp.json()["code"] == "invalid_credentials"
            resp = client.post(
                "/api/auth/login", json={"email": EMAIL, "password": "Wrong-pass1"}
            )
        assert resp.status_code == 429
        assert resp.json()["code"] == "account_locked"
        assert resp.headers["Retry-After"] == "1800"


class TestEndpointLimiter:
    def test_budget_is_shared_across_routes_per_ip(self):
        app, _, _ = _build_test_app(endpoint_points=3)
        with TestClient(app) as client:
            client.post("/api/auth/login", json={"email": EMAIL, "password": PASSWORD})
            client.post("/api/auth/register", json=REGISTER_BODY)
            client.post("/api/auth/resend-otp", json={"email": EMAIL, "type": "signup"})
            resp = client.post("/api/auth/login", json={"email": EMAIL, "password": PASSWORD})
            other_ip = client.post(
                "/api/auth/login",
                json={"email": EMAIL, "password": PASSWORD},
                headers={"X-Forwarded-For": "203.0.113.9"},
            )
        assert resp.status_code == 429
        body = resp.json()
        assert body["code"] == "rate_limit_exceeded"
        assert body["error"].startswith("Too many requests. Please try again in ")
        assert int(resp.headers["Retry-After"]) > 0
        assert other_ip.status_code != 429

    def test_reset_routes_are_not_endpoint_limited(self):
        app, _, _ = _build_test_app(endpoint_points=1)
        with TestClient(app) as client:
            client.post("/api/auth/login", json={"email": EMAIL, "password": PASSWORD})
            resp = client.post("/api/auth/forgot-password", json={"email": EMAIL})
        assert resp.status_code == 404


class TestProtectedRoutes:
    def test_missing_token(self):
        app, _, _ = _build_test_app()
        with TestClient(app) as client:
            resp = client.get("/api/users/profile")
        assert resp.status_code == 401
        assert resp.json()["details"] == {"expired": False}

    def test_invalid_token(self):
        app, _, _ = _build_test_app()
        with TestClient(app) as client:
            resp = client.get("/api/users/profile", headers=_auth("garbage"))
        assert resp.status_code == 401
        assert resp.json()["code"] == "invalid_token"

    def test_profile_round_trip(self):
        app, _, sender = _build_test_app()
        with TestClient(app) as client:
            token = _signed_up(client, sender)
            resp = client.put(
                "/api/users/profile",
                json={"lastName": "King", "about": "Analyst"},
                headers=_auth(token),
            )
            profile = client.get("/api/users/profile", headers=_auth(token))
        assert resp.status_code == 200
        user = profile.json()["user"]
        assert user["name"] == "Ada King"
        assert user["about"] == "Analyst"
        assert user["has_password"] is True
        assert "password_hash" not in user

    def test_change_password(self):
        app, _, sender = _build_test_app()
        with TestClient(app) as client:
            token = _signed_up(client, sender)
            resp = client.post(
                "/api/auth/change-password",
                json={"currentPassword": PASSWORD, "newPassword": "N3w-Passw0rd"},
                headers=_auth(token),
            )
            login = client.post(
                "/api/auth/login", json={"email": EMAIL, "password": "N3w-Passw0rd"}
            )
        assert resp.status_code == 200
        assert login.status_code == 200

    def test_verify_password_wrong(self):
        app, _, sender = _build_test_app()
        with TestClient(app) as client:
            token = _signed_up(client, sender)
            resp = client.post(
                "/api/auth/verify-password", json={"password": "nope"}, headers=_auth(token)
            )
        assert resp.status_code == 401

    def test_delete_account_invalidates_token(self):
        app, users, sender = _build_test_app()
        with TestClient(app) as client:
            token = _signed_up(client, sender)
            resp = client.delete("/api/users/me", headers=_auth(token))
            after = client.get("/api/users/profile", headers=_auth(token))
        assert resp.status_code == 200
        assert users.docs == {}
        assert after.status_code == 401
        assert after.json()["error"] == "User not found"


class TestPasswordResetRoutes:
    def test_full_reset(self):
        app, _, sender = _build_test_app()
        with TestClient(app) as client:
            _signed_up(client, sender)
            forgot = client.post("/api/auth/forgot-password", json={"email": EMAIL})
            code = sender.last_code(EMAIL, "reset")
            verified = client.post(
                "/api/auth/verify-reset-otp", json={"email": EMAIL, "otp": code}
            )
            reset = client.post(
                "/api/auth/reset-password",
                json={"email": EMAIL, "otp": code, "newPassword": "N3w-Passw0rd"},
            )
        assert forgot.status_code == 200
        assert verified.json() == {
            "success": True,
            "message": "OTP verified successfully",
            "email": EMAIL,
            "verified": True,
        }
        assert reset.status_code == 200

    def test_bad_otp_format(self):
        app, _, _ = _build_test_app()
        with TestClient(app) as client:
            resp = client.post("/api/auth/verify-reset-otp", json={"email": EMAIL, "otp": "12"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "OTP must be a 6-digit number"


class TestAdminRoutes:
    def test_requires_token_when_configured(self):
        app, _, _ = _build_test_app(admin_token="s3cret")
        with TestClient(app) as client:
            missing = client.get("/api/admin/cleanup-stats")
            wrong = client.get("/api/admin/cleanup-stats", headers={"X-Admin-Token": "nope"})
            ok = client.get("/api/admin/cleanup-stats", headers={"X-Admin-Token": "s3cret"})
        assert missing.status_code == 401
        assert wrong.status_code == 401
        assert ok.status_code == 200
        assert ok.json()["stats"]["service_running"] is False

    def test_manual_cleanup(self):
        app, users, _ = _build_test_app()
        with TestClient(app) as client:
            client.post("/api/auth/register", json=REGISTER_BODY)
            stats = client.get("/api/admin/cleanup-stats").json()["stats"]
            resp = client.post("/api/admin/manual-cleanup")
        assert stats["total_unverified"] == 1
        assert stats["pending_expiry"] == 1
        assert resp.status_code == 200
        # the registration window has not elapsed on the frozen clock
        assert resp.json()["message"] == "Cleanup completed: 0 accounts deleted"
        assert len(users.docs) == 1


class TestGoogleRoutes:
    def test_not_configured(self):
        app, _, _ = _build_test_app()
        with TestClient(app) as client:
            resp = client.get("/api/auth/google", follow_redirects=False)
        assert resp.status_code == 503

    def test_provider_error_redirects_to_login(self):
        app, _, _ = _build_test_app()
        with TestClient(app) as client:
            resp = client.get(
                "/api/auth/google/callback?error=access_denied", follow_redirects=False
            )
        assert resp.status_code == 307
        assert resp.headers["location"] == (
            "https://blog.example/login?error=google_auth_failed"
        )

    def _oauth(self, userinfo):
        oauth = MagicMock()
        oauth.google.authorize_access_token = AsyncMock(return_value={"userinfo": userinfo})
        return oauth

    def test_callback_signs_in(self):
        oauth = self._oauth(
            {"sub": "g-1", "email": EMAIL, "email_verified": True, "name": "Ada Lovelace"}
        )
        app, users, _ = _build_test_app(oauth=oauth)
        with TestClient(app) as client:
            resp = client.get("/api/auth/google/callback?code=abc", follow_redirects=False)
        location = urlparse(resp.headers["location"])
        query = parse_qs(location.query)
        assert location.path == "/google-auth"
        assert query["token"][0]
        assert '"authMethod": "external"' in query["user"][0]
        assert len(users.docs) == 1

    def test_callback_unverified_email(self):
        oauth = self._oauth({"sub": "g-1", "email": EMAIL, "email_verified": False})
        app, users, _ = _build_test_app(oauth=oauth)
        with TestClient(app) as client:
            resp = client.get("/api/auth/google/callback?code=abc", follow_redirects=False)
        assert resp.headers["location"].endswith("/login?error=email_not_verified")
        assert users.docs == {}

    def test_callback_store_failure_redirects_to_login(self):
        oauth = self._oauth(
            {"sub": "g-1", "email": EMAIL, "email_verified": True, "name": "Ada Lovelace"}
        )
        app, users, _ = _build_test_app(oauth=oauth)
        users.get_by_email = AsyncMock(
            side_effect=StoreTimeoutError("The data store did not respond in time")
        )
        with TestClient(app) as client:
            resp = client.get("/api/auth/google/callback?code=abc", follow_redirects=False)
        assert resp.status_code == 307
        assert resp.headers["location"] == "https://blog.example/login?error=auth_failed"
