"""
FastAPI application factory.
create_app() is the single entry point for building the app.

The lifespan opens MongoDB, applies indexes, builds the repositories and
services (see wire_services) and starts the account cleanup scheduler; on
shutdown it stops the scheduler before closing the clients it depends on.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.asynchronous.mongo_client import AsyncMongoClient
from starlette.middleware.sessions import SessionMiddleware

from config import AppSettings
from errors import register_error_handlers
from infrastructure.email.protocol import OtpSender
from infrastructure.email.zeptomail import ZeptoMailSender
from infrastructure.http_client import HttpClient
from infrastructure.identity.google import GoogleIdentityAdapter, init_oauth
from infrastructure.rate_limiter.registry import build_rate_limiters
from repositories.indexes import OTPS_COLLECTION, USERS_COLLECTION, ensure_indexes
from repositories.otp_repository import OtpRepository
from repositories.protocol import OtpStore, UserStore
from repositories.user_repository import UserRepository
from routes.admin_routes import router as admin_router
from routes.auth_routes import router as auth_router
from routes.health_routes import router as health_router
from routes.otp_routes import router as otp_router
from routes.user_routes import router as user_router
from services.account_service import AccountService
from services.auth_service import AuthService
from services.authenticator import RequestAuthenticator
from services.cleanup_scheduler import AccountCleanupScheduler
from services.token_service import TokenService
from shared.datetime_utils import Clock, utcnow
from shared.log_context import RequestLoggingMiddleware
from shared.logging import get_logger, setup_logging

log = get_logger(__name__)


def wire_services(
    app: FastAPI,
    settings: AppSettings,
    users: UserStore,
    otps: OtpStore,
    sender: OtpSender,
    *,
    oauth: Any = None,
    clock: Clock = utcnow,
) -> None:
    """Build every service from its collaborators and store it on app.state."""
    tokens = TokenService(settings.jwt, clock=clock)
    limiters = build_rate_limiters(
        settings.rate_limit, bypass=settings.rate_limit_bypassed
    )

    app.state.settings = settings
    app.state.token_service = tokens
    app.state.rate_limiters = limiters
    app.state.oauth = oauth
    app.state.identity_adapter = GoogleIdentityAdapter()
    app.state.auth_service = AuthService(
        users, otps, tokens, limiters, sender, clock=clock
    )
    app.state.account_service = AccountService(users, otps, clock=clock)
    app.state.authenticator = RequestAuthenticator(tokens, users)
    app.state.cleanup_scheduler = AccountCleanupScheduler(users, otps, clock=clock)


def include_routers(app: FastAPI) -> None:
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(otp_router)
    app.include_router(user_router)
    app.include_router(admin_router)


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Create and return a fully configured FastAPI application."""
    if settings is None:
        settings = AppSettings()

    setup_logging(settings.logging.log_level, settings.logging.log_format, settings.env)

    # Initialise Sentry before anything else so it captures startup errors
    if settings.sentry.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry.sentry_dsn,
            send_default_pii=settings.sentry.sentry_send_pii,
            traces_sample_rate=settings.sentry.sentry_traces_sample_rate,
            profiles_sample_rate=settings.sentry.sentry_profile_sample_rate,
            environment=settings.env,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ── Startup ──────────────────────────────────────────────────────────
        mongo_client: AsyncMongoClient = AsyncMongoClient(
            settings.db.mongodb_uri, tz_aware=True
        )
        db = mongo_client[settings.db.db_name]
        app.state.mongo_client = mongo_client
        app.state.db = db
        await ensure_indexes(db)

        timeout = settings.db.store_timeout_seconds
        email_http = HttpClient(timeout=settings.email.email_timeout_seconds, name="email")
        wire_services(
            app,
            settings,
            UserRepository(db[USERS_COLLECTION], timeout_seconds=timeout),
            OtpRepository(db[OTPS_COLLECTION], timeout_seconds=timeout),
            ZeptoMailSender(
                settings.email,
                email_http,
                app_name=settings.email.zepto_from_name,
                client_url=settings.client_url,
            ),
            oauth=init_oauth(settings.oauth),
        )

        scheduler: AccountCleanupScheduler = app.state.cleanup_scheduler
        await scheduler.start()
        log.info("app_started", env=settings.env, db_name=settings.db.db_name)

        yield

        # ── Shutdown ─────────────────────────────────────────────────────────
        await scheduler.stop()
        await email_http.aclose()
        await mongo_client.close()
        log.info("app_stopped")

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url=None if settings.is_production else settings.docs_url,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if not settings.secret_key:
        raise RuntimeError(
            "SECRET_KEY must be set to sign the session cookie when JWT_SECRET is unset"
        )
    # Authlib keeps the OAuth state/nonce in the session cookie
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.secret_key,
        https_only=settings.is_production,
        same_site="lax",
    )
    app.add_middleware(RequestLoggingMiddleware)

    register_error_handlers(app, expose_details=not settings.is_production)
    include_routers(app)

    return app
