"""
Authentication flows: registration, OTP verification, login with lockout,
password management and external (Google) sign-in.

Rate limiting happens here rather than in the routes so every entry point to
a flow is throttled the same way. OTP codes are only ever stored hashed; the
plaintext exists in memory just long enough to be handed to the sender.

Login is a two-state machine per account:

    Unlocked --5 consecutive failures--> Locked (block_expires = now + 30m)
    Locked   --successful login after expiry, or password reset--> Unlocked

Expiry of a lock is observed lazily on the next login attempt.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional

from errors import (
    AccountLockedError,
    ConflictError,
    ForbiddenError,
    InvalidCredentialsError,
    InvalidOtpError,
    NotFoundError,
    RateLimitError,
    TooManyAttemptsError,
    UpstreamUnavailableError,
    ValidationError,
)
from infrastructure.email.protocol import (
    EmailDeliveryError,
    EmailRejectedError,
    OtpSender,
)
from infrastructure.identity.protocol import ExternalIdentity
from infrastructure.rate_limiter.protocol import RateLimiter, RateLimitExceeded
from infrastructure.rate_limiter.registry import RateLimiters
from repositories.protocol import OtpStore, UserStore
from schemas.models.otp import (
    OTP_TTL_SECONDS,
    OTP_TYPE_RESET,
    OTP_TYPE_SIGNUP,
    OTP_TYPES,
    OtpDoc,
)
from schemas.models.user import (
    AUTH_METHOD_EXTERNAL,
    AUTH_METHOD_LOCAL,
    DEFAULT_AGE,
    UserDoc,
)
from services.token_service import TokenService
from shared.crypto import hash_password, hash_token, tokens_match, verify_password
from shared.datetime_utils import Clock, minutes_until, seconds_until, utcnow
from shared.generators import generate_otp_code
from shared.logging import get_logger
from shared.validators import (
    get_password_requirements,
    normalize_email,
    validate_age,
    validate_email,
    validate_name_part,
    validate_otp_format,
    validate_password,
)

log = get_logger(__name__)

REGISTRATION_WINDOW = timedelta(minutes=5)
MAX_LOGIN_ATTEMPTS = 5
LOCKOUT_DURATION = timedelta(minutes=30)
OTP_LIFETIME = timedelta(seconds=OTP_TTL_SECONDS)


@dataclass(frozen=True)
class PendingRegistration:
    email: str
    expires_in: int = OTP_TTL_SECONDS


@dataclass(frozen=True)
class OtpDispatch:
    email: str
    otp_type: str
    expires_in: int = OTP_TTL_SECONDS


@dataclass(frozen=True)
class ResetVerification:
    email: str
    verified: bool = True


@dataclass(frozen=True)
class AuthResult:
    user: UserDoc
    token: str


class AuthService:
    def __init__(
        self,
        users: UserStore,
        otps: OtpStore,
        tokens: TokenService,
        limiters: RateLimiters,
        sender: OtpSender,
        clock: Clock = utcnow,
        code_generator: Callable[[], str] = generate_otp_code,
    ) -> None:
        self._users = users
        self._otps = otps
        self._tokens = tokens
        self._limiters = limiters
        self._sender = sender
        self._clock = clock
        self._generate_code = code_generator

    # ── Registration ─────────────────────────────────────────────────────────

    async def register(
        self,
        first_name: Optional[str],
        last_name: Optional[str],
        email: Optional[str],
        password: Optional[str],
        age: object,
        ip_address: Optional[str] = None,
    ) -> PendingRegistration:
        """Create an unverified account and send it a signup code.

        No token is issued here; the account becomes usable only after
        ``verify_signup``. Unverified accounts are reclaimed by the cleanup
        scheduler once ``registration_expires`` passes.
        """
        first_name = (first_name or "").strip()
        last_name = (last_name or "").strip()
        email = normalize_email(email)
        if not first_name or not last_name or not email or not password or age in (None, ""):
            raise ValidationError("All fields are required")
        if not validate_name_part(first_name):
            raise ValidationError("First name must be 1-50 characters", field="first_name")
        if not validate_name_part(last_name):
            raise ValidationError("Last name must be 1-50 characters", field="last_name")
        if not validate_email(email):
            raise ValidationError("Please provide a valid email address", field="email")
        self._check_password_policy(password, field="password")
        age_value = validate_age(age)
        if age_value is None:
            raise ValidationError("Age must be between 13 and 120", field="age")

        if await self._users.get_by_email(email) is not None:
            log.warning("registration_failed", reason="email_taken")
            raise ConflictError("User with this email already exists", field="email")

        await self._consume(
            self._limiters.otp_issue,
            email,
            "Too many OTP requests. Please try again in {minutes} minutes.",
        )

        now = self._clock()
        user = await self._users.create(
            UserDoc(
                email=email,
                name=f"{first_name} {last_name}",
                age=age_value,
                password_hash=hash_password(password),
                auth_method=AUTH_METHOD_LOCAL,
                is_email_verified=False,
                registration_expires=now + REGISTRATION_WINDOW,
                created_at=now,
                updated_at=now,
            )
        )
        try:
            await self._issue_otp(email, OTP_TYPE_SIGNUP, ip_address)
        except (ValidationError, UpstreamUnavailableError):
            # the address must stay free for a retry
            await self._discard_registration(user, email)
            raise

        log.info("user_registered", user_id=str(user.id))
        return PendingRegistration(email=email)

    async def verify_signup(self, email: Optional[str], otp: Optional[str]) -> AuthResult:
        email = normalize_email(email)
        otp = (otp or "").strip()
        if not email or not otp:
            raise ValidationError("Email and OTP are required")

        await self._consume(
            self._limiters.otp_verification,
            f"verify_signup_{email}",
            "Too many verification attempts. Please try again in {minutes} minutes.",
        )

        now = self._clock()
        record = None
        if validate_otp_format(otp):
            record = await self._otps.consume(
                email, OTP_TYPE_SIGNUP, hash_token(otp), cutoff=now - OTP_LIFETIME
            )
        if record is None:
            log.warning("signup_verification_failed", reason="invalid_or_expired")
            raise InvalidOtpError("Invalid or expired OTP")

        user = await self._users.mark_verified(email, now)
        if user is None:
            log.error("signup_verification_user_missing")
            raise NotFoundError("User not found")

        log.info("email_verified", user_id=str(user.id))
        token = self._tokens.issue(str(user.id), user.email, now)
        return AuthResult(user=user, token=token)

    async def resend_otp(
        self, email: Optional[str], otp_type: Optional[str], ip_address: Optional[str] = None
    ) -> OtpDispatch:
        email = normalize_email(email)
        if not email or not otp_type:
            raise ValidationError("Email and type are required")
        if otp_type not in OTP_TYPES:
            raise ValidationError("Invalid OTP type", field="type")

        await self._consume(
            self._limiters.otp_issue,
            f"{email}:{otp_type}",
            "Too many OTP requests. Please try again in {minutes} minutes.",
        )

        user = await self._users.get_by_email(email)
        if user is None:
            raise NotFoundError("No account found with this email address")
        if otp_type == OTP_TYPE_SIGNUP and user.is_email_verified:
            raise ValidationError("Email is already verified", field="email")
        if otp_type == OTP_TYPE_RESET and not user.is_email_verified:
            raise ValidationError(
                "Please verify your email first before resetting password", field="email"
            )

        if otp_type == OTP_TYPE_SIGNUP:
            now = self._clock()
            await self._users.extend_registration(email, now + REGISTRATION_WINDOW, now)
        await self._issue_otp(email, otp_type, ip_address)

        log.info("otp_resent", otp_type=otp_type, user_id=str(user.id))
        return OtpDispatch(email=email, otp_type=otp_type)

    # ── Login ────────────────────────────────────────────────────────────────

    async def login(self, email: Optional[str], password: Optional[str]) -> AuthResult:
        email = normalize_email(email)
        if not email or not password:
            raise ValidationError("Email and password are required")

        user = await self._users.get_by_email(email)
        now = self._clock()

        if user is not None and user.block_expires is not None and user.block_expires > now:
            minutes_left = minutes_until(user.block_expires, now)
            log.warning("login_blocked", user_id=str(user.id), minutes_left=minutes_left)
            raise AccountLockedError(
                f"Account temporarily locked. Try again after {minutes_left} minutes",
                retry_after=seconds_until(user.block_expires, now),
            )
        if user is None:
            log.warning("login_failed", reason="user_not_found")
            raise NotFoundError("User not found. Please check details or sign up")
        if not user.is_email_verified:
            log.warning("login_failed", reason="email_not_verified", user_id=str(user.id))
            raise ForbiddenError(
                "Email not verified. Please verify your email before logging in."
            )

        if user.block_expires is not None:
            # Lock window has elapsed; start counting from zero again.
            await self._users.reset_login_state(user.id, now)
            log.info("lockout_expired", user_id=str(user.id))

        if not self._password_matches(user, password):
            attempts = await self._users.record_failed_login(user.id, now)
            if attempts >= MAX_LOGIN_ATTEMPTS:
                await self._users.lock(user.id, now + LOCKOUT_DURATION, now)
                log.warning("account_locked", user_id=str(user.id), attempts=attempts)
                raise AccountLockedError(
                    "Too many failed attempts. Account locked for 30 minutes.",
                    retry_after=int(LOCKOUT_DURATION.total_seconds()),
                )
            log.warning(
                "login_failed",
                reason="invalid_password",
                user_id=str(user.id),
                attempts=attempts,
            )
            raise InvalidCredentialsError("Invalid credentials")

        await self._users.reset_login_state(user.id, now, successful_login=True)
        log.info("login_success", user_id=str(user.id))
        user = user.model_copy(
            update={"login_attempts": 0, "block_expires": None, "last_login": now}
        )
        token = self._tokens.issue(str(user.id), user.email, now)
        return AuthResult(user=user, token=token)

    # ── Authenticated password operations ────────────────────────────────────

    async def verify_password(self, user_id: str, password: Optional[str]) -> None:
        if not password:
            raise ValidationError("Password is required", field="password")
        user = await self._require_user(user_id)
        if not self._password_matches(user, password):
            log.warning("password_verification_failed", user_id=user_id)
            raise InvalidCredentialsError("Incorrect password")
        log.info("password_verified", user_id=user_id)

    async def change_password(
        self, user_id: str, current_password: Optional[str], new_password: Optional[str]
    ) -> None:
        if not current_password or not new_password:
            raise ValidationError("Current password and new password are required")
        self._check_password_policy(new_password, field="new_password")
        user = await self._require_user(user_id)
        if not self._password_matches(user, current_password):
            log.warning("password_change_failed", reason="incorrect_current", user_id=user_id)
            raise InvalidCredentialsError("Current password is incorrect")
        await self._users.update_password(user.id, hash_password(new_password), self._clock())
        log.info("password_changed", user_id=user_id)

    async def set_password(self, user_id: str, new_password: Optional[str]) -> None:
        """Give an account a local password (typically one created via Google)."""
        if not new_password:
            raise ValidationError("Password is required", field="new_password")
        self._check_password_policy(new_password, field="new_password")
        user = await self._require_user(user_id)
        await self._users.update_password(
            user.id,
            hash_password(new_password),
            self._clock(),
            auth_method=AUTH_METHOD_LOCAL,
        )
        log.info("password_set", user_id=user_id, previous_method=user.auth_method)

    # ── Password reset ───────────────────────────────────────────────────────

    async def forgot_password(
        self, email: Optional[str], ip_address: Optional[str] = None
    ) -> OtpDispatch:
        email = normalize_email(email)
        if not email:
            raise ValidationError("Email is required", field="email")
        if not validate_email(email):
            raise ValidationError("Please enter a valid email address", field="email")

        await self._consume(
            self._limiters.forgot_password,
            email,
            "Too many password reset requests. Please try again in {minutes} minutes.",
        )

        user = await self._users.get_by_email(email)
        if user is None:
            log.warning("password_reset_requested", outcome="user_not_found")
            raise NotFoundError("No account found with this email address")
        if not user.is_email_verified:
            log.warning("password_reset_requested", outcome="unverified", user_id=str(user.id))
            raise ValidationError(
                "Please verify your email first before resetting password", field="email"
            )

        await self._issue_otp(email, OTP_TYPE_RESET, ip_address)
        log.info("password_reset_requested", outcome="otp_sent", user_id=str(user.id))
        return OtpDispatch(email=email, otp_type=OTP_TYPE_RESET)

    async def verify_reset_otp(
        self, email: Optional[str], otp: Optional[str]
    ) -> ResetVerification:
        email = normalize_email(email)
        otp = self._require_otp(email, otp)
        await self._consume(
            self._limiters.otp_verification,
            f"verify_{email}",
            "Too many verification attempts. Please try again in {minutes} minutes.",
        )

        record = await self._claim_reset_attempt(email, otp)
        await self._otps.mark_verified(record.id)
        log.info("reset_otp_verified", attempts=record.attempts)
        return ResetVerification(email=email)

    async def reset_password(
        self, email: Optional[str], otp: Optional[str], new_password: Optional[str]
    ) -> None:
        email = normalize_email(email)
        if not new_password:
            raise ValidationError("Email, OTP, and new password are required")
        otp = self._require_otp(email, otp)
        self._check_password_policy(new_password, field="new_password")
        await self._consume(
            self._limiters.otp_verification,
            f"reset_{email}",
            "Too many password reset attempts. Please try again in {minutes} minutes.",
        )

        record = await self._claim_reset_attempt(email, otp)
        user = await self._users.get_by_email(email)
        if user is None:
            log.error("password_reset_user_missing")
            raise NotFoundError("User not found")

        # Conditional on the code hash: of two concurrent resets only one
        # gets the record back.
        if await self._otps.consume_by_id(record.id, record.code_hash) is None:
            raise InvalidOtpError("Invalid or expired OTP. Please request a new one.")

        await self._users.update_password(
            user.id, hash_password(new_password), self._clock(), reset_lockout=True
        )
        log.info("password_reset_completed", user_id=str(user.id))

    # ── External identity ────────────────────────────────────────────────────

    async def login_with_external_identity(self, identity: ExternalIdentity) -> AuthResult:
        """Sign in (or sign up) with an identity the provider already verified."""
        email = normalize_email(identity.email)
        if not validate_email(email):
            raise ValidationError("External identity has no usable email", field="email")
        now = self._clock()

        user = await self._users.get_by_email(email)
        if user is not None:
            updated = await self._users.add_auth_provider(
                user.id, identity.provider, now, mark_verified=not user.is_email_verified
            )
            user = updated or user
            log.info(
                "external_login",
                provider=identity.provider,
                user_id=str(user.id),
                outcome="linked",
            )
        else:
            try:
                user = await self._users.create(
                    UserDoc(
                        email=email,
                        name=identity.display_name.strip() or email.split("@", 1)[0],
                        age=DEFAULT_AGE,
                        auth_method=AUTH_METHOD_EXTERNAL,
                        auth_providers=[identity.provider],
                        is_email_verified=True,
                        created_at=now,
                        updated_at=now,
                        last_login=now,
                    )
                )
            except ConflictError:
                # Lost a race with a concurrent first login for the same email.
                user = await self._users.get_by_email(email)
                if user is None:
                    raise
            log.info(
                "external_login",
                provider=identity.provider,
                user_id=str(user.id),
                outcome="created",
            )

        token = self._tokens.issue(str(user.id), user.email, now)
        return AuthResult(user=user, token=token)

    # ── Helpers ──────────────────────────────────────────────────────────────

    async def _consume(self, limiter: RateLimiter, key: str, message: str) -> None:
        try:
            await limiter.consume(key)
        except RateLimitExceeded as exc:
            retry_after = exc.retry_after_seconds
            log.warning("rate_limited", limiter=limiter.name, retry_after=retry_after)
            raise RateLimitError(
                message.format(minutes=max(1, math.ceil(retry_after / 60))),
                retry_after=retry_after,
            ) from exc

    async def _issue_otp(self, email: str, otp_type: str, ip_address: Optional[str]) -> None:
        code = self._generate_code()
        await self._otps.upsert(email, otp_type, hash_token(code), ip_address, self._clock())
        try:
            await self._sender.send(email, code, otp_type, ip_address)
        except EmailRejectedError as exc:
            log.warning("otp_delivery_rejected", otp_type=otp_type, status_code=exc.status_code)
            raise ValidationError(
                "This email address cannot receive messages", field="email"
            ) from exc
        except EmailDeliveryError as exc:
            log.error(
                "otp_delivery_failed",
                otp_type=otp_type,
                error_type=type(exc).__name__,
                retryable=exc.retryable,
            )
            raise UpstreamUnavailableError(
                "Failed to send the verification code. Please try again later.",
                details={"retryable": exc.retryable},
            ) from exc

    async def _discard_registration(self, user: UserDoc, email: str) -> None:
        try:
            await self._otps.delete_for_email(email)
            await self._users.delete(user.id)
        except Exception:
            log.error("registration_rollback_failed", user_id=str(user.id), exc_info=True)
            return
        log.info("registration_rolled_back", user_id=str(user.id))

    async def _claim_reset_attempt(self, email: str, otp: str) -> OtpDoc:
        """Count one attempt against the live reset record and check the code.

        verify_reset_otp and reset_password share this budget: a record takes
        at most three attempts in total. The attempt that exhausts
        it with a wrong code, and any attempt after that, purge the record and
        fail with TooManyAttemptsError.
        """
        cutoff = self._clock() - OTP_LIFETIME
        record = await self._otps.claim_attempt(email, OTP_TYPE_RESET, cutoff)
        if record is None:
            stale = await self._otps.find_active(email, OTP_TYPE_RESET, cutoff)
            if stale is not None and stale.exhausted:
                await self._otps.delete_by_id(stale.id)
                log.warning("reset_otp_exhausted", attempts=stale.attempts)
                raise TooManyAttemptsError(
                    "Too many failed attempts. Please request a new OTP."
                )
            log.warning("reset_otp_rejected", reason="invalid_or_expired")
            raise InvalidOtpError("Invalid or expired OTP. Please request a new one.")

        if not tokens_match(record.code_hash, otp):
            if record.exhausted:
                await self._otps.delete_by_id(record.id)
                log.warning("reset_otp_exhausted", attempts=record.attempts)
                raise TooManyAttemptsError(
                    "Too many failed attempts. Please request a new OTP."
                )
            log.warning("reset_otp_rejected", reason="code_mismatch", attempts=record.attempts)
            raise InvalidOtpError("Invalid or expired OTP. Please request a new one.")
        return record

    async def _require_user(self, user_id: str) -> UserDoc:
        user = await self._users.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    @staticmethod
    def _require_otp(email: str, otp: Optional[str]) -> str:
        otp = (otp or "").strip()
        if not email or not otp:
            raise ValidationError("Email and OTP are required")
        if not validate_otp_format(otp):
            raise ValidationError("OTP must be a 6-digit number", field="otp")
        return otp

    @staticmethod
    def _password_matches(user: UserDoc, password: str) -> bool:
        # External-only accounts never match, even if a stale hash is present.
        if user.auth_method != AUTH_METHOD_LOCAL:
            return False
        return verify_password(password, user.password_hash)

    @staticmethod
    def _check_password_policy(password: str, *, field: str) -> None:
        is_valid, missing = validate_password(password)
        if not is_valid:
            raise ValidationError(
                "Password does not meet requirements",
                field=field,
                details={
                    "missing_requirements": missing,
                    "requirements": get_password_requirements(),
                },
            )
