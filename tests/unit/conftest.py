"""
Unit test fixtures.

Services are built on the in-memory fakes from tests/fakes.py with a frozen
wall clock. Rate limiter tests drive ``time.time`` by hand through
``wall_time``, since that is the clock the ``limits`` storage reads.
"""

import time

import pytest

from config import JWTSettings, RateLimitSettings
from infrastructure.rate_limiter.registry import build_rate_limiters
from services.auth_service import AuthService
from services.token_service import TokenService
from tests.fakes import (
    TEST_JWT_SECRET,
    FakeClock,
    FakeTime,
    InMemoryOtpStore,
    InMemoryUserStore,
    RecordingSender,
    SequenceCodes,
)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def wall_time(monkeypatch):
    fake = FakeTime()
    monkeypatch.setattr(time, "time", fake)
    return fake


@pytest.fixture
def users():
    return InMemoryUserStore()


@pytest.fixture
def otps():
    return InMemoryOtpStore()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def codes():
    return SequenceCodes()


@pytest.fixture
def jwt_settings():
    return JWTSettings(jwt_secret=TEST_JWT_SECRET)


@pytest.fixture
def token_service(jwt_settings, clock):
    return TokenService(jwt_settings, clock=clock)


@pytest.fixture
def limiters():
    return build_rate_limiters(RateLimitSettings(), bypass=False)


@pytest.fixture
def auth_service(users, otps, token_service, limiters, sender, clock, codes):
    return AuthService(
        users, otps, token_service, limiters, sender, clock=clock, code_generator=codes
    )
