"""
Shared test configuration.

Patches dotenv so pydantic-settings never reads the project's real .env file
during tests. Tests control config exclusively through monkeypatch.setenv()
or explicit constructor arguments.
"""

import os

import pytest

# AppSettings requires MONGODB_URI; integration apps never connect to it.
os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017/")


@pytest.fixture(autouse=True)
def disable_dotenv_loading(monkeypatch):
    """Prevent pydantic-settings from loading .env files in all tests."""
    import pydantic_settings.sources.providers.dotenv as ps_dotenv

    monkeypatch.setattr(ps_dotenv, "dotenv_values", lambda *a, **kw: {})
