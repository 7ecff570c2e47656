from __future__ import annotations

import os
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import pytest

TEST_JWT_SECRET = "test-secret-for-live-sessions"

# Set before app modules read the environment.
os.environ.setdefault("JWT_SECRET", TEST_JWT_SECRET)

from app.config import Settings  # noqa: E402
from models.identity import Identity  # noqa: E402
from services.auth import AuthVerifier  # noqa: E402

ADMIN = Identity(user_id=1, name="Admin", email="admin@example.com", roles=frozenset({"admin"}))
ALICE = Identity(user_id=2, name="Alice", email="alice@example.com", roles=frozenset({"academy"}))
BOB = Identity(user_id=3, name="Bob", email="bob@example.com", roles=frozenset({"academy"}))
FREE_USER = Identity(user_id=4, name="", email="free@example.com", roles=frozenset({"free"}))


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def settings() -> Settings:
    return Settings(jwt_secret=TEST_JWT_SECRET, cors_origins=("http://testserver",))


@pytest.fixture
def verifier(settings: Settings) -> AuthVerifier:
    return AuthVerifier(settings.jwt_secret, algorithm=settings.jwt_algorithm)


@pytest.fixture
def make_token(verifier: AuthVerifier) -> Callable[[Identity], str]:
    return verifier.create_token


def tomorrow() -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=1)
