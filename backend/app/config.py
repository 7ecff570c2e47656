"""Process configuration read from the environment (and backend/.env)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

DEFAULT_CORS_ORIGINS = ("http://localhost:8080",)
DEFAULT_TOKEN_TTL_SECONDS = 3600


@dataclass(frozen=True)
class Settings:
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    access_token_ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS
    cors_origins: tuple[str, ...] = field(default=DEFAULT_CORS_ORIGINS)
    admin_role: str = "admin"


def _split_origins(raw: str) -> tuple[str, ...]:
    origins = tuple(o.strip() for o in raw.split(",") if o.strip())
    return origins or DEFAULT_CORS_ORIGINS


def load_settings(*, env_file: str | None = None) -> Settings:
    """
    Build Settings from the environment.

    JWT_SECRET is shared by the REST auth layer and the socket handshake, so it
    must be set explicitly. There is no fallback secret: a missing value fails
    startup instead of silently rejecting every socket connection later.
    """
    load_dotenv(env_file or os.path.join(os.path.dirname(os.path.dirname(__file__)), ".env"))

    secret = os.environ.get("JWT_SECRET", "").strip()
    if not secret:
        raise RuntimeError(
            "JWT_SECRET is not set. Set it in backend/.env or the environment. "
            "REST and socket authentication must share the same secret."
        )

    ttl_raw = os.environ.get("ACCESS_TOKEN_TTL_SECONDS", "").strip()
    try:
        ttl = int(ttl_raw) if ttl_raw else DEFAULT_TOKEN_TTL_SECONDS
    except ValueError as exc:
        raise RuntimeError(f"ACCESS_TOKEN_TTL_SECONDS must be an integer, got {ttl_raw!r}") from exc

    return Settings(
        jwt_secret=secret,
        jwt_algorithm=os.environ.get("JWT_ALGORITHM", "HS256").strip() or "HS256",
        access_token_ttl_seconds=ttl,
        cors_origins=_split_origins(os.environ.get("CORS_ORIGINS", "")),
        admin_role=os.environ.get("ADMIN_ROLE", "admin").strip() or "admin",
    )
