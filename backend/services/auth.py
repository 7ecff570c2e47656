"""Bearer token issue/verify (HS256 JWT) shared by REST and the socket handshake."""

import time
from typing import Any

import jwt

from models.identity import Identity
from services.errors import AuthenticationError

BEARER_PREFIX = "bearer "


def parse_bearer(header: str | None) -> str | None:
    """Return the token from an `Authorization: Bearer <token>` value, else None."""
    if not header:
        return None
    value = header.strip()
    if value.lower().startswith(BEARER_PREFIX):
        token = value[len(BEARER_PREFIX):].strip()
        return token or None
    return None


class AuthVerifier:
    def __init__(self, secret: str, *, algorithm: str = "HS256", ttl_seconds: int = 3600) -> None:
        if not secret:
            raise ValueError("AuthVerifier requires a non-empty secret")
        self._secret = secret
        self._algorithm = algorithm
        self._ttl_seconds = ttl_seconds

    def create_token(self, identity: Identity, *, expiration_seconds: int | None = None) -> str:
        """Create an access token for identity.
        Sets iat 60s in the past to tolerate small clock skew between hosts.
        """
        now = int(time.time())
        payload = {
            "sub": str(identity.user_id),
            "name": identity.name,
            "email": identity.email,
            "roles": sorted(identity.roles),
            "iat": now - 60,
            "exp": now + (expiration_seconds if expiration_seconds is not None else self._ttl_seconds),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str | None) -> Identity:
        if not token:
            raise AuthenticationError("missing token")
        try:
            claims: dict[str, Any] = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationError("token expired", reason="token_expired") from exc
        except jwt.InvalidTokenError as exc:
            raise AuthenticationError(f"invalid token: {exc}") from exc

        try:
            user_id = int(claims["sub"])
        except (TypeError, ValueError) as exc:
            raise AuthenticationError("token subject is not a user id") from exc

        roles = claims.get("roles") or []
        if isinstance(roles, str):
            roles = [roles]
        return Identity(
            user_id=user_id,
            name=str(claims.get("name") or ""),
            email=str(claims.get("email") or ""),
            roles=frozenset(str(r) for r in roles),
        )
