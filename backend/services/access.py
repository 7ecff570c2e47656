"""
Join guards: an ordered list of predicates evaluated before a join is accepted.

Each guard takes (identity, session, context) and returns an AccessDecision.
The first denial wins; if every guard allows, the join proceeds.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from models.identity import Identity
from models.session import LiveSession
from services.errors import AuthorizationError, LiveSessionError, SessionUnavailableError


@dataclass(frozen=True)
class AccessContext:
    admin_role: str = "admin"
    present_count: int = 0
    already_present: bool = False


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str = ""
    error: type[LiveSessionError] = AuthorizationError

    @classmethod
    def allow(cls) -> AccessDecision:
        return cls(True)

    @classmethod
    def deny(cls, reason: str, error: type[LiveSessionError] = AuthorizationError) -> AccessDecision:
        return cls(False, reason, error)


Guard = Callable[[Identity, LiveSession, AccessContext], AccessDecision]


def session_is_joinable(identity: Identity, session: LiveSession, ctx: AccessContext) -> AccessDecision:
    if session.is_joinable:
        return AccessDecision.allow()
    return AccessDecision.deny(f"Session is {session.status.value}", SessionUnavailableError)


def role_permitted(identity: Identity, session: LiveSession, ctx: AccessContext) -> AccessDecision:
    if identity.has_role(ctx.admin_role) or identity.user_id == session.host_id:
        return AccessDecision.allow()
    if identity.roles & session.role_access:
        return AccessDecision.allow()
    return AccessDecision.deny("Your membership does not include this session")


def has_capacity(identity: Identity, session: LiveSession, ctx: AccessContext) -> AccessDecision:
    if session.max_participants is None or ctx.already_present:
        return AccessDecision.allow()
    if ctx.present_count < session.max_participants:
        return AccessDecision.allow()
    return AccessDecision.deny("Session is full", SessionUnavailableError)


DEFAULT_JOIN_GUARDS: tuple[Guard, ...] = (session_is_joinable, role_permitted, has_capacity)


def check_access(
    identity: Identity,
    session: LiveSession,
    ctx: AccessContext,
    guards: Sequence[Guard] = DEFAULT_JOIN_GUARDS,
) -> None:
    """Raise the first denying guard's error; return None when all allow."""
    for guard in guards:
        decision = guard(identity, session, ctx)
        if not decision.allowed:
            raise decision.error(decision.reason)


def can_view(identity: Identity, session: LiveSession, admin_role: str = "admin") -> bool:
    return role_permitted(identity, session, AccessContext(admin_role=admin_role)).allowed
