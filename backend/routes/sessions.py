"""Live-session REST API (the SessionDirectory surface consumed by SessionClient)."""

import logging
from typing import NoReturn

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, Response

from app.models import (
    DEFAULT_ICE_SERVERS,
    IceServer,
    JoinSessionResponse,
    ParticipantResponse,
    SessionCreateRequest,
    SessionReadResponse,
    SessionUpdateRequest,
    StatusResponse,
)
from models.identity import Identity
from models.session import LiveSession, SessionStatus
from services.access import can_view
from services.auth import AuthVerifier, parse_bearer
from services.directory import SessionDirectory
from services.errors import (
    AuthenticationError,
    AuthorizationError,
    InvalidTransitionError,
    LiveSessionError,
    SessionNotFoundError,
    SessionUnavailableError,
)

router = APIRouter(tags=["live-sessions"])
logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[LiveSessionError], int], ...] = (
    (AuthenticationError, 401),
    (AuthorizationError, 403),
    (SessionNotFoundError, 404),
    (SessionUnavailableError, 409),
    (InvalidTransitionError, 409),
)


def _raise_http(exc: LiveSessionError) -> NoReturn:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            raise HTTPException(status_code=status_code, detail=str(exc)) from exc
    raise HTTPException(status_code=500, detail=str(exc)) from exc


def get_directory(request: Request) -> SessionDirectory:
    return request.app.state.directory


def get_identity(request: Request, authorization: str | None = Header(default=None)) -> Identity:
    verifier: AuthVerifier = request.app.state.verifier
    try:
        return verifier.verify(parse_bearer(authorization))
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=401, detail=str(exc), headers={"WWW-Authenticate": "Bearer"}
        ) from exc


def _require_admin(identity: Identity, directory: SessionDirectory) -> None:
    if not identity.has_role(directory.admin_role):
        raise HTTPException(status_code=403, detail="Administrator role required")


def _load_visible(directory: SessionDirectory, session_id: int, identity: Identity) -> LiveSession:
    try:
        session = directory.get(session_id)
    except LiveSessionError as exc:
        _raise_http(exc)
    if not can_view(identity, session, directory.admin_role):
        raise HTTPException(status_code=403, detail="Your membership does not include this session")
    return session


def _read(directory: SessionDirectory, session: LiveSession) -> SessionReadResponse:
    return SessionReadResponse.from_session(session, len(directory.participants(session.id)))


@router.post("/live-sessions", response_model=SessionReadResponse, status_code=201)
def create_session(
    body: SessionCreateRequest,
    identity: Identity = Depends(get_identity),
    directory: SessionDirectory = Depends(get_directory),
) -> SessionReadResponse:
    _require_admin(identity, directory)
    session = directory.create(
        title=body.title,
        description=body.description,
        host=identity,
        scheduled_time=body.scheduled_time,
        role_access=body.role_access,
        max_participants=body.max_participants,
        duration_minutes=body.duration,
    )
    return _read(directory, session)


@router.get("/live-sessions", response_model=list[SessionReadResponse])
def list_sessions(
    status: SessionStatus | None = Query(default=None),
    identity: Identity = Depends(get_identity),
    directory: SessionDirectory = Depends(get_directory),
) -> list[SessionReadResponse]:
    """Sessions the caller's roles grant access to (all of them for administrators)."""
    return [_read(directory, s) for s in directory.list(viewer=identity, status=status)]


@router.get("/live-sessions/{session_id}", response_model=SessionReadResponse)
def get_session(
    session_id: int,
    identity: Identity = Depends(get_identity),
    directory: SessionDirectory = Depends(get_directory),
) -> SessionReadResponse:
    return _read(directory, _load_visible(directory, session_id, identity))


@router.put("/live-sessions/{session_id}", response_model=SessionReadResponse)
def update_session(
    session_id: int,
    body: SessionUpdateRequest,
    identity: Identity = Depends(get_identity),
    directory: SessionDirectory = Depends(get_directory),
) -> SessionReadResponse:
    _require_admin(identity, directory)
    changes = body.model_dump(exclude_unset=True)
    if "duration" in changes:
        changes["duration_minutes"] = changes.pop("duration")
    try:
        session = directory.update(session_id, **changes)
    except LiveSessionError as exc:
        _raise_http(exc)
    return _read(directory, session)


@router.delete("/live-sessions/{session_id}", status_code=204)
def delete_session(
    session_id: int,
    identity: Identity = Depends(get_identity),
    directory: SessionDirectory = Depends(get_directory),
) -> Response:
    _require_admin(identity, directory)
    try:
        directory.delete(session_id)
    except LiveSessionError as exc:
        _raise_http(exc)
    return Response(status_code=204)


def _lifecycle(action: str):
    def handler(
        session_id: int,
        identity: Identity = Depends(get_identity),
        directory: SessionDirectory = Depends(get_directory),
    ) -> SessionReadResponse:
        try:
            session = directory.get(session_id)
            if not directory.can_manage(identity, session):
                raise AuthorizationError("Only the host or an administrator can do that")
            session = getattr(directory, action)(session_id)
        except LiveSessionError as exc:
            _raise_http(exc)
        logger.info("[sessions] %s session_id=%s by user=%s", action, session_id, identity.user_id)
        return _read(directory, session)

    handler.__name__ = f"{action}_session"
    return handler


for _action in ("start", "end", "cancel"):
    router.add_api_route(
        f"/live-sessions/{{session_id}}/{_action}",
        _lifecycle(_action),
        methods=["POST"],
        response_model=SessionReadResponse,
    )


@router.post("/live-sessions/{session_id}/join", response_model=JoinSessionResponse)
def join_session(
    session_id: int,
    identity: Identity = Depends(get_identity),
    directory: SessionDirectory = Depends(get_directory),
) -> JoinSessionResponse:
    """Validate role access and session status, then record the caller on the roster."""
    logger.info("[sessions] POST /live-sessions/%s/join user=%s", session_id, identity.user_id)
    try:
        participant = directory.join(session_id, identity)
        session = directory.get(session_id)
    except LiveSessionError as exc:
        logger.info("[sessions] join refused session_id=%s user=%s: %s", session_id, identity.user_id, exc)
        _raise_http(exc)
    return JoinSessionResponse(
        session_data=_read(directory, session),
        participant=ParticipantResponse.from_participant(participant),
        ice_servers=[IceServer(urls=url) for url in DEFAULT_ICE_SERVERS],
    )


@router.post("/live-sessions/{session_id}/leave", response_model=StatusResponse)
def leave_session(
    session_id: int,
    identity: Identity = Depends(get_identity),
    directory: SessionDirectory = Depends(get_directory),
) -> StatusResponse:
    try:
        directory.leave(session_id, identity)
    except LiveSessionError as exc:
        _raise_http(exc)
    return StatusResponse()


@router.get("/live-sessions/{session_id}/participants", response_model=list[ParticipantResponse])
def list_participants(
    session_id: int,
    identity: Identity = Depends(get_identity),
    directory: SessionDirectory = Depends(get_directory),
) -> list[ParticipantResponse]:
    _load_visible(directory, session_id, identity)
    return [ParticipantResponse.from_participant(p) for p in directory.participants(session_id)]
