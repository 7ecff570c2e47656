from __future__ import annotations

import logging

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import Settings, load_settings
from models.protocol import NAMESPACE
from routes.sessions import router as sessions_router
from services.auth import AuthVerifier
from services.directory import SessionDirectory
from services.gateway import SessionGateway
from services.presence import PresenceRegistry

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    directory: SessionDirectory | None = None,
    registry: PresenceRegistry | None = None,
) -> FastAPI:
    """
    Build the REST app and its Socket.IO gateway.

    The directory, presence registry and verifier are created once here and
    shared by reference through app.state; nothing is a module-level singleton.
    """
    settings = settings or load_settings()
    app = FastAPI(title="Live Session API", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    verifier = AuthVerifier(
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        ttl_seconds=settings.access_token_ttl_seconds,
    )
    if directory is None:
        directory = SessionDirectory(admin_role=settings.admin_role)
    if registry is None:
        registry = PresenceRegistry()

    sio = socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=list(settings.cors_origins),
        logger=False,
        engineio_logger=False,
    )
    gateway = SessionGateway(sio, registry, verifier, directory=directory, namespace=NAMESPACE)
    gateway.attach()

    app.state.settings = settings
    app.state.verifier = verifier
    app.state.directory = directory
    app.state.registry = registry
    app.state.sio = sio
    app.state.gateway = gateway

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(sessions_router, prefix="/api")
    return app


def create_asgi_app(settings: Settings | None = None) -> socketio.ASGIApp:
    """Socket.IO (/socket.io, namespace /ws/sessions) in front of the FastAPI app."""
    app = create_app(settings)
    logger.info("[main] Socket.IO namespace %s mounted; CORS origins=%s", NAMESPACE, app.state.settings.cors_origins)
    return socketio.ASGIApp(app.state.sio, other_asgi_app=app)
