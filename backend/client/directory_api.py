"""HTTP client for the live-session REST endpoints used by SessionClient."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import httpx

from services.errors import (
    AuthenticationError,
    AuthorizationError,
    LiveSessionError,
    SessionUnavailableError,
    TransientConnectionError,
)

logger = logging.getLogger(__name__)


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return response.reason_phrase


def classify_response(response: httpx.Response) -> LiveSessionError | None:
    """Map a non-2xx response onto the error taxonomy; None for success."""
    if response.is_success:
        return None
    detail = _detail(response)
    status = response.status_code
    if status == 401:
        return AuthenticationError(detail)
    if status == 403:
        return AuthorizationError(detail)
    if status in (404, 409, 410):
        return SessionUnavailableError(detail)
    if status == 408 or status == 429 or status >= 500:
        return TransientConnectionError(f"HTTP {status}: {detail}")
    return LiveSessionError(f"HTTP {status}: {detail}")


class DirectoryAPI:
    def __init__(self, http: httpx.AsyncClient, token_provider: Callable[[], str], *, owns_client: bool = False) -> None:
        self._http = http
        self._token_provider = token_provider
        self._owns_client = owns_client

    @classmethod
    def from_url(cls, base_url: str, token_provider: Callable[[], str], *, timeout: float = 10.0) -> DirectoryAPI:
        """base_url includes the API prefix, e.g. http://localhost:8000/api."""
        return cls(httpx.AsyncClient(base_url=base_url, timeout=timeout), token_provider, owns_client=True)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def _request(self, method: str, path: str) -> Any:
        headers = {"Authorization": f"Bearer {self._token_provider()}"}
        try:
            response = await self._http.request(method, path, headers=headers)
        except httpx.TransportError as exc:
            raise TransientConnectionError(f"{method} {path} failed: {exc}") from exc
        error = classify_response(response)
        if error is not None:
            logger.warning("[directory_api] %s %s -> %s: %s", method, path, response.status_code, error)
            raise error
        if not response.content:
            return None
        return response.json()

    async def get_session(self, session_id: int) -> dict[str, Any]:
        return await self._request("GET", f"/live-sessions/{session_id}")

    async def join(self, session_id: int) -> dict[str, Any]:
        return await self._request("POST", f"/live-sessions/{session_id}/join")

    async def leave(self, session_id: int) -> None:
        await self._request("POST", f"/live-sessions/{session_id}/leave")

    async def participants(self, session_id: int) -> list[dict[str, Any]]:
        return await self._request("GET", f"/live-sessions/{session_id}/participants") or []
