import httpx
import pytest

from app.config import Settings
from app.main import create_app
from client.directory_api import DirectoryAPI, classify_response
from conftest import ADMIN, ALICE, FREE_USER, tomorrow
from services.auth import AuthVerifier
from services.errors import (
    AuthenticationError,
    AuthorizationError,
    LiveSessionError,
    SessionUnavailableError,
    TransientConnectionError,
)


def _api(app, token: str) -> DirectoryAPI:
    http = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test/api")
    return DirectoryAPI(http, lambda: token, owns_client=True)


@pytest.mark.parametrize(
    ("status", "error_type"),
    [
        (401, AuthenticationError),
        (403, AuthorizationError),
        (404, SessionUnavailableError),
        (409, SessionUnavailableError),
        (429, TransientConnectionError),
        (503, TransientConnectionError),
        (400, LiveSessionError),
    ],
)
def test_classify_response(status: int, error_type: type[LiveSessionError]) -> None:
    response = httpx.Response(status, json={"detail": "nope"})
    error = classify_response(response)
    assert type(error) is error_type


def test_classify_response_success_is_none() -> None:
    assert classify_response(httpx.Response(200, json=[])) is None


def test_transient_errors_are_retryable() -> None:
    assert classify_response(httpx.Response(502, text="bad gateway")).retryable
    assert not classify_response(httpx.Response(403, json={"detail": "x"})).retryable


@pytest.mark.anyio
async def test_join_and_participants_round_trip(settings: Settings, verifier: AuthVerifier) -> None:
    app = create_app(settings)
    session = app.state.directory.create(
        title="London open", host=ADMIN, scheduled_time=tomorrow(), role_access={"academy"}
    )
    api = _api(app, verifier.create_token(ALICE))

    joined = await api.join(session.id)
    roster = await api.participants(session.id)
    fetched = await api.get_session(session.id)
    await api.leave(session.id)
    after = await api.participants(session.id)
    await api.aclose()

    assert joined["participant"]["userId"] == ALICE.user_id
    assert len(joined["iceServers"]) == 3
    assert [row["user"]["id"] for row in roster] == [ALICE.user_id]
    assert fetched["participantCount"] == 1
    assert after == []


@pytest.mark.anyio
async def test_join_maps_http_errors(settings: Settings, verifier: AuthVerifier) -> None:
    app = create_app(settings)
    session = app.state.directory.create(
        title="London open", host=ADMIN, scheduled_time=tomorrow(), role_access={"academy"}
    )

    with pytest.raises(AuthorizationError):
        await _api(app, verifier.create_token(FREE_USER)).join(session.id)
    with pytest.raises(AuthenticationError):
        await _api(app, "garbage").join(session.id)
    with pytest.raises(SessionUnavailableError):
        await _api(app, verifier.create_token(ALICE)).join(999)

    app.state.directory.cancel(session.id)
    with pytest.raises(SessionUnavailableError, match="cancelled"):
        await _api(app, verifier.create_token(ALICE)).join(session.id)


@pytest.mark.anyio
async def test_transport_failure_is_transient() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    http = httpx.AsyncClient(transport=httpx.MockTransport(refuse), base_url="http://test/api")
    api = DirectoryAPI(http, lambda: "token")

    with pytest.raises(TransientConnectionError):
        await api.participants(1)
    await http.aclose()
