import logging

import httpx
import pytest

from conftest import ApiStub, request_json
from terminuscli.domain.errors import (
    CredentialMissing,
    CredentialRefreshFailed,
    CredentialSourceError,
)
from terminuscli.domain.events.api_events import TokenRefreshed
from terminuscli.domain.models.common import SessionData
from terminuscli.infrastructure.resilience.credentials import (
    CLIENT_NAME,
    LOGIN_PATH,
    CredentialCell,
    CredentialProvider,
)

pytestmark = pytest.mark.asyncio

SESSION_PAYLOAD = {"session": "new-session-token", "user_id": "u-1", "expires_at": 1900000000}


@pytest.fixture
def refreshed():
    return []


@pytest.fixture
def provider(executor, credentials, refreshed):
    return CredentialProvider(
        machine_token_source=lambda: "machine-token-123",
        exchange=executor.request_once,
        credentials=credentials,
        on_token_refreshed=refreshed.append,
    )


async def test_refresh_publishes_new_token(api: ApiStub, provider, credentials: CredentialCell, refreshed):
    api.add("POST", LOGIN_PATH, (200, SESSION_PAYLOAD))

    token = await provider.refresh_token()

    assert token == "new-session-token"
    assert credentials.get() == "new-session-token"
    assert request_json(api.requests[0]) == {"machine_token": "machine-token-123", "client": CLIENT_NAME}
    assert len(refreshed) == 1
    assert refreshed[0].user_id == "u-1"
    assert refreshed[0].machine_token == "machine-token-123"


async def test_rejected_exchange_is_attempted_once(api: ApiStub, provider, credentials: CredentialCell, refreshed):
    api.add("POST", LOGIN_PATH, (401, {"error": "invalid machine token"}))

    with pytest.raises(CredentialRefreshFailed) as exc_info:
        await provider.refresh_token()

    assert exc_info.value.status_code == 401
    assert len(api.requests) == 1
    assert credentials.get() == "session-token"
    assert refreshed == []


async def test_server_error_on_exchange_is_not_retried(api: ApiStub, provider):
    api.add("POST", LOGIN_PATH, (503, None))

    with pytest.raises(CredentialRefreshFailed):
        await provider.refresh_token()
    assert len(api.requests) == 1


async def test_transport_failure_becomes_refresh_failure(api: ApiStub, provider):
    def drop(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    api.add("POST", LOGIN_PATH, drop)

    with pytest.raises(CredentialRefreshFailed):
        await provider.refresh_token()


async def test_response_without_session_is_rejected(api: ApiStub, provider):
    api.add("POST", LOGIN_PATH, (200, {"user_id": "u-1"}))

    with pytest.raises(CredentialRefreshFailed):
        await provider.refresh_token()


async def test_missing_machine_token_makes_no_request(api: ApiStub, executor, credentials):
    provider = CredentialProvider(lambda: None, executor.request_once, credentials)

    with pytest.raises(CredentialMissing):
        await provider.refresh_token()
    assert api.requests == []


async def test_failing_token_source_is_wrapped(api: ApiStub, executor, credentials):
    def broken_source():
        raise OSError("keychain locked")

    provider = CredentialProvider(broken_source, executor.request_once, credentials)

    with pytest.raises(CredentialSourceError) as exc_info:
        await provider.refresh_token()
    assert isinstance(exc_info.value.__cause__, OSError)
    assert api.requests == []


async def test_callback_failure_does_not_fail_refresh(api: ApiStub, executor, credentials, caplog):
    caplog.set_level(logging.WARNING)

    def save_fails(session: SessionData) -> None:
        raise OSError("disk full")

    api.add("POST", LOGIN_PATH, (200, SESSION_PAYLOAD))
    events = []
    provider = CredentialProvider(
        lambda: "machine-token-123",
        executor.request_once,
        credentials,
        on_token_refreshed=save_fails,
        event_sink=events.append,
    )

    token = await provider.refresh_token()

    assert token == "new-session-token"
    assert credentials.get() == "new-session-token"
    assert "Failed to save refreshed session" in caplog.text
    assert [type(e) for e in events] == [TokenRefreshed]


async def test_credential_cell_repr_hides_token():
    cell = CredentialCell("secret-value")
    assert "secret-value" not in repr(cell)
    assert cell
    cell.clear()
    assert not cell
