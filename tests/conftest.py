import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest
from typer.testing import CliRunner

from terminuscli.infrastructure.config import settings
from terminuscli.infrastructure.resilience.call_scope import CallScope
from terminuscli.infrastructure.resilience.credentials import CredentialCell
from terminuscli.infrastructure.resilience.request_executor import RequestExecutor

BASE_URL = "https://terminus.example.test/api"
SITE_ID = "11111111-2222-3333-4444-555555555555"
USER_ID = "aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee"


# --- Time ---

class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeScope(CallScope):
    """CallScope whose sleeps return immediately after advancing a fake clock.

    Every pause is recorded in ``sleeps``; child scopes share the list and
    the clock.
    """

    def __init__(self, timeout: Optional[float] = None, clock: Optional[FakeClock] = None):
        self.fake_clock = clock or FakeClock()
        self.sleeps: List[float] = []
        super().__init__(timeout, self.fake_clock)

    async def _pause(self, seconds: float) -> bool:
        self.sleeps.append(seconds)
        self.fake_clock.advance(seconds)
        return self.cancelled


@pytest.fixture
def make_scope() -> Callable[..., FakeScope]:
    """Factory for FakeScopes; call it inside the test's event loop."""
    return FakeScope


# --- HTTP ---

Route = Union[Tuple[int, Any], Callable[[httpx.Request], httpx.Response]]


class ApiStub:
    """Routes (method, path) pairs to canned responses and records every request.

    A route holds a sequence of responses consumed in order; the last one
    repeats. Each entry is a (status_code, json_payload) tuple or a callable
    building the response from the request.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], List[Route]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, path: str, *responses: Route) -> None:
        self.routes[(method, path)] = list(responses)

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and _api_path(r) == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, _api_path(request)))
        if not queue:
            return httpx.Response(404, json={"error": f"no route for {request.method} {request.url.path}"})
        entry = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(entry):
            return entry(request)
        status_code, payload = entry
        if payload is None:
            return httpx.Response(status_code)
        return httpx.Response(status_code, json=payload)


def _api_path(request: httpx.Request) -> str:
    path = request.url.path
    return path[len("/api"):] if path.startswith("/api") else path


def request_json(request: httpx.Request) -> Any:
    return json.loads(request.content.decode("utf-8"))


@pytest.fixture
def api() -> ApiStub:
    return ApiStub()


@pytest.fixture
def http_client(api: ApiStub) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(api))


@pytest.fixture
def credentials() -> CredentialCell:
    return CredentialCell("session-token")


@pytest.fixture
def executor(http_client: httpx.AsyncClient, credentials: CredentialCell) -> RequestExecutor:
    return RequestExecutor(
        credentials=credentials,
        base_url=BASE_URL,
        http_client=http_client,
        user_agent="Terminus-Python/test",
    )


# --- Configuration ---

@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch):
    """Points configuration at a temporary home so tests never read the user's files."""
    monkeypatch.setattr(settings, "DEFAULT_CONFIG_FILE", tmp_path / "no-config.yml")
    monkeypatch.chdir(tmp_path)
    settings.reset_configuration()
    settings.clear_test_config()
    settings.set_config_for_testing({"cache_dir": str(tmp_path / "cache")})
    yield
    settings.clear_test_config()
    settings.reset_configuration()


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()
