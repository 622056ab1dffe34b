import json
import time
from pathlib import Path

import httpx
import pytest
from typer.testing import CliRunner

from conftest import SITE_ID, USER_ID, ApiStub
from terminuscli.domain.models.common import SessionData
from terminuscli.infrastructure.config.settings import set_config_for_testing
from terminuscli.infrastructure.resilience.credentials import LOGIN_PATH
from terminuscli.infrastructure.session.file_store import FileSessionStore
from terminuscli.main import app

# These fixtures are defined in tests/conftest.py:
# runner: CliRunner
# api: ApiStub (routes for the MockTransport)
# isolated_config: temporary cache dir, no user config files

WORKFLOWS_PATH = f"/sites/{SITE_ID}/environments/dev/workflows"
RUNNING = {"id": "wf-1", "type": "clear_cache", "description": "Clear caches", "site_id": SITE_ID}
SUCCEEDED = dict(RUNNING, result="succeeded", finished_at=1700000000,
                 final_task={"messages": [{"message": "Caches cleared for dev"}]})


@pytest.fixture(autouse=True)
def cli_config(isolated_config, mocker):
    """Fast, deterministic settings for CLI runs; logging setup is left to pytest."""
    mocker.patch("terminuscli.main.setup_logging")
    set_config_for_testing({
        "host": "terminus.example.test",
        "retry_count": 1,
        "initial_backoff": 0,
        "poll_interval": 0,
    })


@pytest.fixture
def store(tmp_path: Path) -> FileSessionStore:
    return FileSessionStore.for_cache_dir(tmp_path / "cache")


@pytest.fixture
def logged_in(store: FileSessionStore) -> SessionData:
    session = SessionData("stored-session", user_id=USER_ID, expires_at=int(time.time()) + 3600,
                          email="dev@example.com")
    store.save_session(session)
    store.save_machine_token("dev@example.com", "machine-token-1")
    return session


def invoke(runner: CliRunner, api: ApiStub, args):
    client = httpx.AsyncClient(transport=httpx.MockTransport(api))
    return runner.invoke(app, args, obj={"http_client": client}, env={"COLUMNS": "250"})


def test_login_then_whoami(runner: CliRunner, api: ApiStub, store: FileSessionStore):
    api.add("POST", LOGIN_PATH, (200, {"session": "new-session", "user_id": USER_ID,
                                       "expires_at": int(time.time()) + 3600}))
    api.add("GET", f"/users/{USER_ID}", (200, {"id": USER_ID, "email": "dev@example.com",
                                               "profile": {"firstname": "Dana", "lastname": "Ops"}}))

    login = invoke(runner, api, ["auth:login", "--machine-token", "machine-token-1"])
    whoami = invoke(runner, api, ["--format", "json", "--quiet", "auth:whoami"])

    assert login.exit_code == 0, login.output
    assert "Logged in as dev@example.com" in login.output
    assert store.load_machine_token("dev@example.com") == "machine-token-1"
    assert whoami.exit_code == 0, whoami.output
    assert json.loads(whoami.stdout)["Email"] == "dev@example.com"
    assert api.requests[-1].headers["Authorization"] == "Bearer new-session"


def test_site_list_json(runner: CliRunner, api: ApiStub, logged_in):
    api.add("GET", f"/users/{USER_ID}/memberships/sites", (200, [
        {"site": {"id": SITE_ID, "name": "demo", "plan_name": "Basic"}},
    ]))

    result = invoke(runner, api, ["--format", "json", "--quiet", "site:list"])

    assert result.exit_code == 0, result.output
    sites = json.loads(result.stdout)
    assert [s["Name"] for s in sites] == ["demo"]
    assert api.requests[0].headers["Authorization"] == "Bearer stored-session"


def test_not_logged_in(runner: CliRunner, api: ApiStub):
    result = invoke(runner, api, ["site:list"])

    assert result.exit_code == 1
    assert "You are not logged in" in result.output
    assert api.requests == []


def test_clear_cache_waits_for_workflow(runner: CliRunner, api: ApiStub, logged_in):
    api.add("POST", WORKFLOWS_PATH, (200, RUNNING))
    api.add("GET", f"/sites/{SITE_ID}/workflows/wf-1", (200, RUNNING), (200, SUCCEEDED))

    result = invoke(runner, api, ["env:clear-cache", f"{SITE_ID}.dev"])

    assert result.exit_code == 0, result.output
    assert "Caches cleared for dev" in result.output
    assert len(api.calls("GET", f"/sites/{SITE_ID}/workflows/wf-1")) == 2


def test_no_wait_skips_polling(runner: CliRunner, api: ApiStub, logged_in):
    api.add("POST", WORKFLOWS_PATH, (200, RUNNING))

    result = invoke(runner, api, ["env:clear-cache", f"{SITE_ID}.dev", "--no-wait"])

    assert result.exit_code == 0, result.output
    assert "Started workflow wf-1" in result.output
    assert len(api.requests) == 1


def test_failed_workflow_exit_code(runner: CliRunner, api: ApiStub, logged_in):
    api.add("POST", WORKFLOWS_PATH, (200, RUNNING))
    api.add("GET", f"/sites/{SITE_ID}/workflows/wf-1", (200, dict(RUNNING, result="failed", finished_at=1)))

    result = invoke(runner, api, ["env:clear-cache", f"{SITE_ID}.dev"])

    assert result.exit_code == 1


def test_domain_remove_already_absent(runner: CliRunner, api: ApiStub, logged_in):
    api.add("DELETE", f"/sites/{SITE_ID}/environments/live/domains/old.example.com", (404, {"error": "missing"}))

    result = invoke(runner, api, ["domain:remove", f"{SITE_ID}.live", "old.example.com"])

    assert result.exit_code == 0, result.output
    assert "already absent" in result.output


def test_backup_create_gives_up_after_retries(runner: CliRunner, api: ApiStub, logged_in):
    api.add("POST", WORKFLOWS_PATH, (503, {"error": "unavailable"}))

    result = invoke(runner, api, ["backup:create", f"{SITE_ID}.dev", "--element", "database"])

    assert result.exit_code == 1
    assert "Failed to create backup" in result.output
    assert len(api.requests) == 2


def test_expiring_session_is_refreshed_first(runner: CliRunner, api: ApiStub, store: FileSessionStore):
    store.save_session(SessionData("old-session", user_id=USER_ID, expires_at=int(time.time()) + 60,
                                   email="dev@example.com"))
    store.save_machine_token("dev@example.com", "machine-token-1")
    api.add("POST", LOGIN_PATH, (200, {"session": "renewed-session", "user_id": USER_ID,
                                       "expires_at": int(time.time()) + 3600}))
    api.add("GET", f"/users/{USER_ID}/memberships/sites", (200, []))

    result = invoke(runner, api, ["--quiet", "site:list"])

    assert result.exit_code == 0, result.output
    assert [r.method for r in api.requests] == ["POST", "GET"]
    assert api.requests[1].headers["Authorization"] == "Bearer renewed-session"
    renewed = store.load_session()
    assert renewed.session == "renewed-session"
    assert renewed.email == "dev@example.com"


def test_failed_refresh_still_runs_command(runner: CliRunner, api: ApiStub, store: FileSessionStore):
    store.save_session(SessionData("old-session", user_id=USER_ID, expires_at=int(time.time()) + 60,
                                   email="dev@example.com"))
    api.add("GET", f"/users/{USER_ID}/memberships/sites", (200, []))

    result = invoke(runner, api, ["--quiet", "site:list"])

    assert result.exit_code == 0, result.output
    assert api.requests[0].headers["Authorization"] == "Bearer old-session"


def test_logout_removes_session(runner: CliRunner, api: ApiStub, store: FileSessionStore, logged_in):
    result = invoke(runner, api, ["auth:logout"])

    assert result.exit_code == 0, result.output
    assert store.load_session() is None
    assert store.list_machine_tokens() == []


def test_malformed_site_env_is_usage_error(runner: CliRunner, api: ApiStub, logged_in):
    result = invoke(runner, api, ["backup:list", "just-a-site"])

    assert result.exit_code == 2
    assert api.requests == []


def test_unknown_format_is_usage_error(runner: CliRunner, api: ApiStub):
    result = invoke(runner, api, ["--format", "xml", "site:list"])
    assert result.exit_code == 2


def test_version(runner: CliRunner, api: ApiStub):
    result = invoke(runner, api, ["--version"])
    assert result.exit_code == 0
    assert "terminus" in result.output
