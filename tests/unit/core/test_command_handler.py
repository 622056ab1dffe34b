import pytest
from unittest.mock import MagicMock

from terminuscli.core.command_handler import EXIT_CANCELED, EXIT_FAILURE, EXIT_OK, CommandHandler
from terminuscli.core.services.auth_service import AuthService
from terminuscli.core.services.backup_service import BackupService
from terminuscli.core.services.domain_service import DomainService
from terminuscli.core.services.environment_service import EnvironmentService
from terminuscli.core.services.site_service import SiteService
from terminuscli.core.services.workflow_service import WorkflowService
from terminuscli.domain.errors import (
    Canceled,
    ConflictError,
    HTTPStatusError,
    NotFoundError,
    RetryExhausted,
    WaitTimeout,
)
from terminuscli.domain.interfaces.session_store import SessionStore
from terminuscli.domain.interfaces.user_interface import UserInterface
from terminuscli.domain.models.common import SessionData
from terminuscli.domain.models.resources import Site
from terminuscli.domain.models.workflow import Workflow
from terminuscli.infrastructure.resilience.job_tracker import WaitOptions

pytestmark = pytest.mark.asyncio

RUNNING = Workflow(id="wf-1", type="clear_cache", description="Clear caches", site_id="site-uuid")
SUCCEEDED = Workflow(id="wf-1", type="clear_cache", result="succeeded", finished_at=1.0,
                     final_task={"messages": [{"message": "Caches cleared"}]})
FAILED = Workflow(id="wf-1", type="deploy", result="failed", finished_at=1.0, description="Deploy to live")


@pytest.fixture
def services():
    return {
        "auth_service": MagicMock(spec=AuthService),
        "site_service": MagicMock(spec=SiteService),
        "environment_service": MagicMock(spec=EnvironmentService),
        "backup_service": MagicMock(spec=BackupService),
        "domain_service": MagicMock(spec=DomainService),
        "workflow_service": MagicMock(spec=WorkflowService),
        "session_store": MagicMock(spec=SessionStore),
    }


@pytest.fixture
def mock_ui():
    return MagicMock(spec=UserInterface)


@pytest.fixture
def command_handler(services, mock_ui):
    """Fixture to create CommandHandler with mocked services."""
    services["session_store"].load_session.return_value = SessionData("tok", user_id="u-1")
    services["site_service"].resolve_site_id.return_value = "site-uuid"
    return CommandHandler(ui=mock_ui, poll_interval_s=3, wait_timeout_s=600, **services)


async def test_site_list_displays_table(command_handler, services, mock_ui):
    services["site_service"].list.return_value = [Site(id="s-1", name="alpha")]

    exit_code = await command_handler.handle_site_list()

    assert exit_code == EXIT_OK
    services["site_service"].list.assert_awaited_once_with("u-1", None)
    rows = mock_ui.display_table.call_args.args[0]
    assert dict(rows[0])["Name"] == "alpha"


async def test_site_list_requires_login(command_handler, services, mock_ui):
    services["session_store"].load_session.return_value = None

    exit_code = await command_handler.handle_site_list()

    assert exit_code == EXIT_FAILURE
    mock_ui.display_error.assert_called_once_with(
        "Failed to list sites: You are not logged in. Run auth:login first."
    )
    services["site_service"].list.assert_not_called()


async def test_clear_cache_waits_for_workflow(command_handler, services, mock_ui):
    services["environment_service"].clear_cache.return_value = RUNNING
    services["workflow_service"].wait.return_value = SUCCEEDED

    exit_code = await command_handler.handle_env_clear_cache("demo", "dev")

    assert exit_code == EXIT_OK
    site_id, workflow_id, options, scope = services["workflow_service"].wait.call_args.args
    assert (site_id, workflow_id) == ("site-uuid", "wf-1")
    assert isinstance(options, WaitOptions)
    assert options.poll_interval_s == 3 and options.timeout_s == 600
    mock_ui.display_success.assert_called_once_with("Caches cleared")


async def test_progress_reports_each_new_status(command_handler, services, mock_ui):
    services["environment_service"].clear_cache.return_value = RUNNING

    async def fake_wait(site_id, workflow_id, options, scope):
        step_one = Workflow(id="wf-1", type="clear_cache", current_operation="Clearing Varnish", step=1)
        options.on_progress(step_one)
        options.on_progress(step_one)
        options.on_progress(Workflow(id="wf-1", type="clear_cache", current_operation="Clearing Redis", step=2))
        return SUCCEEDED

    services["workflow_service"].wait.side_effect = fake_wait

    await command_handler.handle_env_clear_cache("demo", "dev")

    messages = [c.args[0] for c in mock_ui.display_progress.call_args_list]
    assert messages == ["clear_cache: Clearing Varnish", "clear_cache: Clearing Redis"]


async def test_no_wait_returns_after_start(command_handler, services, mock_ui):
    services["environment_service"].clear_cache.return_value = RUNNING

    exit_code = await command_handler.handle_env_clear_cache("demo", "dev", wait=False)

    assert exit_code == EXIT_OK
    services["workflow_service"].wait.assert_not_called()
    mock_ui.display_info.assert_called_once_with("Started workflow wf-1 (Clear caches).")


async def test_failed_workflow_exits_nonzero(command_handler, services, mock_ui):
    services["environment_service"].deploy.return_value = RUNNING
    services["workflow_service"].wait.return_value = FAILED

    exit_code = await command_handler.handle_env_deploy("demo", "live", note="Release")

    assert exit_code == EXIT_FAILURE
    mock_ui.display_error.assert_called_once_with("Workflow wf-1 failed: Deploy to live")


async def test_domain_remove_not_found_is_success(command_handler, services, mock_ui):
    services["domain_service"].remove.side_effect = NotFoundError(404, "missing")

    exit_code = await command_handler.handle_domain_remove("demo", "live", "old.example.com")

    assert exit_code == EXIT_OK
    mock_ui.display_info.assert_called_once_with("Domain old.example.com is already absent from demo.live.")
    mock_ui.display_error.assert_not_called()


async def test_domain_add_conflict_is_success(command_handler, services, mock_ui):
    services["domain_service"].add.side_effect = ConflictError(409, "exists")

    exit_code = await command_handler.handle_domain_add("demo", "live", "www.example.com")

    assert exit_code == EXIT_OK
    mock_ui.display_info.assert_called_once_with("Domain www.example.com is already present on demo.live.")


async def test_domain_add_other_errors_fail(command_handler, services, mock_ui):
    services["domain_service"].add.side_effect = HTTPStatusError(403, "forbidden")

    exit_code = await command_handler.handle_domain_add("demo", "live", "www.example.com")

    assert exit_code == EXIT_FAILURE
    mock_ui.display_error.assert_called_once_with("Failed to add domain www.example.com: API error 403: forbidden")


async def test_retry_exhaustion_is_reported(command_handler, services, mock_ui):
    services["backup_service"].create.side_effect = RetryExhausted(HTTPStatusError(503), 6, status_code=503)

    exit_code = await command_handler.handle_backup_create("demo", "live")

    assert exit_code == EXIT_FAILURE
    mock_ui.display_error.assert_called_once_with(
        "Failed to create backup of demo.live: Request failed with status 503 after 6 attempts"
    )


async def test_cancel_exits_with_130(command_handler, services, mock_ui):
    services["workflow_service"].watch.side_effect = Canceled("operation canceled")

    exit_code = await command_handler.handle_workflow_watch("demo", "wf-1")

    assert exit_code == EXIT_CANCELED
    mock_ui.display_warning.assert_called_once_with("Canceled: operation canceled")


async def test_workflow_wait_timeout(command_handler, services, mock_ui):
    services["workflow_service"].wait.side_effect = WaitTimeout(5, "wf-1")

    exit_code = await command_handler.handle_workflow_wait("demo", "wf-1", timeout_s=5)

    assert exit_code == EXIT_FAILURE
    options = services["workflow_service"].wait.call_args.args[2]
    assert options.timeout_s == 5
    mock_ui.display_error.assert_called_once_with(
        "Failed to wait for workflow wf-1: Workflow wf-1 did not complete within 5s"
    )


async def test_backup_create_invalid_element(command_handler, services, mock_ui):
    services["backup_service"].create.side_effect = ValueError("Invalid backup element 'logs'.")

    exit_code = await command_handler.handle_backup_create("demo", "live", element="logs")

    assert exit_code == EXIT_FAILURE
    mock_ui.display_error.assert_called_once()


async def test_login_and_logout(command_handler, services, mock_ui):
    services["auth_service"].login.return_value = SessionData("s", user_id="u-1", email="dev@example.com")
    services["auth_service"].logout.return_value = "dev@example.com"

    assert await command_handler.handle_login("mt", None) == EXIT_OK
    assert await command_handler.handle_logout() == EXIT_OK

    mock_ui.display_success.assert_any_call("Logged in as dev@example.com.")
    mock_ui.display_success.assert_any_call("Logged out dev@example.com.")
