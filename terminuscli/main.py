"""Main entry point for the terminuscli application.

Sets up the Typer CLI application, performs dependency injection (Composition
Root), defines CLI commands, and delegates execution to the CommandHandler.
"""

import asyncio
import logging
import signal
from typing import Annotated, Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx
import typer

from terminuscli import __version__

# --- Core Layer ---
from terminuscli.core.command_handler import EXIT_FAILURE, CommandHandler
from terminuscli.core.services.auth_service import AuthService
from terminuscli.core.services.backup_service import BackupService
from terminuscli.core.services.domain_service import DomainService
from terminuscli.core.services.environment_service import EnvironmentService
from terminuscli.core.services.site_service import SiteService
from terminuscli.core.services.workflow_service import WorkflowService

# --- Domain Layer ---
from terminuscli.domain.errors import (
    CredentialMissing,
    CredentialRefreshFailed,
    SessionStoreError,
    TerminusError,
)
from terminuscli.domain.models.common import SessionData

# --- Infrastructure Layer ---
from terminuscli.infrastructure.cli.display import OUTPUT_FORMATS, ConsoleDisplay
from terminuscli.infrastructure.config.settings import (
    get_base_url,
    get_config,
    get_float,
    get_int,
    get_session_file,
    get_tokens_dir,
    load_configuration,
)
from terminuscli.infrastructure.monitoring.logger_setup import (
    ApiTraceLogger,
    level_for_verbosity,
    setup_logging,
)
from terminuscli.infrastructure.resilience.call_scope import CallScope
from terminuscli.infrastructure.resilience.credentials import CredentialCell, CredentialProvider
from terminuscli.infrastructure.resilience.job_tracker import WorkflowTracker
from terminuscli.infrastructure.resilience.request_executor import RequestExecutor
from terminuscli.infrastructure.session.file_store import FileSessionStore

logger = logging.getLogger(__name__)

HandlerCall = Callable[[CommandHandler, CallScope], Awaitable[int]]


def _machine_token_source(store: FileSessionStore) -> Callable[[], Optional[str]]:
    """Returns a callable loading the machine token of the stored session's account."""
    def source() -> Optional[str]:
        session = store.load_session()
        if session is not None and session.machine_token:
            return session.machine_token
        if session is not None and session.email:
            return store.load_machine_token(session.email)
        saved = store.list_machine_tokens()
        if len(saved) == 1:
            return store.load_machine_token(saved[0])
        return None
    return source


def _persist_refreshed_session(store: FileSessionStore) -> Callable[[SessionData], None]:
    def persist(session: SessionData) -> None:
        previous = store.load_session()
        if previous is not None and not session.email:
            session.email = previous.email
        store.save_session(session)
    return persist


# --- Dependency Injection Container (Manual) ---

def create_dependencies(
    verbosity: int = 0,
    output_format: str = "table",
    quiet: bool = False,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    """Creates and wires up all dependencies for the application.

    This acts as the Composition Root.

    Args:
        verbosity: Count of -v flags.
        output_format: Output format for command results.
        quiet: Suppress informational output.
        http_client: Optional HTTP client (tests pass one with a MockTransport).
    """
    dependencies: Dict[str, Any] = {}

    # 1. Configuration and logging
    load_configuration()
    setup_logging(log_level=level_for_verbosity(verbosity), log_file=get_config('logging.file'))
    logger.debug("Configuration and logging initialized.")

    # 2. Infrastructure adapters
    dependencies['ui'] = ConsoleDisplay(output_format=output_format, quiet=quiet)
    store = FileSessionStore(get_session_file(), get_tokens_dir())
    dependencies['session_store'] = store

    credentials = CredentialCell()
    session = store.load_session()
    if session is not None:
        credentials.set(session.session)
    dependencies['credentials'] = credentials

    # 3. Resilience services
    executor = RequestExecutor(
        credentials=credentials,
        base_url=get_base_url(),
        http_client=http_client,
        user_agent=get_config('user_agent'),
        max_retries=get_int('retry_count', 5),
        initial_backoff_s=get_float('initial_backoff', 1.0),
        timeout_s=get_float('timeout', 86400.0),
        logger=ApiTraceLogger(logging.getLogger("terminuscli.http")),
    )
    dependencies['executor'] = executor
    dependencies['credential_provider'] = CredentialProvider(
        machine_token_source=_machine_token_source(store),
        exchange=executor.request_once,
        credentials=credentials,
        on_token_refreshed=_persist_refreshed_session(store),
    )

    # 4. Core services
    site_service = SiteService(executor)
    workflow_service = WorkflowService(executor, WorkflowTracker())
    dependencies['auth_service'] = AuthService(executor, dependencies['credential_provider'], store)
    dependencies['site_service'] = site_service
    dependencies['environment_service'] = EnvironmentService(executor, site_service)
    dependencies['backup_service'] = BackupService(executor, site_service)
    dependencies['domain_service'] = DomainService(executor, site_service)
    dependencies['workflow_service'] = workflow_service

    # 5. Command handler
    dependencies['command_handler'] = CommandHandler(
        auth_service=dependencies['auth_service'],
        site_service=site_service,
        environment_service=dependencies['environment_service'],
        backup_service=dependencies['backup_service'],
        domain_service=dependencies['domain_service'],
        workflow_service=workflow_service,
        session_store=store,
        ui=dependencies['ui'],
        poll_interval_s=get_float('poll_interval', 3.0),
        wait_timeout_s=get_float('wait_timeout', 1800.0),
    )
    logger.debug("All dependencies initialized successfully.")
    return dependencies


async def refresh_session_if_needed(dependencies: Dict[str, Any], scope: CallScope) -> None:
    """Renews the stored session when it is within five minutes of expiry.

    A failed renewal is not fatal: the stale token is kept and the command's
    own request reports the authentication error.
    """
    try:
        session = dependencies['session_store'].load_session()
        if session is None or not session.needs_renewal():
            return
        logger.info("Session expires soon, refreshing it with the saved machine token")
        await dependencies['credential_provider'].refresh_token(scope)
    except (CredentialMissing, CredentialRefreshFailed, SessionStoreError) as e:
        logger.warning(f"Could not refresh the session token: {e}")


# --- Typer App Definition ---
app = typer.Typer(
    name="terminus",
    help="terminus: command-line client for the Pantheon hosting control API.",
    add_completion=False,
    no_args_is_help=True,
)


# --- Helper for Running Async Commands ---

def _dependencies(ctx: typer.Context) -> Dict[str, Any]:
    state = ctx.ensure_object(dict)
    if 'dependencies' not in state:
        try:
            state['dependencies'] = create_dependencies(
                verbosity=state.get('verbose', 0),
                output_format=state.get('output_format', 'table'),
                quiet=state.get('quiet', False),
                http_client=state.get('http_client'),
            )
        except TerminusError as e:
            logger.error(f"Fatal Error during application initialization: {e}")
            ConsoleDisplay().display_error(f"Application Initialization Failed: {e}")
            raise typer.Exit(EXIT_FAILURE)
    return state['dependencies']


def run_command(ctx: typer.Context, call: HandlerCall, refresh: bool = True) -> None:
    """Runs a handler coroutine on a fresh event loop and exits with its code.

    SIGINT cancels the command's CallScope, which interrupts any backoff or
    poll sleep in progress.
    """
    dependencies = _dependencies(ctx)

    async def runner() -> int:
        scope = CallScope()
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, scope.cancel)
            installed = True
        except (NotImplementedError, RuntimeError):
            # not supported on this platform or thread
            installed = False
        try:
            if refresh:
                await refresh_session_if_needed(dependencies, scope)
            return await call(dependencies['command_handler'], scope)
        finally:
            if installed:
                loop.remove_signal_handler(signal.SIGINT)
            await dependencies['executor'].aclose()

    exit_code = asyncio.run(runner())
    if exit_code:
        raise typer.Exit(exit_code)


# --- CLI Options ---

SiteArg = Annotated[str, typer.Argument(help="Site name or UUID.")]
EnvArg = Annotated[str, typer.Argument(help="Environment (dev, test, live or a multidev).")]
NoWaitOption = Annotated[
    bool, typer.Option("--no-wait", help="Return once the workflow is started instead of waiting for it.")
]


def _split_site_env(site_env: str) -> Tuple[str, str]:
    site, sep, env = site_env.partition(".")
    if not sep or not site or not env:
        raise typer.BadParameter(f"Expected <site>.<env>, got '{site_env}'.")
    return site, env


SiteEnvArg = Annotated[str, typer.Argument(help="Site and environment as <site>.<env>.")]


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"terminus {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int, typer.Option("--verbose", "-v", count=True, help="-v info, -vv debug, -vvv HTTP trace.")
    ] = 0,
    output_format: Annotated[
        str, typer.Option("--format", help=f"Output format: {', '.join(OUTPUT_FORMATS)}.")
    ] = "table",
    quiet: Annotated[bool, typer.Option("--quiet", "-q", help="Suppress informational output.")] = False,
    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=_version_callback, is_eager=True, help="Show the version and exit."),
    ] = None,
):
    """Manage Pantheon sites, environments, backups, domains and workflows."""
    if output_format not in OUTPUT_FORMATS:
        raise typer.BadParameter(f"Unsupported format '{output_format}'.", param_hint="--format")
    state = ctx.ensure_object(dict)
    state.update({'verbose': verbose, 'output_format': output_format, 'quiet': quiet})


# --- auth ---

@app.command("auth:login")
def auth_login(
    ctx: typer.Context,
    machine_token: Annotated[
        Optional[str], typer.Option("--machine-token", envvar="TERMINUS_MACHINE_TOKEN", help="Machine token to log in with.")
    ] = None,
    email: Annotated[Optional[str], typer.Option("--email", help="Account e-mail of a saved machine token.")] = None,
):
    """Log in with a machine token (saved for later logins)."""
    run_command(ctx, lambda handler, scope: handler.handle_login(machine_token, email, scope), refresh=False)


@app.command("auth:logout")
def auth_logout(ctx: typer.Context):
    """Log out and forget the saved session and machine token."""
    run_command(ctx, lambda handler, scope: handler.handle_logout(), refresh=False)


@app.command("auth:whoami")
def auth_whoami(ctx: typer.Context):
    """Show the logged-in user."""
    run_command(ctx, lambda handler, scope: handler.handle_whoami(scope))


# --- site ---

@app.command("site:list")
def site_list(ctx: typer.Context):
    """List your sites."""
    run_command(ctx, lambda handler, scope: handler.handle_site_list(scope))


@app.command("site:info")
def site_info(ctx: typer.Context, site: SiteArg):
    """Show a site's details."""
    run_command(ctx, lambda handler, scope: handler.handle_site_info(site, scope))


# --- env ---

@app.command("env:list")
def env_list(ctx: typer.Context, site: SiteArg):
    """List a site's environments."""
    run_command(ctx, lambda handler, scope: handler.handle_env_list(site, scope))


@app.command("env:clear-cache")
def env_clear_cache(ctx: typer.Context, site_env: SiteEnvArg, no_wait: NoWaitOption = False):
    """Clear the caches of an environment."""
    site, env = _split_site_env(site_env)
    run_command(ctx, lambda handler, scope: handler.handle_env_clear_cache(site, env, not no_wait, scope))


@app.command("env:deploy")
def env_deploy(
    ctx: typer.Context,
    site_env: SiteEnvArg,
    updatedb: Annotated[bool, typer.Option("--updatedb", help="Run update.php after the deploy.")] = False,
    note: Annotated[str, typer.Option("--note", help="Deploy annotation.")] = "Deploy from terminus",
    clear_cache: Annotated[bool, typer.Option("--cc", help="Clear caches after the deploy.")] = False,
    no_wait: NoWaitOption = False,
):
    """Deploy code to the test or live environment."""
    site, env = _split_site_env(site_env)
    run_command(ctx, lambda handler, scope: handler.handle_env_deploy(
        site, env, updatedb=updatedb, note=note, clear_cache=clear_cache, wait=not no_wait, scope=scope
    ))


# --- backup ---

@app.command("backup:list")
def backup_list(ctx: typer.Context, site_env: SiteEnvArg):
    """List an environment's backups."""
    site, env = _split_site_env(site_env)
    run_command(ctx, lambda handler, scope: handler.handle_backup_list(site, env, scope))


@app.command("backup:create")
def backup_create(
    ctx: typer.Context,
    site_env: SiteEnvArg,
    element: Annotated[str, typer.Option("--element", help="all, code, database or files.")] = "all",
    keep_for: Annotated[int, typer.Option("--keep-for", min=0, help="Retention in days (0: platform default).")] = 0,
    no_wait: NoWaitOption = False,
):
    """Create a backup of an environment."""
    site, env = _split_site_env(site_env)
    run_command(ctx, lambda handler, scope: handler.handle_backup_create(
        site, env, keep_for_days=keep_for, element=element, wait=not no_wait, scope=scope
    ))


# --- domain ---

@app.command("domain:list")
def domain_list(ctx: typer.Context, site_env: SiteEnvArg):
    """List the domains of an environment."""
    site, env = _split_site_env(site_env)
    run_command(ctx, lambda handler, scope: handler.handle_domain_list(site, env, scope))


@app.command("domain:add")
def domain_add(ctx: typer.Context, site_env: SiteEnvArg, domain: Annotated[str, typer.Argument(help="Domain name.")]):
    """Attach a domain to an environment."""
    site, env = _split_site_env(site_env)
    run_command(ctx, lambda handler, scope: handler.handle_domain_add(site, env, domain, scope))


@app.command("domain:remove")
def domain_remove(ctx: typer.Context, site_env: SiteEnvArg, domain: Annotated[str, typer.Argument(help="Domain name.")]):
    """Detach a domain from an environment."""
    site, env = _split_site_env(site_env)
    run_command(ctx, lambda handler, scope: handler.handle_domain_remove(site, env, domain, scope))


# --- workflow ---

WorkflowArg = Annotated[str, typer.Argument(help="Workflow ID.")]


@app.command("workflow:list")
def workflow_list(ctx: typer.Context, site: SiteArg):
    """List a site's recent workflows."""
    run_command(ctx, lambda handler, scope: handler.handle_workflow_list(site, scope))


@app.command("workflow:info")
def workflow_info(ctx: typer.Context, site: SiteArg, workflow_id: WorkflowArg):
    """Show a workflow's status."""
    run_command(ctx, lambda handler, scope: handler.handle_workflow_info(site, workflow_id, scope))


@app.command("workflow:wait")
def workflow_wait(
    ctx: typer.Context,
    site: SiteArg,
    workflow_id: WorkflowArg,
    timeout: Annotated[
        Optional[float], typer.Option("--timeout", min=0, help="Seconds to wait before giving up.")
    ] = None,
):
    """Wait until a workflow finishes."""
    run_command(ctx, lambda handler, scope: handler.handle_workflow_wait(site, workflow_id, timeout, scope))


@app.command("workflow:watch")
def workflow_watch(ctx: typer.Context, site: SiteArg, workflow_id: WorkflowArg):
    """Print each status change of a workflow until it finishes."""
    run_command(ctx, lambda handler, scope: handler.handle_workflow_watch(site, workflow_id, scope))


# --- Main Execution Guard ---

def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    app()


if __name__ == "__main__":
    cli_entry_point()
