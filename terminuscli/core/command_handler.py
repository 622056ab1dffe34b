"""Command Handler: Orchestrates CLI command execution.

Receives commands from the main entry point (main.py), delegates the work to
the resource services and turns results and failures into display calls.
Every handler returns the process exit code.
"""

import logging
from typing import Awaitable, Callable, List, Optional, Sequence

from terminuscli.core.services.auth_service import AuthService
from terminuscli.core.services.backup_service import BackupService
from terminuscli.core.services.domain_service import DomainService
from terminuscli.core.services.environment_service import EnvironmentService
from terminuscli.core.services.site_service import SiteService
from terminuscli.core.services.workflow_service import WorkflowService
from terminuscli.domain.errors import (
    Canceled,
    CredentialMissing,
    TerminusError,
    deepest_message,
    is_conflict,
    is_not_found,
)
from terminuscli.domain.interfaces.session_store import SessionStore
from terminuscli.domain.interfaces.user_interface import UserInterface
from terminuscli.domain.models.common import OutputField
from terminuscli.domain.models.workflow import StatusSignature, Workflow
from terminuscli.infrastructure.resilience.call_scope import CallScope
from terminuscli.infrastructure.resilience.job_tracker import (
    DEFAULT_POLL_INTERVAL_S,
    DEFAULT_WAIT_TIMEOUT_S,
    WaitOptions,
    WatchOptions,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CANCELED = 130


class CommandHandler:
    """Handles incoming commands and delegates to appropriate services."""

    def __init__(
        self,
        auth_service: AuthService,
        site_service: SiteService,
        environment_service: EnvironmentService,
        backup_service: BackupService,
        domain_service: DomainService,
        workflow_service: WorkflowService,
        session_store: SessionStore,
        ui: UserInterface,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        wait_timeout_s: float = DEFAULT_WAIT_TIMEOUT_S,
    ):
        """Initializes the CommandHandler with required services."""
        self.auth_service = auth_service
        self.site_service = site_service
        self.environment_service = environment_service
        self.backup_service = backup_service
        self.domain_service = domain_service
        self.workflow_service = workflow_service
        self.session_store = session_store
        self.ui = ui
        self.poll_interval_s = poll_interval_s
        self.wait_timeout_s = wait_timeout_s

    # --- Helpers ---

    async def _run(self, action: str, body: Callable[[], Awaitable[int]]) -> int:
        """Runs a command body, reporting failures as 'Failed to <action>: <cause>'."""
        try:
            return await body()
        except Canceled as e:
            logger.info(f"{action} interrupted: {e}")
            self.ui.display_warning(f"Canceled: {e}")
            return EXIT_CANCELED
        except (TerminusError, ValueError) as e:
            logger.error(f"Failed to {action}: {e}")
            self.ui.display_error(f"Failed to {action}: {deepest_message(e)}")
            return EXIT_FAILURE

    def _current_user_id(self) -> str:
        session = self.session_store.load_session()
        if session is None or not session.user_id:
            raise CredentialMissing("You are not logged in. Run auth:login first.")
        return session.user_id

    def _show_list(self, rows: List[Sequence[OutputField]], title: str) -> None:
        self.ui.display_table(rows, title=title, empty_message=f"No {title.lower()} found.")

    async def _finish_workflow(
        self,
        site_id: str,
        workflow: Workflow,
        wait: bool,
        scope: Optional[CallScope],
    ) -> int:
        """Waits for a freshly started workflow unless --no-wait was given."""
        if not wait:
            self.ui.display_info(f"Started workflow {workflow.id} ({workflow.description or workflow.type}).")
            return EXIT_OK

        last: List[Optional[StatusSignature]] = [None]

        def on_progress(current: Workflow) -> None:
            signature = current.status_signature()
            if signature != last[0] and not current.is_finished:
                last[0] = signature
                self.ui.display_progress(
                    f"{current.description or current.type}: {current.current_operation or 'running'}"
                )

        options = WaitOptions(
            poll_interval_s=self.poll_interval_s,
            timeout_s=self.wait_timeout_s,
            on_progress=on_progress,
        )
        if workflow.is_finished:
            final = workflow
        else:
            final = await self.workflow_service.wait(site_id, workflow.id, options, scope)
        return self._report_workflow(final)

    def _report_workflow(self, workflow: Workflow) -> int:
        if workflow.is_successful:
            self.ui.display_success(workflow.message or f"{workflow.type} succeeded.")
            return EXIT_OK
        self.ui.display_error(f"Workflow {workflow.id} {workflow.result or 'failed'}: {workflow.message}")
        return EXIT_FAILURE

    # --- auth ---

    async def handle_login(
        self, machine_token: Optional[str], email: Optional[str], scope: Optional[CallScope] = None
    ) -> int:
        async def body() -> int:
            session = await self.auth_service.login(machine_token, email, scope)
            self.ui.display_success(f"Logged in as {session.email or session.user_id}.")
            return EXIT_OK
        return await self._run("log in", body)

    async def handle_logout(self) -> int:
        async def body() -> int:
            email = self.auth_service.logout()
            self.ui.display_success(f"Logged out{' ' + email if email else ''}.")
            return EXIT_OK
        return await self._run("log out", body)

    async def handle_whoami(self, scope: Optional[CallScope] = None) -> int:
        async def body() -> int:
            user = await self.auth_service.whoami(scope=scope)
            self.ui.display_record(user.output_fields(), title="User")
            return EXIT_OK
        return await self._run("look up the current user", body)

    # --- site ---

    async def handle_site_list(self, scope: Optional[CallScope] = None) -> int:
        async def body() -> int:
            sites = await self.site_service.list(self._current_user_id(), scope)
            self._show_list([site.output_fields() for site in sites], "Sites")
            return EXIT_OK
        return await self._run("list sites", body)

    async def handle_site_info(self, site: str, scope: Optional[CallScope] = None) -> int:
        async def body() -> int:
            info = await self.site_service.get(site, scope)
            self.ui.display_record(info.output_fields(), title=info.name or site)
            return EXIT_OK
        return await self._run(f"get site {site}", body)

    # --- env ---

    async def handle_env_list(self, site: str, scope: Optional[CallScope] = None) -> int:
        async def body() -> int:
            envs = await self.environment_service.list(site, scope)
            self._show_list([env.output_fields() for env in envs], "Environments")
            return EXIT_OK
        return await self._run("list environments", body)

    async def handle_env_clear_cache(
        self, site: str, env: str, wait: bool = True, scope: Optional[CallScope] = None
    ) -> int:
        async def body() -> int:
            workflow = await self.environment_service.clear_cache(site, env, scope)
            site_id = workflow.site_id or await self.site_service.resolve_site_id(site, scope)
            return await self._finish_workflow(site_id, workflow, wait, scope)
        return await self._run(f"clear cache on {site}.{env}", body)

    async def handle_env_deploy(
        self,
        site: str,
        env: str,
        updatedb: bool = False,
        note: str = "",
        clear_cache: bool = False,
        wait: bool = True,
        scope: Optional[CallScope] = None,
    ) -> int:
        async def body() -> int:
            workflow = await self.environment_service.deploy(
                site, env, updatedb=updatedb, note=note, clear_cache=clear_cache, scope=scope
            )
            site_id = workflow.site_id or await self.site_service.resolve_site_id(site, scope)
            return await self._finish_workflow(site_id, workflow, wait, scope)
        return await self._run(f"deploy to {site}.{env}", body)

    # --- backup ---

    async def handle_backup_list(self, site: str, env: str, scope: Optional[CallScope] = None) -> int:
        async def body() -> int:
            backups = await self.backup_service.list(site, env, scope)
            self._show_list([backup.output_fields() for backup in backups], "Backups")
            return EXIT_OK
        return await self._run("list backups", body)

    async def handle_backup_create(
        self,
        site: str,
        env: str,
        keep_for_days: int = 0,
        element: str = "all",
        wait: bool = True,
        scope: Optional[CallScope] = None,
    ) -> int:
        async def body() -> int:
            workflow = await self.backup_service.create(
                site, env, keep_for_days=keep_for_days, element=element, scope=scope
            )
            site_id = workflow.site_id or await self.site_service.resolve_site_id(site, scope)
            return await self._finish_workflow(site_id, workflow, wait, scope)
        return await self._run(f"create backup of {site}.{env}", body)

    # --- domain ---

    async def handle_domain_list(self, site: str, env: str, scope: Optional[CallScope] = None) -> int:
        async def body() -> int:
            domains = await self.domain_service.list(site, env, scope)
            self._show_list([domain.output_fields() for domain in domains], "Domains")
            return EXIT_OK
        return await self._run("list domains", body)

    async def handle_domain_add(
        self, site: str, env: str, domain: str, scope: Optional[CallScope] = None
    ) -> int:
        async def body() -> int:
            try:
                await self.domain_service.add(site, env, domain, scope)
            except TerminusError as e:
                if not is_conflict(e):
                    raise
                self.ui.display_info(f"Domain {domain} is already present on {site}.{env}.")
                return EXIT_OK
            self.ui.display_success(f"Added {domain} to {site}.{env}.")
            return EXIT_OK
        return await self._run(f"add domain {domain}", body)

    async def handle_domain_remove(
        self, site: str, env: str, domain: str, scope: Optional[CallScope] = None
    ) -> int:
        async def body() -> int:
            try:
                await self.domain_service.remove(site, env, domain, scope)
            except TerminusError as e:
                if not is_not_found(e):
                    raise
                self.ui.display_info(f"Domain {domain} is already absent from {site}.{env}.")
                return EXIT_OK
            self.ui.display_success(f"Removed {domain} from {site}.{env}.")
            return EXIT_OK
        return await self._run(f"remove domain {domain}", body)

    # --- workflow ---

    async def handle_workflow_list(self, site: str, scope: Optional[CallScope] = None) -> int:
        async def body() -> int:
            site_id = await self.site_service.resolve_site_id(site, scope)
            workflows = await self.workflow_service.list(site_id, scope)
            self._show_list([workflow.output_fields() for workflow in workflows], "Workflows")
            return EXIT_OK
        return await self._run("list workflows", body)

    async def handle_workflow_info(
        self, site: str, workflow_id: str, scope: Optional[CallScope] = None
    ) -> int:
        async def body() -> int:
            site_id = await self.site_service.resolve_site_id(site, scope)
            workflow = await self.workflow_service.get(site_id, workflow_id, scope)
            self.ui.display_record(workflow.output_fields(), title=f"Workflow {workflow.id}")
            return EXIT_OK
        return await self._run(f"get workflow {workflow_id}", body)

    async def handle_workflow_wait(
        self,
        site: str,
        workflow_id: str,
        timeout_s: Optional[float] = None,
        scope: Optional[CallScope] = None,
    ) -> int:
        async def body() -> int:
            site_id = await self.site_service.resolve_site_id(site, scope)
            options = WaitOptions(
                poll_interval_s=self.poll_interval_s,
                timeout_s=timeout_s if timeout_s is not None else self.wait_timeout_s,
            )
            workflow = await self.workflow_service.wait(site_id, workflow_id, options, scope)
            return self._report_workflow(workflow)
        return await self._run(f"wait for workflow {workflow_id}", body)

    async def handle_workflow_watch(
        self, site: str, workflow_id: str, scope: Optional[CallScope] = None
    ) -> int:
        async def body() -> int:
            site_id = await self.site_service.resolve_site_id(site, scope)

            def on_update(workflow: Workflow) -> None:
                self.ui.display_progress(
                    f"[{workflow.status}] {workflow.current_operation or workflow.description} (step {workflow.step})"
                )

            options = WatchOptions(poll_interval_s=self.poll_interval_s, on_update=on_update)
            workflow = await self.workflow_service.watch(site_id, workflow_id, options, scope)
            return self._report_workflow(workflow)
        return await self._run(f"watch workflow {workflow_id}", body)
