"""Core service for workflows: lookup, creation and completion tracking.

Mutating resource calls return a Workflow; this service fetches its status
and hands the polling to the WorkflowTracker.
"""

import logging
from typing import Any, Dict, List, Optional

from terminuscli.domain.errors import DecodeError
from terminuscli.domain.models.workflow import Workflow
from terminuscli.infrastructure.resilience.call_scope import CallScope
from terminuscli.infrastructure.resilience.job_tracker import WaitOptions, WatchOptions, WorkflowTracker
from terminuscli.infrastructure.resilience.request_executor import RequestExecutor

logger = logging.getLogger(__name__)


def workflow_from_payload(data: Any) -> Workflow:
    if not isinstance(data, dict):
        raise DecodeError(f"unexpected workflow payload: {type(data).__name__}")
    return Workflow.from_dict(data)


class WorkflowService:
    """Fetches, creates and tracks workflows."""

    def __init__(self, executor: RequestExecutor, tracker: Optional[WorkflowTracker] = None):
        self.executor = executor
        self.tracker = tracker or WorkflowTracker()

    async def list(self, site_id: str, scope: Optional[CallScope] = None) -> List[Workflow]:
        data = await self.executor.call("GET", f"/sites/{site_id}/workflows", scope=scope)
        if not isinstance(data, list):
            raise DecodeError("expected a list of workflows")
        return [workflow_from_payload(item) for item in data]

    async def get(self, site_id: str, workflow_id: str, scope: Optional[CallScope] = None) -> Workflow:
        data = await self.executor.call("GET", f"/sites/{site_id}/workflows/{workflow_id}", scope=scope)
        return workflow_from_payload(data)

    async def get_for_user(self, user_id: str, workflow_id: str, scope: Optional[CallScope] = None) -> Workflow:
        data = await self.executor.call("GET", f"/users/{user_id}/workflows/{workflow_id}", scope=scope)
        return workflow_from_payload(data)

    async def create_for_site(
        self,
        site_id: str,
        workflow_type: str,
        params: Optional[Dict[str, Any]] = None,
        scope: Optional[CallScope] = None,
    ) -> Workflow:
        body = {"type": workflow_type, "params": params or {}}
        data = await self.executor.call("POST", f"/sites/{site_id}/workflows", body, scope)
        workflow = workflow_from_payload(data)
        logger.info(f"Created {workflow_type} workflow {workflow.id} on site {site_id}")
        return workflow

    async def wait(
        self,
        site_id: str,
        workflow_id: str,
        options: Optional[WaitOptions] = None,
        scope: Optional[CallScope] = None,
    ) -> Workflow:
        """Blocks until the site workflow is terminal. See WorkflowTracker.wait."""
        async def fetch_status(poll_scope: CallScope) -> Workflow:
            return await self.get(site_id, workflow_id, poll_scope)

        return await self.tracker.wait(fetch_status, options, scope)

    async def wait_for_user(
        self,
        user_id: str,
        workflow_id: str,
        options: Optional[WaitOptions] = None,
        scope: Optional[CallScope] = None,
    ) -> Workflow:
        async def fetch_status(poll_scope: CallScope) -> Workflow:
            return await self.get_for_user(user_id, workflow_id, poll_scope)

        return await self.tracker.wait(fetch_status, options, scope)

    async def watch(
        self,
        site_id: str,
        workflow_id: str,
        options: WatchOptions,
        scope: Optional[CallScope] = None,
    ) -> Workflow:
        async def fetch_status(poll_scope: CallScope) -> Workflow:
            return await self.get(site_id, workflow_id, poll_scope)

        return await self.tracker.watch(fetch_status, options, scope)
