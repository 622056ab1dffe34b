"""Core service for site environments (dev, test, live, multidevs)."""

import logging
from typing import List, Optional

from terminuscli.core.services.site_service import SiteService
from terminuscli.core.services.workflow_service import workflow_from_payload
from terminuscli.domain.errors import DecodeError
from terminuscli.domain.models.resources import Environment
from terminuscli.domain.models.workflow import Workflow
from terminuscli.infrastructure.resilience.call_scope import CallScope
from terminuscli.infrastructure.resilience.request_executor import RequestExecutor

logger = logging.getLogger(__name__)


class EnvironmentService:
    """Lists environments and starts environment workflows."""

    def __init__(self, executor: RequestExecutor, site_service: SiteService):
        self.executor = executor
        self.site_service = site_service

    async def list(self, site: str, scope: Optional[CallScope] = None) -> List[Environment]:
        site_id = await self.site_service.resolve_site_id(site, scope)
        data = await self.executor.call("GET", f"/sites/{site_id}/environments", scope=scope)
        # keyed by environment id
        if not isinstance(data, dict):
            raise DecodeError("expected a map of environments")
        return [
            Environment.from_dict(env, env_id=env_id)
            for env_id, env in data.items()
            if isinstance(env, dict)
        ]

    async def get(self, site: str, env: str, scope: Optional[CallScope] = None) -> Environment:
        site_id = await self.site_service.resolve_site_id(site, scope)
        data = await self.executor.call("GET", f"/sites/{site_id}/environments/{env}", scope=scope)
        if not isinstance(data, dict):
            raise DecodeError(f"unexpected environment payload for {env}")
        return Environment.from_dict(data, env_id=env)

    async def _start_workflow(
        self, site_id: str, env: str, workflow_type: str, params: dict, scope: Optional[CallScope]
    ) -> Workflow:
        body = {"type": workflow_type, "params": params}
        data = await self.executor.call(
            "POST", f"/sites/{site_id}/environments/{env}/workflows", body, scope
        )
        workflow = workflow_from_payload(data)
        logger.info(f"Started {workflow_type} on {site_id}.{env}: workflow {workflow.id}")
        return workflow

    async def clear_cache(self, site: str, env: str, scope: Optional[CallScope] = None) -> Workflow:
        site_id = await self.site_service.resolve_site_id(site, scope)
        return await self._start_workflow(site_id, env, "clear_cache", {}, scope)

    async def deploy(
        self,
        site: str,
        env: str,
        updatedb: bool = False,
        note: str = "",
        clear_cache: bool = False,
        scope: Optional[CallScope] = None,
    ) -> Workflow:
        """Deploys code from the upstream environment into env (test or live)."""
        site_id = await self.site_service.resolve_site_id(site, scope)
        params = {"updatedb": updatedb, "annotation": note, "clear_cache": clear_cache}
        return await self._start_workflow(site_id, env, "deploy", params, scope)
