"""Core service for custom domains attached to an environment."""

import logging
from typing import List, Optional

from terminuscli.core.services.site_service import SiteService
from terminuscli.domain.errors import DecodeError
from terminuscli.domain.models.resources import Domain
from terminuscli.infrastructure.resilience.call_scope import CallScope
from terminuscli.infrastructure.resilience.request_executor import RequestExecutor

logger = logging.getLogger(__name__)


class DomainService:
    """Lists, adds and removes domains.

    add() raises ConflictError if the domain is already attached and remove()
    raises NotFoundError if it is already absent; callers decide whether
    those count as failures.
    """

    def __init__(self, executor: RequestExecutor, site_service: SiteService):
        self.executor = executor
        self.site_service = site_service

    async def _base_path(self, site: str, env: str, scope: Optional[CallScope]) -> str:
        site_id = await self.site_service.resolve_site_id(site, scope)
        return f"/sites/{site_id}/environments/{env}/domains"

    async def list(self, site: str, env: str, scope: Optional[CallScope] = None) -> List[Domain]:
        path = await self._base_path(site, env, scope)
        data = await self.executor.call("GET", path, scope=scope)
        if not isinstance(data, list):
            raise DecodeError("expected a list of domains")
        return [Domain.from_dict(item) for item in data if isinstance(item, dict)]

    async def add(self, site: str, env: str, domain: str, scope: Optional[CallScope] = None) -> Domain:
        path = await self._base_path(site, env, scope)
        data = await self.executor.call("PUT", f"{path}/{domain}", scope=scope)
        logger.info(f"Added domain {domain} to {site}.{env}")
        if isinstance(data, dict):
            return Domain.from_dict(data)
        return Domain(id=domain, domain=domain, environment_id=env)

    async def remove(self, site: str, env: str, domain: str, scope: Optional[CallScope] = None) -> None:
        path = await self._base_path(site, env, scope)
        await self.executor.call("DELETE", f"{path}/{domain}", scope=scope)
        logger.info(f"Removed domain {domain} from {site}.{env}")
