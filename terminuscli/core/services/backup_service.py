"""Core service for environment backups."""

import logging
from typing import Any, Dict, List, Optional

from terminuscli.core.services.site_service import SiteService
from terminuscli.core.services.workflow_service import workflow_from_payload
from terminuscli.domain.errors import DecodeError
from terminuscli.domain.models.resources import Backup
from terminuscli.domain.models.workflow import Workflow
from terminuscli.infrastructure.resilience.call_scope import CallScope
from terminuscli.infrastructure.resilience.request_executor import RequestExecutor

logger = logging.getLogger(__name__)

BACKUP_ELEMENTS = ("all", "code", "database", "files")
SECONDS_PER_DAY = 86400


class BackupService:
    """Lists backups and creates new ones."""

    def __init__(self, executor: RequestExecutor, site_service: SiteService):
        self.executor = executor
        self.site_service = site_service

    async def list(self, site: str, env: str, scope: Optional[CallScope] = None) -> List[Backup]:
        site_id = await self.site_service.resolve_site_id(site, scope)
        data = await self.executor.call(
            "GET", f"/sites/{site_id}/environments/{env}/backups/catalog", scope=scope
        )
        # the catalog is a map keyed by archive name, older APIs return a list
        if isinstance(data, dict):
            entries = [dict(value, id=value.get("id") or key) for key, value in data.items() if isinstance(value, dict)]
        elif isinstance(data, list):
            entries = [item for item in data if isinstance(item, dict)]
        elif data is None:
            entries = []
        else:
            raise DecodeError("unexpected backup catalog payload")
        return [Backup.from_dict(entry) for entry in entries]

    async def create(
        self,
        site: str,
        env: str,
        keep_for_days: int = 0,
        element: str = "all",
        scope: Optional[CallScope] = None,
    ) -> Workflow:
        """Starts a backup of the environment.

        Args:
            element: "all" or one of "code", "database", "files".
            keep_for_days: Retention in days; 0 keeps the platform default.
        """
        if element not in BACKUP_ELEMENTS:
            raise ValueError(f"Invalid backup element '{element}'. Choose one of: {', '.join(BACKUP_ELEMENTS)}")
        site_id = await self.site_service.resolve_site_id(site, scope)

        params: Dict[str, Any] = {
            "code": element in ("all", "code"),
            "database": element in ("all", "database"),
            "files": element in ("all", "files"),
            "entry_type": "backup",
        }
        if keep_for_days > 0:
            params["ttl"] = keep_for_days * SECONDS_PER_DAY

        body = {"type": "do_export", "params": params}
        data = await self.executor.call(
            "POST", f"/sites/{site_id}/environments/{env}/workflows", body, scope
        )
        workflow = workflow_from_payload(data)
        logger.info(f"Started backup ({element}) of {site_id}.{env}: workflow {workflow.id}")
        return workflow
