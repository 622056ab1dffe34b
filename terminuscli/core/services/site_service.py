"""Core service for site lookups.

Other services accept a site as either its UUID or its machine name; this
service owns the name-to-UUID resolution they share.
"""

import logging
from typing import Any, List, Optional

from terminuscli.domain.errors import DecodeError
from terminuscli.domain.models.resources import Site, is_uuid
from terminuscli.infrastructure.resilience.call_scope import CallScope
from terminuscli.infrastructure.resilience.request_executor import RequestExecutor

logger = logging.getLogger(__name__)


class SiteService:
    """Lists and fetches sites."""

    def __init__(self, executor: RequestExecutor):
        self.executor = executor

    async def list(self, user_id: str, scope: Optional[CallScope] = None) -> List[Site]:
        """Lists the sites the user is a member of (paged)."""
        memberships = await self.executor.get_paged(f"/users/{user_id}/memberships/sites", scope=scope)
        sites: List[Site] = []
        for entry in memberships:
            if not isinstance(entry, dict):
                raise DecodeError(f"failed to decode site: unexpected {type(entry).__name__}")
            # memberships wrap the site; some deployments return sites directly
            site_data: Any = entry.get("site", entry)
            if isinstance(site_data, dict):
                sites.append(Site.from_dict(site_data))
        logger.debug(f"Found {len(sites)} sites for user {user_id}")
        return sites

    async def resolve_site_id(self, site: str, scope: Optional[CallScope] = None) -> str:
        """Returns the UUID for a site name (UUIDs are returned unchanged)."""
        if is_uuid(site):
            return site
        data = await self.executor.call("GET", f"/site-names/{site}", scope=scope)
        if not isinstance(data, dict) or not data.get("id"):
            raise DecodeError(f"site name lookup for '{site}' returned no id")
        logger.debug(f"Resolved site '{site}' to {data['id']}")
        return str(data["id"])

    async def get(self, site: str, scope: Optional[CallScope] = None) -> Site:
        site_id = await self.resolve_site_id(site, scope)
        data = await self.executor.call("GET", f"/sites/{site_id}", scope=scope)
        if not isinstance(data, dict):
            raise DecodeError(f"unexpected site payload for {site_id}")
        return Site.from_dict(data)
