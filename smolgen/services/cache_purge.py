"""
Cache Purge
Cloudflare purge-by-tag client; failures never propagate
"""

from typing import List, Optional

import httpx

from ..core.config import get_settings
from ..core.logging import workflow_logger

settings = get_settings()


class CachePurger:
    """Invalidates edge caches so new smols show up immediately"""

    BASE_URL = "https://api.cloudflare.com/client/v4"

    def __init__(
        self,
        api_token: Optional[str] = None,
        zone_id: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_token = api_token if api_token is not None else settings.CF_API_TOKEN
        self.zone_id = zone_id if zone_id is not None else settings.CF_ZONE_ID
        self._client = client

    async def purge_tags(self, tags: List[str]) -> bool:
        if not self.api_token or not self.zone_id:
            workflow_logger.logger.warning(
                "Cache purge skipped: CF_API_TOKEN or CF_ZONE_ID not configured"
            )
            return False

        if not tags:
            workflow_logger.logger.warning("Cache purge skipped: no tags provided")
            return False

        url = f"{self.BASE_URL}/zones/{self.zone_id}/purge_cache"
        headers = {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

        try:
            if self._client is not None:
                response = await self._client.post(url, headers=headers, json={"tags": tags})
            else:
                async with httpx.AsyncClient(timeout=30.0) as client:
                    response = await client.post(url, headers=headers, json={"tags": tags})

            if not response.is_success:
                workflow_logger.logger.error(
                    "Cache purge failed",
                    status_code=response.status_code,
                    body=response.text
                )
                return False

            success = bool(response.json().get("success"))
            workflow_logger.logger.info("Cache purged", tags=tags, success=success)
            return success

        except (httpx.HTTPError, ValueError) as e:
            workflow_logger.logger.error("Cache purge error", tags=tags, error=str(e))
            return False

    async def purge_user_created(self, address: str) -> bool:
        return await self.purge_tags([f"user:{address}:created"])

    async def purge_public_smols(self) -> bool:
        return await self.purge_tags(["public-smols"])

    async def purge_playlist(self, title: str) -> bool:
        return await self.purge_tags([f"playlist:{title}"])


__all__ = ["CachePurger"]
