"""
Redis Artifact Store
Aggregate JSON of completed runs, used as the fallback source for retries
"""

import json
from typing import Any, Dict, Optional

import redis.asyncio as redis
from pydantic_core import to_jsonable_python

from ..core.config import get_settings
from ..core.errors import StoreError

settings = get_settings()


class RedisArtifactStore:
    """Plain key/value store keyed by run id"""

    def __init__(self, client: redis.Redis, key_prefix: Optional[str] = None):
        self.client = client
        self.key_prefix = key_prefix or settings.ARTIFACT_KEY_PREFIX

    def _key(self, run_id: str) -> str:
        return f"{self.key_prefix}:{run_id}"

    async def put(self, run_id: str, value: Any) -> None:
        try:
            await self.client.set(self._key(run_id), json.dumps(to_jsonable_python(value)))
        except redis.RedisError as e:
            raise StoreError(f"Failed to store artifact {run_id}: {e}") from e

    async def get(self, run_id: str) -> Optional[Dict[str, Any]]:
        try:
            raw = await self.client.get(self._key(run_id))
        except redis.RedisError as e:
            raise StoreError(f"Failed to read artifact {run_id}: {e}") from e

        return json.loads(raw) if raw else None

    async def delete(self, run_id: str) -> None:
        try:
            await self.client.delete(self._key(run_id))
        except redis.RedisError as e:
            raise StoreError(f"Failed to delete artifact {run_id}: {e}") from e
