"""
Redis Step Store
Per-run write-ahead snapshots of workflow step outputs
"""

import json
from typing import Any, Dict, Optional

import redis.asyncio as redis
from pydantic_core import to_jsonable_python

from ..core.config import get_settings
from ..core.errors import StoreError
from ..core.logging import workflow_logger

settings = get_settings()


def _decode(value: Any) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


class RedisStepStore:
    """
    One Redis hash per run: field = step name, value = JSON of the step output.

    Saving overwrites a single field, so a retried step replaces its own
    snapshot without touching the others.
    """

    def __init__(self, client: redis.Redis, key_prefix: Optional[str] = None):
        self.client = client
        self.key_prefix = key_prefix or settings.STEP_KEY_PREFIX

    def _key(self, run_id: str) -> str:
        return f"{self.key_prefix}:{run_id}"

    async def save(self, run_id: str, step: str, value: Any) -> None:
        try:
            await self.client.hset(
                self._key(run_id),
                step,
                json.dumps(to_jsonable_python(value))
            )
        except redis.RedisError as e:
            raise StoreError(f"Failed to save step {step} for {run_id}: {e}") from e

    async def load(self, run_id: str) -> Dict[str, Any]:
        try:
            raw = await self.client.hgetall(self._key(run_id))
        except redis.RedisError as e:
            raise StoreError(f"Failed to load steps for {run_id}: {e}") from e

        return {_decode(step): json.loads(value) for step, value in raw.items()}

    async def flush(self, run_id: str) -> None:
        try:
            await self.client.delete(self._key(run_id))
        except redis.RedisError as e:
            raise StoreError(f"Failed to flush steps for {run_id}: {e}") from e

        workflow_logger.logger.info("Step store flushed", run_id=run_id)
