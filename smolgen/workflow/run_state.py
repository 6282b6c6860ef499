"""
Run state handle: the write-ahead step log of one workflow run.
"""

from typing import Any, Dict, Optional, Protocol

from ..core.logging import workflow_logger
from .types import WorkflowSteps


class StepStore(Protocol):
    async def save(self, run_id: str, step: str, value: Any) -> None: ...

    async def load(self, run_id: str) -> Dict[str, Any]: ...

    async def flush(self, run_id: str) -> None: ...


class StepSaveHook(Protocol):
    async def on_step_saved(self, run_id: str, step: str, value: Any) -> None: ...


class RunState:
    """
    Durable step outputs of a single run.

    Every save is written through to the step store before returning, then
    handed to the optional hook (media archiving). A failing hook fails the
    save, so the enclosing step is retried.
    """

    def __init__(self, run_id: str, store: StepStore, hook: Optional[StepSaveHook] = None):
        self.run_id = run_id
        self.store = store
        self.hook = hook

    async def save(self, step: str, value: Any) -> None:
        await self.store.save(self.run_id, step, value)
        if self.hook is not None:
            await self.hook.on_step_saved(self.run_id, step, value)

    async def load_raw(self) -> Dict[str, Any]:
        return await self.store.load(self.run_id)

    async def load(self) -> WorkflowSteps:
        return WorkflowSteps.from_raw(await self.load_raw()) or WorkflowSteps()

    async def flush(self) -> None:
        await self.store.flush(self.run_id)
        workflow_logger.logger.debug("Run state flushed", run_id=self.run_id)


__all__ = ["RunState", "StepStore", "StepSaveHook"]
