"""
Generation Orchestrator
Prompt -> image -> description -> lyrics -> safety verdict -> two songs,
persisted exactly once.

Every step output is saved to the run's step store before the next step
starts. A retry run (``payload.retry_id``) starts from the superseded run's
saved outputs and only calls providers for what is still missing.
"""

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Tuple, TypeVar

from ..core.config import SmolgenSettings, get_settings
from ..core.errors import IncompleteLyricsError, NonRetryableError
from ..core.logging import workflow_logger
from ..core.result import Result
from ..database.schemas import SmolCreate
from ..services.audio_fingerprint import extract_fingerprint
from ..services.workers_ai_provider import DESCRIBE_PROMPT
from .run_state import RunState, StepSaveHook, StepStore
from .song_matcher import Fingerprinter
from .song_polling import SongPoller
from .song_strategy import SongClient, decide_songs_strategy, resume_own_songs
from .steps import StepConfig, StepRunner, require
from .types import (
    GenerationResult,
    Lyrics,
    SafetyVerdict,
    Song,
    SongsDecision,
    WorkflowPayload,
    WorkflowSteps,
    is_marked_unsafe,
)

T = TypeVar("T")


class ImageClient(Protocol):
    async def generate_image(self, prompt: str) -> Result[str]: ...


class VisionClient(Protocol):
    async def describe_image(self, image_base64: str, prompt: str = DESCRIBE_PROMPT) -> Result[str]: ...

    async def check_nsfw(self, prompt: str, description: str, lyrics: str) -> Result[SafetyVerdict]: ...


class LyricsClient(SongClient, Protocol):
    async def generate_lyrics(self, prompt: str, description: str) -> Result[Lyrics]: ...


class ArtifactStore(Protocol):
    async def put(self, run_id: str, value: Any) -> None: ...

    async def get(self, run_id: str) -> Optional[Dict[str, Any]]: ...

    async def delete(self, run_id: str) -> None: ...


class MediaStore(StepSaveHook, Protocol):
    async def delete_run_media(self, run_id: str, regenerated_songs: List[Song] = ()) -> None: ...


class RecordStore(Protocol):
    async def insert_if_absent(self, smol: SmolCreate) -> bool: ...

    async def delete(self, smol_id: str) -> int: ...

    async def add_to_playlist(self, smol_id: str, title: str) -> bool: ...


@dataclass
class WorkflowServices:
    """External collaborators of a generation run"""

    images: ImageClient
    vision: VisionClient
    songs: LyricsClient
    step_store: StepStore
    artifacts: ArtifactStore
    records: RecordStore
    archiver: Optional[MediaStore] = None
    cache: Optional[Any] = None
    fingerprint: Fingerprinter = extract_fingerprint


class GenerationWorkflow:
    """Runs one generation end to end"""

    def __init__(
        self,
        services: WorkflowServices,
        runner: Optional[StepRunner] = None,
        config: Optional[StepConfig] = None,
        settings: Optional[SmolgenSettings] = None,
    ):
        self.services = services
        self.settings = settings or get_settings()
        self.runner = runner or StepRunner()
        self.config = config or StepConfig.from_settings(self.settings)

    async def run(self, run_id: str, payload: WorkflowPayload) -> GenerationResult:
        start_time = time.time()
        workflow_logger.log_run_start(run_id, retry_id=payload.retry_id)

        try:
            result = await self._run(run_id, payload)
        except Exception as e:
            workflow_logger.log_run_error(run_id, error=str(e), error_type=type(e).__name__)
            raise

        workflow_logger.log_run_complete(
            run_id,
            duration_ms=(time.time() - start_time) * 1000,
            song_ids=result.song_ids
        )
        return result

    async def _run(self, run_id: str, payload: WorkflowPayload) -> GenerationResult:
        runner, config = self.runner, self.config
        state = RunState(run_id, self.services.step_store, self.services.archiver)

        # A resumed run keeps the payload it already recorded
        own_steps = await state.load()
        payload = payload.merged_over(own_steps.payload)

        retry_steps: Optional[WorkflowSteps] = None
        if payload.retry_id:
            retry_steps, payload = await runner.do(
                "retry workflow",
                config,
                lambda: self.load_retry(payload)
            )

        if not payload.address:
            raise NonRetryableError("payload missing address")
        if not payload.prompt:
            raise NonRetryableError("payload missing prompt")

        known = (retry_steps or WorkflowSteps()).overlay(own_steps)

        prompt = payload.prompt

        await runner.do("save payload", config, lambda: state.save("payload", payload))

        image_base64 = await self._reuse_or_run(
            "generate image",
            known.image_base64,
            config.with_retries(self.settings.IMAGE_RETRY_LIMIT),
            lambda: self._generate_image(prompt)
        )
        await runner.do("save generated image", config, lambda: state.save("image_base64", image_base64))

        description = await self._reuse_or_run(
            "describe image",
            known.description,
            config,
            lambda: self._describe_image(image_base64)
        )
        await runner.do("save image description", config, lambda: state.save("description", description))

        lyrics = await self._reuse_or_run(
            "generate lyrics",
            known.lyrics,
            config,
            lambda: self._generate_lyrics(prompt, description)
        )
        await runner.do("save generated lyrics", config, lambda: state.save("lyrics", lyrics))

        nsfw = await self._reuse_or_run(
            "check nsfw",
            known.nsfw,
            config,
            lambda: self._check_nsfw(prompt, description, lyrics)
        )
        await runner.do("save nsfw check", config, lambda: state.save("nsfw", nsfw))

        decision = resume_own_songs(own_steps, retry_steps)
        if decision is not None:
            workflow_logger.logger.info("Resuming polling of songs this run started", song_ids=decision.song_ids)
        else:
            decision = await decide_songs_strategy(
                runner,
                config,
                state,
                self.services.songs,
                known,
                prompt,
                description,
                lyrics,
                is_public=payload.public,
                is_instrumental=payload.instrumental,
                fingerprint=self.services.fingerprint,
            )

        songs = await self._acquire_songs(state, decision)

        result = GenerationResult(
            payload=payload,
            image_base64=image_base64,
            description=description,
            lyrics=lyrics,
            nsfw=nsfw,
            song_ids=decision.song_ids,
            songs=songs,
        )

        await self._complete(state, result, retry_steps, decision)
        return result

    async def load_retry(self, payload: WorkflowPayload) -> Tuple[Optional[WorkflowSteps], WorkflowPayload]:
        """Steps of the superseded run, falling back to its archived artifact"""

        retry_id = payload.retry_id
        raw: Optional[Dict[str, Any]] = None

        try:
            raw = await self.services.step_store.load(retry_id)
        except Exception as e:
            workflow_logger.logger.warning(
                "Retry step store lookup failed, using archived artifact",
                retry_id=retry_id,
                error=str(e)
            )

        if not raw:
            raw = await self.services.artifacts.get(retry_id)

        retry_steps = WorkflowSteps.from_raw(raw)
        previous = retry_steps.payload if retry_steps else None
        return retry_steps, payload.merged_over(previous)

    async def _reuse_or_run(
        self,
        name: str,
        known: Optional[T],
        config: StepConfig,
        func: Callable[[], Awaitable[T]],
    ) -> T:
        if known:
            workflow_logger.log_step_skipped(name, reason="output already recorded")
            return known
        return await self.runner.do(name, config, func)

    async def _generate_image(self, prompt: str) -> str:
        return require(await self.services.images.generate_image(prompt), "generate image")

    async def _describe_image(self, image_base64: str) -> str:
        return require(
            await self.services.vision.describe_image(image_base64, DESCRIBE_PROMPT),
            "describe image"
        )

    async def _generate_lyrics(self, prompt: str, description: str) -> Lyrics:
        lyrics = require(
            await self.services.songs.generate_lyrics(prompt, description),
            "generate lyrics"
        )
        if not lyrics.is_complete():
            raise IncompleteLyricsError(lyrics.model_dump())
        return lyrics

    async def _check_nsfw(self, prompt: str, description: str, lyrics: Lyrics) -> SafetyVerdict:
        return require(
            await self.services.vision.check_nsfw(prompt, description, json.dumps(lyrics.lyrics)),
            "check nsfw"
        )

    async def _acquire_songs(self, state: RunState, decision: SongsDecision) -> List[Song]:
        if not decision.needs_polling:
            return decision.songs

        poller = SongPoller(
            self.runner,
            self.config,
            state,
            self.services.songs,
            decision.song_ids,
            source=decision.source,
            fingerprint=self.services.fingerprint,
            polling=self.settings.get_polling_config(),
        )
        return await poller.poll_until_complete()

    async def _complete(
        self,
        state: RunState,
        result: GenerationResult,
        retry_steps: Optional[WorkflowSteps],
        decision: SongsDecision,
    ) -> None:
        runner, config, services = self.runner, self.config, self.services
        run_id = state.run_id
        payload = result.payload

        smol = SmolCreate(
            id=run_id,
            title=result.lyrics.title,
            song_1=result.songs[0].music_id,
            song_2=result.songs[1].music_id,
            address=payload.address,
            # An unsafe verdict forces the smol private
            public=False if is_marked_unsafe(result.nsfw) else payload.public,
            instrumental=payload.instrumental,
        )

        await runner.do("save smol", config, lambda: services.records.insert_if_absent(smol))
        await runner.do("save artifact", config, lambda: services.artifacts.put(run_id, result))

        if payload.retry_id:
            await runner.do(
                "clean up retry",
                config,
                lambda: self._clean_up_retry(payload.retry_id, retry_steps, decision)
            )

        if payload.playlist:
            await runner.do(
                "add to playlist",
                config,
                lambda: services.records.add_to_playlist(run_id, payload.playlist)
            )

        await runner.do("purge caches", config, lambda: self._purge_caches(payload))
        await runner.do("flush run state", config, state.flush)

    async def _clean_up_retry(
        self,
        retry_id: str,
        retry_steps: Optional[WorkflowSteps],
        decision: SongsDecision,
    ) -> None:
        services = self.services

        try:
            await services.step_store.flush(retry_id)
        except Exception as e:
            workflow_logger.logger.warning(
                "Could not flush superseded run state",
                retry_id=retry_id,
                error=str(e)
            )

        await services.records.delete(retry_id)
        await services.artifacts.delete(retry_id)

        if services.archiver is not None:
            # Old audio is only orphaned when this run generated new songs
            orphaned = retry_steps.songs if decision.regenerated and retry_steps and retry_steps.songs else []
            await services.archiver.delete_run_media(retry_id, orphaned)

    async def _purge_caches(self, payload: WorkflowPayload) -> None:
        cache = self.services.cache
        if cache is None:
            return

        purges = [
            cache.purge_user_created(payload.address),
            cache.purge_public_smols(),
        ]
        if payload.playlist:
            purges.append(cache.purge_playlist(payload.playlist))
        await asyncio.gather(*purges)


__all__ = [
    "ImageClient",
    "VisionClient",
    "LyricsClient",
    "ArtifactStore",
    "MediaStore",
    "RecordStore",
    "WorkflowServices",
    "GenerationWorkflow",
]
