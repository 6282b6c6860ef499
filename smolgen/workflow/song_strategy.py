"""
Song Acquisition Strategy
Decides whether a run can reuse songs from the run it retries or must
generate new ones.
"""

from typing import Dict, List, Optional, Protocol

from ..core.errors import StepFailedError
from ..core.logging import workflow_logger
from ..core.result import Result
from ..services.audio_fingerprint import extract_fingerprint
from .run_state import RunState
from .song_matcher import Fingerprinter, match_songs_by_fingerprint
from .steps import StepConfig, StepRunner, require
from .types import (
    AudioFingerprint,
    Lyrics,
    Song,
    SongsDecision,
    SongSource,
    WorkflowSteps,
)


class SongClient(Protocol):
    async def generate_songs(
        self,
        prompt: str,
        description: str,
        lyrics: Lyrics,
        is_public: bool = True,
        is_instrumental: bool = False,
        source: SongSource = SongSource.AISONGGENERATOR,
    ) -> Result[List[str]]: ...

    async def get_songs(self, song_ids: List[str], source: SongSource = SongSource.AISONGGENERATOR) -> Result[List[Song]]: ...


def has_complete_songs(retry_steps: Optional[WorkflowSteps]) -> bool:
    """Two songs, two ids, every song complete with audio"""
    if retry_steps is None or not retry_steps.songs or not retry_steps.song_ids:
        return False
    return (
        len(retry_steps.songs) == 2
        and len(retry_steps.song_ids) == 2
        and all(song.complete and song.has_audio for song in retry_steps.songs)
    )


def has_pending_songs(retry_steps: Optional[WorkflowSteps]) -> bool:
    """Two songs, two ids, none of them failed"""
    if retry_steps is None or not retry_steps.songs or not retry_steps.song_ids:
        return False
    return (
        len(retry_steps.songs) == 2
        and len(retry_steps.song_ids) == 2
        and all(not song.failed for song in retry_steps.songs)
    )


async def _validate_order(
    runner: StepRunner,
    config: StepConfig,
    originals: Dict[str, AudioFingerprint],
    songs: List[Song],
    fingerprint: Fingerprinter,
) -> List[Song]:
    if len(originals) != 2:
        return songs

    matched = await runner.do(
        "validate song order",
        config,
        lambda: match_songs_by_fingerprint(originals, songs, fingerprint=fingerprint)
    )
    if matched.swapped:
        workflow_logger.logger.info("Correcting song order from previous run")
        return matched.songs
    return songs


async def _save_reused(
    runner: StepRunner,
    config: StepConfig,
    state: RunState,
    song_ids: List[str],
    songs: List[Song],
    originals: Dict[str, AudioFingerprint],
) -> None:
    await runner.do("save song ids", config, lambda: state.save("song_ids", song_ids))
    await runner.do("save songs", config, lambda: state.save("songs", songs))
    if originals:
        await runner.do(
            "save original fingerprints",
            config,
            lambda: state.save("original_fingerprints", originals)
        )


async def _save_new_song_ids(state: RunState, song_ids: List[str], source: SongSource) -> None:
    # Source first: recorded song ids always have a known source
    await state.save("song_source", source)
    await state.save("song_ids", song_ids)


def resume_own_songs(
    own_steps: WorkflowSteps,
    retry_steps: Optional[WorkflowSteps],
) -> Optional[SongsDecision]:
    """
    Songs this run already started before it was interrupted.

    Returns a polling decision for the recorded ids, or None when the run
    has no ids yet, already holds complete songs, or saw one fail.
    """

    if not own_steps.song_ids or has_complete_songs(own_steps):
        return None
    if own_steps.songs and any(song.failed for song in own_steps.songs):
        return None

    song_ids = list(own_steps.song_ids)
    reused = retry_steps is not None and list(retry_steps.song_ids or []) == song_ids

    return SongsDecision(
        needs_polling=True,
        songs=None,
        song_ids=song_ids,
        source=own_steps.song_source or SongSource.AISONGGENERATOR,
        regenerated=not reused,
    )


async def quick_check_songs(
    songs_client: SongClient,
    song_ids: List[str],
    source: SongSource = SongSource.AISONGGENERATOR,
) -> Result[List[Song]]:
    """
    One status call for previously generated songs.

    Never raises: anything short of every song complete with audio is an
    error result, and the caller regenerates.
    """

    try:
        result = await songs_client.get_songs(song_ids, source)
    except Exception as e:
        workflow_logger.logger.warning("Quick check failed with error, will regenerate", error=str(e))
        return Result.err("error")

    if result.is_err():
        return Result.err("error")

    current = result.data
    if any(song.failed for song in current):
        return Result.err("error")
    if len(current) == len(song_ids) and all(song.complete and song.has_audio for song in current):
        return Result.ok(current)
    return Result.err("incomplete")


async def generate_new_songs(
    runner: StepRunner,
    config: StepConfig,
    songs_client: SongClient,
    prompt: str,
    description: str,
    lyrics: Lyrics,
    is_public: bool,
    is_instrumental: bool,
):
    """Try the primary song source; fall back once its retries are spent"""

    async def generate(source: SongSource) -> List[str]:
        result = await songs_client.generate_songs(
            prompt,
            description,
            lyrics,
            is_public=is_public,
            is_instrumental=is_instrumental,
            source=source,
        )
        return require(result, f"generate songs ({source.value})")

    try:
        song_ids = await runner.do(
            "generate songs (aisonggenerator)",
            config,
            lambda: generate(SongSource.AISONGGENERATOR)
        )
        return song_ids, SongSource.AISONGGENERATOR
    except StepFailedError as e:
        workflow_logger.logger.warning("Primary song source failed, falling back", error=str(e))

    song_ids = await runner.do(
        "generate songs (diffrhythm)",
        config,
        lambda: generate(SongSource.DIFFRHYTHM)
    )
    return song_ids, SongSource.DIFFRHYTHM


async def decide_songs_strategy(
    runner: StepRunner,
    config: StepConfig,
    state: RunState,
    songs_client: SongClient,
    retry_steps: Optional[WorkflowSteps],
    prompt: str,
    description: str,
    lyrics: Lyrics,
    is_public: bool = True,
    is_instrumental: bool = False,
    fingerprint: Fingerprinter = extract_fingerprint,
) -> SongsDecision:
    """
    Pick how this run gets its two songs.

    1. Reuse complete songs recorded by the retried run.
    2. Ask the provider once whether the retried run's pending songs have
       finished since; reuse them if so.
    3. Generate new songs, which then need polling.
    """

    if has_complete_songs(retry_steps):
        song_ids = list(retry_steps.song_ids)
        originals = dict(retry_steps.original_fingerprints)
        songs = await _validate_order(runner, config, originals, list(retry_steps.songs), fingerprint)

        await _save_reused(runner, config, state, song_ids, songs, originals)
        workflow_logger.logger.info("Reusing complete songs from previous run", song_ids=song_ids)
        return SongsDecision(needs_polling=False, songs=songs, song_ids=song_ids)

    if has_pending_songs(retry_steps):
        song_ids = list(retry_steps.song_ids)
        source = SongSource.AISONGGENERATOR

        try:
            quick_check = await runner.do(
                "quick check retry songs",
                config.with_retries(0),
                lambda: quick_check_songs(songs_client, song_ids, source)
            )
        except StepFailedError as e:
            workflow_logger.logger.warning("Quick check step failed, will regenerate", error=str(e))
            quick_check = Result.err("error")

        if quick_check.is_ok():
            originals = dict(retry_steps.original_fingerprints)
            songs = await _validate_order(runner, config, originals, quick_check.data, fingerprint)

            await _save_reused(runner, config, state, song_ids, songs, originals)
            workflow_logger.logger.info("Retry songs completed, reusing", song_ids=song_ids)
            return SongsDecision(needs_polling=False, songs=songs, song_ids=song_ids, source=source)

        workflow_logger.logger.info("Retry songs not ready, regenerating", reason=quick_check.error)

    song_ids, source = await generate_new_songs(
        runner,
        config,
        songs_client,
        prompt,
        description,
        lyrics,
        is_public,
        is_instrumental,
    )

    await runner.do("save song ids", config, lambda: _save_new_song_ids(state, song_ids, source))

    return SongsDecision(
        needs_polling=True,
        songs=None,
        song_ids=song_ids,
        source=source,
        regenerated=True,
    )


__all__ = [
    "SongClient",
    "has_complete_songs",
    "has_pending_songs",
    "resume_own_songs",
    "quick_check_songs",
    "generate_new_songs",
    "decide_songs_strategy",
]
