"""
Polling Coordinator
Waits for the two songs to stream and then complete, correcting slot order
whenever the provider reassigns audio URLs between polls.
"""

from typing import Dict, List, Optional

from ..core.config import get_settings
from ..core.errors import (
    InsufficientAudioDataError,
    NonRetryableError,
    SongsNotReadyError,
)
from ..core.logging import audio_logger, workflow_logger
from ..services.audio_fingerprint import extract_fingerprint
from .run_state import RunState
from .song_matcher import Fingerprinter, match_songs_by_fingerprint
from .song_strategy import SongClient
from .steps import StepConfig, StepRunner, require
from .types import AudioFingerprint, Song, SongSource

settings = get_settings()

STREAMING = "streaming"
COMPLETE = "complete"


async def _fingerprint_new_url(
    state: RunState,
    song: Song,
    attempts: Dict[str, int],
    fingerprint: Fingerprinter,
    max_attempts: int,
) -> Optional[AudioFingerprint]:
    try:
        return await fingerprint(song.audio)
    except InsufficientAudioDataError as e:
        attempt = attempts.get(song.music_id, 0) + 1
        attempts[song.music_id] = attempt
        await state.save("fingerprint_attempts", attempts)

        audio_logger.log_fingerprint_warning(
            "Song still buffering",
            music_id=song.music_id,
            attempt=attempt,
            max_attempts=max_attempts,
            error=str(e)
        )

        if attempt < max_attempts:
            raise

    # Out of patience: short songs may never reach the byte threshold
    return await fingerprint(song.audio, min_bytes=0)


async def detect_and_correct_swaps(
    state: RunState,
    songs: List[Song],
    fingerprint: Fingerprinter = extract_fingerprint,
    max_attempts: Optional[int] = None,
) -> List[Song]:
    """
    Fingerprint every new or changed audio URL and reorder songs on a swap.

    The first fingerprint seen for a music_id is frozen as its original.
    ``InsufficientAudioDataError`` propagates so the poll step backs off,
    until the persisted attempt count allows a partial fingerprint.
    """

    max_attempts = max_attempts or settings.MAX_FINGERPRINT_ATTEMPTS

    current = await state.load()
    originals = dict(current.original_fingerprints)
    last_known_urls = dict(current.last_known_urls)
    attempts = dict(current.fingerprint_attempts)

    state_changed = False
    urls_changed = False

    for song in songs:
        if not song.audio:
            continue

        previous_url = last_known_urls.get(song.music_id)
        if previous_url == song.audio:
            continue

        urls_changed = True
        audio_logger.log_url_change(song.music_id, previous_url=previous_url, audio_url=song.audio)

        fp = await _fingerprint_new_url(state, song, attempts, fingerprint, max_attempts)
        if fp is not None:
            if song.music_id not in originals:
                originals[song.music_id] = fp
                audio_logger.logger.info(
                    "Captured original fingerprint",
                    music_id=song.music_id,
                    byte_length=fp.byte_length
                )
            if attempts.pop(song.music_id, None) is not None:
                state_changed = True

        last_known_urls[song.music_id] = song.audio
        state_changed = True

    if urls_changed and len(originals) == 2:
        matched = await match_songs_by_fingerprint(originals, songs, fingerprint=fingerprint)
        if matched.swapped:
            workflow_logger.logger.info("Reordering songs based on fingerprint matching")
            songs = matched.songs
            last_known_urls = {song.music_id: song.audio for song in songs if song.audio}
            state_changed = True

    if state_changed:
        await state.save("original_fingerprints", originals)
        await state.save("last_known_urls", last_known_urls)
        await state.save("fingerprint_attempts", attempts)

    return songs


class SongPoller:
    """Polls one run's songs until they are complete"""

    def __init__(
        self,
        runner: StepRunner,
        config: StepConfig,
        state: RunState,
        songs_client: SongClient,
        song_ids: List[str],
        source: SongSource = SongSource.AISONGGENERATOR,
        fingerprint: Fingerprinter = extract_fingerprint,
        polling: Optional[dict] = None,
    ):
        self.runner = runner
        self.config = config
        self.state = state
        self.songs_client = songs_client
        self.song_ids = song_ids
        self.source = source
        self.fingerprint = fingerprint
        self.polling = polling or settings.get_polling_config()

    async def poll(self, mode: str) -> List[Song]:
        """One status check; raises while songs are not in the state ``mode`` waits for"""

        songs = require(
            await self.songs_client.get_songs(self.song_ids, self.source),
            "get songs"
        )

        for song in songs:
            if song.failed:
                await self.state.save("songs", songs)
                raise NonRetryableError(
                    f"Song {song.music_id or 'unknown'} has negative status: {song.status}"
                )

        if not any(song.has_audio for song in songs):
            raise SongsNotReadyError("Songs missing audio")

        songs = await detect_and_correct_swaps(
            self.state,
            songs,
            fingerprint=self.fingerprint,
            max_attempts=self.polling["max_fingerprint_attempts"],
        )

        await self.state.save("songs", songs)

        if mode == STREAMING:
            missing = [f"{s.music_id}: status={s.status}" for s in songs if not s.has_audio]
            if missing:
                raise SongsNotReadyError(f"Songs still waiting for audio: {'; '.join(missing)}")
            return songs

        incomplete = [
            f"{s.music_id}: status={s.status}, audio={s.has_audio}"
            for s in songs if not s.complete
        ]
        if incomplete:
            raise SongsNotReadyError(f"Songs still streaming: {'; '.join(incomplete)}")
        return songs

    async def poll_until_complete(self) -> List[Song]:
        await self.runner.sleep("wait for songs to start streaming", self.polling["streaming_warmup"])

        streaming_songs = await self.runner.do(
            "wait for streaming",
            self.config.with_retries(self.polling["streaming_retries"]),
            lambda: self.poll(STREAMING)
        )

        if all(song.complete for song in streaming_songs):
            workflow_logger.logger.info("Songs already complete during streaming poll, skipping wait")
            return streaming_songs

        await self.runner.sleep("wait for songs to complete", self.polling["completion_warmup"])

        return await self.runner.do(
            "get songs",
            self.config.with_retries(self.polling["completion_retries"]),
            lambda: self.poll(COMPLETE)
        )


__all__ = ["STREAMING", "COMPLETE", "SongPoller", "detect_and_correct_swaps"]
