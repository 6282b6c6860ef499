"""
Media Archive
Blob storage for generated cover images and completed song audio
"""

import asyncio
import base64
from pathlib import Path
from typing import Any, Iterable, Optional, Union

import httpx

from ..core.config import get_settings
from ..core.errors import AudioFetchError
from ..core.logging import audio_logger
from ..workflow.types import Song

settings = get_settings()


class LocalBlobStore:
    """Flat key -> file storage under a media directory"""

    def __init__(self, root: Optional[Union[str, Path]] = None):
        self.root = Path(root or settings.MEDIA_PATH)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        # Keys are flat names such as "<run_id>.png"
        return self.root / Path(key).name

    async def put(self, key: str, data: bytes) -> None:
        await asyncio.to_thread(self._path(key).write_bytes, data)

    async def exists(self, key: str) -> bool:
        return await asyncio.to_thread(self._path(key).exists)

    async def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not await asyncio.to_thread(path.exists):
            return None
        return await asyncio.to_thread(path.read_bytes)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._path(key).unlink, missing_ok=True)


class MediaArchiver:
    """
    Mirrors step outputs into blob storage.

    ``image_base64`` is decoded to ``<run_id>.png``; every complete song with
    audio is downloaded to ``<music_id>.mp3`` unless that blob already exists.
    """

    def __init__(
        self,
        blobs: LocalBlobStore,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.blobs = blobs
        self._client = client
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS

    async def on_step_saved(self, run_id: str, step: str, value: Any) -> None:
        if step == "image_base64" and value:
            await self.archive_image(run_id, value)
        elif step == "songs" and value:
            await self.archive_songs(value)

    async def archive_image(self, run_id: str, image_base64: str) -> None:
        await self.blobs.put(f"{run_id}.png", base64.b64decode(image_base64))

    async def archive_songs(self, songs: Iterable[Song]) -> None:
        for song in songs:
            if not (song.complete and song.has_audio):
                continue

            key = f"{song.music_id}.mp3"
            if await self.blobs.exists(key):
                continue

            data = await self._download(song.audio)
            await self.blobs.put(key, data)
            audio_logger.logger.info(
                "Song archived",
                music_id=song.music_id,
                size_bytes=len(data)
            )

    async def _download(self, audio_url: str) -> bytes:
        try:
            if self._client is not None:
                response = await self._client.get(audio_url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout)) as client:
                    response = await client.get(audio_url)
        except httpx.RequestError as e:
            raise AudioFetchError(f"Failed to fetch song audio: {audio_url}: {e}") from e

        if not response.is_success:
            raise AudioFetchError(f"Failed to fetch song audio: {audio_url}")

        return response.content

    async def delete_run_media(self, run_id: str, regenerated_songs: Iterable[Song] = ()) -> None:
        """Remove a superseded run's image and the audio of songs it no longer owns"""
        await self.blobs.delete(f"{run_id}.png")
        for song in regenerated_songs:
            if song.complete and song.music_id:
                await self.blobs.delete(f"{song.music_id}.mp3")


__all__ = ["LocalBlobStore", "MediaArchiver"]
