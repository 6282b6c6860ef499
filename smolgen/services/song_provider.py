"""
Song Generator Provider
Lyrics and song generation through the song generator worker
"""

import time
from typing import Any, List, Optional

import httpx
from pydantic import ValidationError

from ..core.config import get_settings
from ..core.logging import provider_logger
from ..core.result import Result
from ..workflow.types import Lyrics, Song, SongSource

settings = get_settings()


def build_lyrics_prompt(prompt: str, description: str) -> str:
    return (
        "Write a song based off the following initial prompt and image description:\n\n"
        f"# Prompt\n{prompt}\n\n"
        f"# Description\n{description}\n\n"
        "# NOTES\n"
        "Focus on creativity, story and lyrical variety over strict adherence to the description."
    )


class SongGeneratorProvider:
    """
    Client for the song generator worker.

    ``POST /api/lyrics`` writes lyrics, ``POST /api/songs`` starts two songs
    and returns their ids, ``GET /api/songs?ids=a,b`` reports their status.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url or settings.SONG_GENERATOR_URL
        self.token = token if token is not None else settings.SONG_GENERATOR_TOKEN
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                headers=headers
            )
        return self._client

    async def _request(self, operation: str, method: str, url: str, **kwargs: Any) -> Result[Any]:
        start_time = time.time()
        provider_logger.log_request_start("song-generator", operation)

        try:
            response = await self._get_client().request(method, url, **kwargs)

            if not response.is_success:
                error = f"Song generator error: {response.status_code} - {response.text}"
                provider_logger.log_request_error("song-generator", operation, error=error)
                return Result.err(error)

            data = response.json()
            provider_logger.log_request_complete(
                "song-generator",
                operation,
                duration_ms=(time.time() - start_time) * 1000
            )
            return Result.ok(data)

        except (httpx.HTTPError, ValueError) as e:
            provider_logger.log_request_error("song-generator", operation, error=str(e))
            return Result.err(f"Song generator request failed: {e}")

    async def generate_lyrics(self, prompt: str, description: str) -> Result[Lyrics]:
        result = await self._request(
            "generate_lyrics",
            "POST",
            "/api/lyrics",
            json={"prompt": build_lyrics_prompt(prompt, description)}
        )
        if result.is_err():
            return result

        try:
            return Result.ok(Lyrics.model_validate(result.data))
        except ValidationError as e:
            return Result.err(f"Invalid lyrics response: {e}")

    async def generate_songs(
        self,
        prompt: str,
        description: str,
        lyrics: Lyrics,
        is_public: bool = True,
        is_instrumental: bool = False,
        source: SongSource = SongSource.AISONGGENERATOR,
    ) -> Result[List[str]]:
        """Start generation of two songs; data is their ids as strings"""

        body = {
            **lyrics.model_dump(),
            "prompt": prompt,
            "description": description,
            "public": is_public,
            "instrumental": is_instrumental,
            "source": SongSource(source).value,
        }
        result = await self._request("generate_songs", "POST", "/api/songs", json=body)
        if result.is_err():
            return result

        if not isinstance(result.data, list) or not result.data:
            return Result.err(f"Invalid song ids response: {result.data}")
        return Result.ok([str(song_id) for song_id in result.data])

    async def get_songs(
        self,
        song_ids: List[str],
        source: SongSource = SongSource.AISONGGENERATOR,
    ) -> Result[List[Song]]:
        result = await self._request(
            "get_songs",
            "GET",
            "/api/songs",
            params={
                "ids": ",".join(str(song_id) for song_id in song_ids),
                "source": SongSource(source).value
            }
        )
        if result.is_err():
            return result

        try:
            return Result.ok([Song.model_validate(song) for song in result.data])
        except (ValidationError, TypeError) as e:
            return Result.err(f"Invalid songs response: {e}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


__all__ = ["SongGeneratorProvider", "build_lyrics_prompt"]
