"""
Smolgen Testing Configuration
Pytest fixtures and in-memory collaborators for the generation workflow
"""
import json
from typing import Any, Dict, List, Optional

import pytest
from pydantic_core import to_jsonable_python

from smolgen.core.errors import InsufficientAudioDataError
from smolgen.core.result import Result
from smolgen.workflow.steps import StepConfig, StepRunner
from smolgen.workflow.types import AudioFingerprint, Lyrics, NsfwVerdict, Song, SongSource


def _json_round_trip(value: Any) -> Any:
    return json.loads(json.dumps(to_jsonable_python(value)))


class FakeStepStore:
    """Step store keeping JSON values per run, like the Redis hash"""

    def __init__(self):
        self.runs: Dict[str, Dict[str, Any]] = {}
        self.saves: List[tuple] = []
        self.flushed: List[str] = []
        self.fail_load_for: set = set()

    async def save(self, run_id: str, step: str, value: Any) -> None:
        self.runs.setdefault(run_id, {})[step] = _json_round_trip(value)
        self.saves.append((run_id, step))

    async def load(self, run_id: str) -> Dict[str, Any]:
        if run_id in self.fail_load_for:
            raise ConnectionError("step store unavailable")
        return dict(self.runs.get(run_id, {}))

    async def flush(self, run_id: str) -> None:
        self.runs.pop(run_id, None)
        self.flushed.append(run_id)

    def steps_saved(self, run_id: str) -> List[str]:
        return [step for saved_run, step in self.saves if saved_run == run_id]


class FakeArtifactStore:
    def __init__(self):
        self.items: Dict[str, Any] = {}
        self.deleted: List[str] = []

    async def put(self, run_id: str, value: Any) -> None:
        self.items[run_id] = _json_round_trip(value)

    async def get(self, run_id: str) -> Optional[Dict[str, Any]]:
        return self.items.get(run_id)

    async def delete(self, run_id: str) -> None:
        self.items.pop(run_id, None)
        self.deleted.append(run_id)


class FakeRecordStore:
    """Relational store with insert-if-absent semantics"""

    def __init__(self):
        self.rows: Dict[str, Any] = {}
        self.insert_calls = 0
        self.deleted: List[str] = []
        self.playlists: set = set()

    async def insert_if_absent(self, smol) -> bool:
        self.insert_calls += 1
        if smol.id in self.rows:
            return False
        self.rows[smol.id] = smol
        return True

    async def delete(self, smol_id: str) -> int:
        self.deleted.append(smol_id)
        return 1 if self.rows.pop(smol_id, None) is not None else 0

    async def add_to_playlist(self, smol_id: str, title: str) -> bool:
        if (smol_id, title) in self.playlists:
            return False
        self.playlists.add((smol_id, title))
        return True


class FakeArchiver:
    def __init__(self):
        self.saved: List[tuple] = []
        self.deleted_media: List[tuple] = []

    async def on_step_saved(self, run_id: str, step: str, value: Any) -> None:
        self.saved.append((run_id, step))

    async def delete_run_media(self, run_id: str, regenerated_songs=()) -> None:
        self.deleted_media.append((run_id, [song.music_id for song in regenerated_songs]))


class FakeCache:
    def __init__(self):
        self.purged: List[str] = []

    async def purge_user_created(self, address: str) -> bool:
        self.purged.append(f"user:{address}:created")
        return True

    async def purge_public_smols(self) -> bool:
        self.purged.append("public-smols")
        return True

    async def purge_playlist(self, title: str) -> bool:
        self.purged.append(f"playlist:{title}")
        return True


class FakeImages:
    def __init__(self, image_base64: str = "aW1hZ2U="):
        self.image_base64 = image_base64
        self.calls = 0

    async def generate_image(self, prompt: str) -> Result[str]:
        self.calls += 1
        return Result.ok(self.image_base64)


class FakeVision:
    def __init__(self, verdict=None):
        self.verdict = verdict if verdict is not None else NsfwVerdict(safe=True)
        self.describe_calls = 0
        self.describe_prompts: List[str] = []
        self.nsfw_calls = 0

    async def describe_image(self, image_base64: str, prompt: str = "") -> Result[str]:
        self.describe_calls += 1
        self.describe_prompts.append(prompt)
        return Result.ok("A small robot stands alone under neon rain.")

    async def check_nsfw(self, prompt: str, description: str, lyrics: str):
        self.nsfw_calls += 1
        return Result.ok(self.verdict)


class FakeSongs:
    """
    Song provider driven by scripted responses.

    ``status_responses`` is consumed one entry per ``get_songs`` call; the
    last entry repeats. An entry may be an exception instance to raise.
    """

    def __init__(
        self,
        lyrics_responses: Optional[List[Lyrics]] = None,
        status_responses: Optional[List[Any]] = None,
        song_ids: Optional[Dict[SongSource, List[str]]] = None,
        failing_sources: Optional[set] = None,
    ):
        self.lyrics_responses = lyrics_responses or [complete_lyrics()]
        self.status_responses = status_responses or []
        self.song_ids = song_ids or {
            SongSource.AISONGGENERATOR: ["A", "B"],
            SongSource.DIFFRHYTHM: ["D1", "D2"],
        }
        self.failing_sources = failing_sources or set()
        self.lyrics_calls = 0
        self.generate_calls: List[SongSource] = []
        self.status_calls = 0
        self.status_sources: List[SongSource] = []

    async def generate_lyrics(self, prompt: str, description: str) -> Result[Lyrics]:
        index = min(self.lyrics_calls, len(self.lyrics_responses) - 1)
        self.lyrics_calls += 1
        return Result.ok(self.lyrics_responses[index])

    async def generate_songs(self, prompt, description, lyrics, is_public=True, is_instrumental=False,
                             source=SongSource.AISONGGENERATOR) -> Result[List[str]]:
        self.generate_calls.append(source)
        if source in self.failing_sources:
            return Result.err(f"{source.value} unavailable")
        return Result.ok(list(self.song_ids[source]))

    async def get_songs(self, song_ids, source=SongSource.AISONGGENERATOR) -> Result[List[Song]]:
        index = min(self.status_calls, len(self.status_responses) - 1)
        self.status_calls += 1
        self.status_sources.append(source)
        response = self.status_responses[index]
        if isinstance(response, Exception):
            raise response
        return Result.ok([song.model_copy() for song in response])


class FakeFingerprinter:
    """
    Fingerprints by URL: ``contents`` maps an audio URL to the identity of
    the audio behind it, ``durations`` to its duration. ``buffering`` maps
    a URL to how many more calls should report insufficient data.
    """

    def __init__(self, contents=None, durations=None, buffering=None, failing=None):
        self.contents: Dict[str, str] = contents or {}
        self.durations: Dict[str, float] = durations or {}
        self.buffering: Dict[str, int] = buffering or {}
        self.failing: set = failing or set()
        self.calls: List[tuple] = []

    async def __call__(self, audio_url, max_audio_bytes=None, min_bytes=32768):
        self.calls.append((audio_url, max_audio_bytes, min_bytes))

        if audio_url in self.failing:
            raise ConnectionError(f"cannot fetch {audio_url}")

        if self.buffering.get(audio_url, 0) > 0 and min_bytes > 0:
            self.buffering[audio_url] -= 1
            raise InsufficientAudioDataError(1024, min_bytes)

        byte_length = max_audio_bytes or 16384
        content = self.contents.get(audio_url, audio_url)
        return AudioFingerprint(
            hash=f"{content}:{byte_length}",
            byte_length=byte_length,
            audio_url=audio_url,
            duration=self.durations.get(audio_url),
        )


def complete_lyrics(**overrides) -> Lyrics:
    data = {
        "title": "Rust and Rain",
        "lyrics": "[Verse]\nMetal heart in the rain",
        "style": ["synthwave", "melancholic"],
    }
    data.update(overrides)
    return Lyrics(**data)


def song(music_id: str, status: int = 4, audio: Optional[str] = None) -> Song:
    return Song(music_id=music_id, status=status, audio=audio)


class RecordingSleep:
    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def runner(sleeper):
    """Step runner that never actually sleeps"""
    return StepRunner(sleep=sleeper)


@pytest.fixture
def step_config():
    return StepConfig(retries=5, delay=10.0, backoff="exponential", timeout=5.0)


@pytest.fixture
def step_store():
    return FakeStepStore()


@pytest.fixture
def fingerprinter():
    return FakeFingerprinter(
        contents={"urlX": "X", "urlY": "Y"},
        durations={"urlX": 120.0, "urlY": 95.0},
    )


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: mark test as unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
