"""
Typed containers shared across the generation workflow.

These models live in their own module so the fingerprinting, matching,
polling and orchestration stages can import them without circular imports.
Every model round-trips through JSON because the step store persists them.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class SongSource(str, Enum):
    """Song generation backends exposed by the song provider"""

    AISONGGENERATOR = "aisonggenerator"
    DIFFRHYTHM = "diffrhythm"


# Song status codes reported by the provider
SONG_STATUS_COMPLETE = 4


class Song(BaseModel):
    """One generated audio track as reported by the song provider"""

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    music_id: str
    status: int = 0
    audio: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status < 0

    @property
    def complete(self) -> bool:
        return self.status >= SONG_STATUS_COMPLETE

    @property
    def has_audio(self) -> bool:
        return bool(self.audio)


class AudioFingerprint(BaseModel):
    """Content hash plus best-effort metadata for one audio URL"""

    hash: str
    byte_length: int
    audio_url: str
    duration: Optional[float] = None
    bitrate: Optional[float] = None
    sample_rate: Optional[int] = None


class Lyrics(BaseModel):
    """Lyrics payload returned by the lyrics generator"""

    model_config = ConfigDict(extra="allow")

    title: Optional[str] = None
    lyrics: Optional[str] = None
    style: List[str] = Field(default_factory=list)

    def is_complete(self) -> bool:
        return bool(self.title) and bool(self.lyrics) and len(self.style) >= 2


class NsfwVerdict(BaseModel):
    """Structured safety verdict"""

    model_config = ConfigDict(extra="allow")

    safe: bool = True
    categories: List[str] = Field(default_factory=list)


SafetyVerdict = Union[NsfwVerdict, str]


def is_marked_unsafe(verdict: Optional[SafetyVerdict]) -> bool:
    """Only a structured verdict with ``safe == False`` counts as unsafe"""
    return isinstance(verdict, NsfwVerdict) and verdict.safe is False


class WorkflowPayload(BaseModel):
    """Immutable input of a generation run"""

    model_config = ConfigDict(extra="ignore")

    address: Optional[str] = None
    prompt: Optional[str] = None
    public: bool = True
    instrumental: bool = False
    retry_id: Optional[str] = None
    playlist: Optional[str] = None

    def merged_over(self, previous: Optional["WorkflowPayload"]) -> "WorkflowPayload":
        """Fields given explicitly here win; absent fields inherit from ``previous``"""
        if previous is None:
            return self
        merged = previous.model_dump()
        merged.update(self.model_dump(exclude_unset=True, exclude_none=True))
        return WorkflowPayload(**merged)


class WorkflowSteps(BaseModel):
    """Everything a run has durably recorded, keyed by step name"""

    payload: Optional[WorkflowPayload] = None
    image_base64: Optional[str] = None
    description: Optional[str] = None
    lyrics: Optional[Lyrics] = None
    nsfw: Optional[SafetyVerdict] = None
    song_ids: Optional[List[str]] = None
    song_source: Optional[SongSource] = None
    songs: Optional[List[Song]] = None
    original_fingerprints: Dict[str, AudioFingerprint] = Field(default_factory=dict)
    last_known_urls: Dict[str, str] = Field(default_factory=dict)
    fingerprint_attempts: Dict[str, int] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    @classmethod
    def from_raw(cls, raw: Optional[Dict[str, Any]]) -> Optional["WorkflowSteps"]:
        if not raw:
            return None
        return cls.model_validate(raw)

    def overlay(self, newer: Optional["WorkflowSteps"]) -> "WorkflowSteps":
        """Return a copy where every step recorded in ``newer`` replaces ours"""
        if newer is None:
            return self
        data = self.model_dump()
        data.update(newer.model_dump(exclude_unset=True))
        return WorkflowSteps.model_validate(data)


class MatchResult(BaseModel):
    """Outcome of fingerprint matching"""

    songs: List[Song]
    swapped: bool = False


class SongsDecision(BaseModel):
    """How the songs for this run were acquired"""

    needs_polling: bool
    songs: Optional[List[Song]] = None
    song_ids: List[str]
    source: SongSource = SongSource.AISONGGENERATOR
    regenerated: bool = False

    model_config = ConfigDict(coerce_numbers_to_str=True)


class GenerationResult(BaseModel):
    """Aggregate artifact stored once a run completes"""

    payload: WorkflowPayload
    image_base64: str
    description: str
    lyrics: Lyrics
    nsfw: Optional[SafetyVerdict] = None
    song_ids: List[str]
    songs: List[Song]

    model_config = ConfigDict(coerce_numbers_to_str=True)


__all__ = [
    "SongSource",
    "SONG_STATUS_COMPLETE",
    "Song",
    "AudioFingerprint",
    "Lyrics",
    "NsfwVerdict",
    "SafetyVerdict",
    "is_marked_unsafe",
    "WorkflowPayload",
    "WorkflowSteps",
    "MatchResult",
    "SongsDecision",
    "GenerationResult",
]
