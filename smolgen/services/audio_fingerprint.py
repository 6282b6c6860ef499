"""
Audio Fingerprint Extractor
Content hash of a streamed audio prefix, used to re-identify songs when the
provider reassigns their URLs
"""

import hashlib
import io
from typing import Optional

import httpx
from mutagen.mp3 import MP3

from ..core.config import get_settings
from ..core.errors import AudioFetchError, InsufficientAudioDataError
from ..core.logging import audio_logger
from ..workflow.types import AudioFingerprint

settings = get_settings()

# Minimum bytes needed for a reliable comparison
FINGERPRINT_MIN_BYTES = settings.FINGERPRINT_MIN_BYTES

# Audio bytes hashed when the caller does not ask for a specific length
FINGERPRINT_HASH_BYTES = settings.FINGERPRINT_HASH_BYTES

ID3_MAGIC = b"ID3"
ID3_HEADER_SIZE = 10


def audio_data_offset(data: bytes) -> int:
    """Offset of the first audio frame byte, skipping a leading ID3v2 tag"""

    if len(data) < ID3_HEADER_SIZE or data[:3] != ID3_MAGIC:
        return 0

    # Syncsafe integer: 7 significant bits per byte
    size = (
        ((data[6] & 0x7F) << 21)
        | ((data[7] & 0x7F) << 14)
        | ((data[8] & 0x7F) << 7)
        | (data[9] & 0x7F)
    )
    return ID3_HEADER_SIZE + size


def hash_audio_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def parse_audio_metadata(data: bytes) -> dict:
    """Best-effort duration/bitrate/sample rate; never raises"""

    try:
        info = MP3(io.BytesIO(data)).info
        return {
            "duration": info.length or None,
            "bitrate": info.bitrate or None,
            "sample_rate": info.sample_rate or None,
        }
    except Exception as e:
        audio_logger.log_fingerprint_warning(
            "Audio metadata parse failed, using hash only",
            error=str(e)
        )
        return {}


async def fetch_audio_prefix(
    audio_url: str,
    client: Optional[httpx.AsyncClient] = None,
    timeout: Optional[float] = None,
) -> bytes:
    """Fetch the first FINGERPRINT_MIN_BYTES of an audio resource"""

    timeout = timeout or settings.FINGERPRINT_TIMEOUT_SECONDS
    headers = {"Range": f"bytes=0-{FINGERPRINT_MIN_BYTES}"}

    try:
        if client is not None:
            response = await client.get(audio_url, headers=headers, timeout=timeout)
        else:
            async with httpx.AsyncClient(timeout=httpx.Timeout(timeout)) as http_client:
                response = await http_client.get(audio_url, headers=headers)
    except httpx.RequestError as e:
        raise AudioFetchError(f"Failed to fetch audio {audio_url}: {e}") from e

    if not response.is_success:
        raise AudioFetchError(
            f"Failed to fetch audio: {response.status_code} {response.reason_phrase}"
        )

    return response.content


async def extract_fingerprint(
    audio_url: str,
    max_audio_bytes: Optional[int] = None,
    min_bytes: int = FINGERPRINT_MIN_BYTES,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[AudioFingerprint]:
    """
    Extract a fingerprint and metadata from an audio URL.

    Args:
        audio_url: URL to fetch audio from
        max_audio_bytes: Exact number of post-header bytes to hash; pass the
            ``byte_length`` of another fingerprint to compare against it
        min_bytes: Minimum bytes that must be available. 0 accepts anything.
        client: Optional shared HTTP client

    Raises:
        InsufficientAudioDataError: Fewer than ``min_bytes`` bytes are
            available yet, the song is most likely still streaming
        AudioFetchError: Network failure, timeout or non-2xx response
    """

    data = await fetch_audio_prefix(audio_url, client=client)

    if len(data) < min_bytes:
        raise InsufficientAudioDataError(len(data), min_bytes)

    if not data:
        return None

    offset = audio_data_offset(data)
    bytes_to_hash = max_audio_bytes if max_audio_bytes is not None else FINGERPRINT_HASH_BYTES
    audio_data = data[offset:offset + bytes_to_hash]

    if not audio_data:
        return None

    metadata = parse_audio_metadata(data)

    fingerprint = AudioFingerprint(
        hash=hash_audio_bytes(audio_data),
        byte_length=len(audio_data),
        audio_url=audio_url,
        **metadata
    )

    audio_logger.log_fingerprint(
        audio_url=audio_url,
        byte_length=fingerprint.byte_length,
        duration=fingerprint.duration
    )

    return fingerprint


__all__ = [
    "FINGERPRINT_MIN_BYTES",
    "FINGERPRINT_HASH_BYTES",
    "audio_data_offset",
    "hash_audio_bytes",
    "parse_audio_metadata",
    "fetch_audio_prefix",
    "extract_fingerprint",
]
