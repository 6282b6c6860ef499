"""
Unit tests for audio fingerprint extraction
Range fetching, ID3 skipping, hashing and insufficient-data handling
"""
import hashlib

import httpx
import pytest

from smolgen.core.errors import AudioFetchError, InsufficientAudioDataError
from smolgen.services.audio_fingerprint import (
    audio_data_offset,
    extract_fingerprint,
    parse_audio_metadata,
)


def audio_bytes(length: int, seed: int = 0) -> bytes:
    # No 0xFF bytes, so no MPEG frame sync is ever found
    return bytes((i + seed) % 200 for i in range(length))


def id3_header(tag_size: int) -> bytes:
    syncsafe = bytes([
        (tag_size >> 21) & 0x7F,
        (tag_size >> 14) & 0x7F,
        (tag_size >> 7) & 0x7F,
        tag_size & 0x7F,
    ])
    return b"ID3\x04\x00\x00" + syncsafe


def mock_client(body: bytes, status_code: int = 206, requests: list = None) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        return httpx.Response(status_code, content=body[:32769])

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.unit
class TestAudioDataOffset:
    """Test ID3v2 header skipping"""

    def test_no_id3_header(self):
        assert audio_data_offset(audio_bytes(100)) == 0

    def test_short_data(self):
        assert audio_data_offset(b"ID3") == 0

    def test_syncsafe_size(self):
        data = id3_header(300) + bytes(300) + audio_bytes(100)
        assert audio_data_offset(data) == 310

    def test_syncsafe_bytes_are_masked(self):
        # High bits set in the size bytes are ignored
        data = b"ID3\x04\x00\x00" + bytes([0x80, 0x80, 0x81, 0x80]) + audio_bytes(200)
        assert audio_data_offset(data) == 10 + 128


@pytest.mark.unit
class TestExtractFingerprint:
    """Test fingerprint extraction over a ranged GET"""

    @pytest.mark.asyncio
    async def test_requests_a_byte_range(self):
        """Only the first 32KB are requested"""
        requests = []
        client = mock_client(audio_bytes(40000), requests=requests)

        await extract_fingerprint("https://cdn.example/a.mp3", client=client)

        assert len(requests) == 1
        assert requests[0].headers["Range"] == "bytes=0-32768"

    @pytest.mark.asyncio
    async def test_hashes_default_length_after_id3(self):
        tag = id3_header(50) + bytes(50)
        audio = audio_bytes(40000)
        client = mock_client(tag + audio)

        fp = await extract_fingerprint("https://cdn.example/a.mp3", client=client)

        assert fp.byte_length == 16384
        assert fp.hash == hashlib.sha256(audio[:16384]).hexdigest()
        assert fp.audio_url == "https://cdn.example/a.mp3"
        assert fp.duration is None

    @pytest.mark.asyncio
    async def test_fingerprint_is_deterministic(self):
        """Same byte range twice gives the same hash"""
        body = audio_bytes(40000)

        first = await extract_fingerprint("https://cdn.example/a.mp3", client=mock_client(body))
        second = await extract_fingerprint("https://cdn.example/a.mp3", client=mock_client(body))

        assert first.hash == second.hash

    @pytest.mark.asyncio
    async def test_comparison_requires_equal_byte_length(self):
        """Identical content only hashes equal when the hashed lengths match"""
        body = audio_bytes(40000)

        streaming = await extract_fingerprint(
            "https://cdn.example/a.mp3", max_audio_bytes=20000, client=mock_client(body)
        )
        default = await extract_fingerprint("https://cdn.example/b.mp3", client=mock_client(body))
        aligned = await extract_fingerprint(
            "https://cdn.example/b.mp3",
            max_audio_bytes=streaming.byte_length,
            min_bytes=0,
            client=mock_client(body)
        )

        assert streaming.hash != default.hash
        assert streaming.hash == aligned.hash

    @pytest.mark.asyncio
    async def test_insufficient_data_is_distinguishable(self):
        """A short prefix raises InsufficientAudioDataError, not a fetch error"""
        client = mock_client(audio_bytes(1000))

        with pytest.raises(InsufficientAudioDataError) as exc_info:
            await extract_fingerprint("https://cdn.example/a.mp3", client=client)

        assert exc_info.value.bytes_received == 1000
        assert exc_info.value.bytes_required == 32768
        assert exc_info.value.bytes_received < exc_info.value.bytes_required

    @pytest.mark.asyncio
    async def test_min_bytes_zero_accepts_partial_data(self):
        client = mock_client(audio_bytes(1000))

        fp = await extract_fingerprint("https://cdn.example/a.mp3", min_bytes=0, client=client)

        assert fp.byte_length == 1000

    @pytest.mark.asyncio
    async def test_empty_body_returns_none(self):
        client = mock_client(b"")

        assert await extract_fingerprint("https://cdn.example/a.mp3", min_bytes=0, client=client) is None

    @pytest.mark.asyncio
    async def test_header_only_returns_none(self):
        client = mock_client(id3_header(20) + bytes(20))

        assert await extract_fingerprint("https://cdn.example/a.mp3", min_bytes=0, client=client) is None

    @pytest.mark.asyncio
    async def test_http_error_raises_fetch_error(self):
        client = mock_client(b"not found", status_code=404)

        with pytest.raises(AudioFetchError):
            await extract_fingerprint("https://cdn.example/a.mp3", client=client)

    @pytest.mark.asyncio
    async def test_network_error_raises_fetch_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

        with pytest.raises(AudioFetchError):
            await extract_fingerprint("https://cdn.example/a.mp3", client=client)


@pytest.mark.unit
def test_metadata_parse_failure_is_swallowed():
    """Unparseable audio yields no metadata instead of an error"""
    assert parse_audio_metadata(audio_bytes(2000)) == {}
