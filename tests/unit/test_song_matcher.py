"""
Unit tests for fingerprint-based song matching
"""
import pytest

from conftest import FakeFingerprinter, song
from smolgen.workflow.song_matcher import match_songs_by_fingerprint
from smolgen.workflow.types import AudioFingerprint


def original(content: str, url: str, byte_length: int = 16384, duration: float = None) -> AudioFingerprint:
    return AudioFingerprint(
        hash=f"{content}:{byte_length}",
        byte_length=byte_length,
        audio_url=url,
        duration=duration,
    )


@pytest.mark.unit
class TestHashMatching:
    """Test the primary hash pass"""

    @pytest.mark.asyncio
    async def test_swapped_urls_are_corrected(self, fingerprinter):
        """Reversed content is moved back to its original slot"""
        originals = {"A": original("X", "urlX"), "B": original("Y", "urlY")}
        candidates = [song("A", audio="urlY"), song("B", audio="urlX")]

        result = await match_songs_by_fingerprint(originals, candidates, fingerprint=fingerprinter)

        assert result.swapped is True
        assert [s.music_id for s in result.songs] == ["A", "B"]
        assert [s.audio for s in result.songs] == ["urlX", "urlY"]

    @pytest.mark.asyncio
    async def test_unswapped_is_noop(self, fingerprinter):
        originals = {"A": original("X", "urlX"), "B": original("Y", "urlY")}
        candidates = [song("A", audio="urlX"), song("B", audio="urlY")]

        result = await match_songs_by_fingerprint(originals, candidates, fingerprint=fingerprinter)

        assert result.swapped is False
        assert result.songs == candidates

    @pytest.mark.asyncio
    async def test_originals_recorded_in_reverse_order(self, fingerprinter):
        """Slots follow the candidates, whatever order the originals were recorded in"""
        originals = {"B": original("Y", "urlY"), "A": original("X", "urlX")}

        in_place = await match_songs_by_fingerprint(
            originals, [song("A", audio="urlX"), song("B", audio="urlY")], fingerprint=fingerprinter
        )
        assert in_place.swapped is False
        assert [s.music_id for s in in_place.songs] == ["A", "B"]

        crossed = await match_songs_by_fingerprint(
            originals, [song("A", audio="urlY"), song("B", audio="urlX")], fingerprint=fingerprinter
        )
        assert crossed.swapped is True
        assert [(s.music_id, s.audio) for s in crossed.songs] == [("A", "urlX"), ("B", "urlY")]

    @pytest.mark.asyncio
    async def test_candidates_hashed_at_original_length(self):
        """Candidates are fingerprinted over exactly the original's byte_length"""
        fingerprint = FakeFingerprinter(contents={"urlX": "X", "urlY": "Y"})
        originals = {"A": original("X", "urlX", byte_length=9000), "B": original("Y", "urlY", byte_length=9000)}
        candidates = [song("A", audio="urlX"), song("B", audio="urlY")]

        result = await match_songs_by_fingerprint(originals, candidates, fingerprint=fingerprint)

        assert result.swapped is False
        assert all(max_bytes == 9000 and min_bytes == 0 for _, max_bytes, min_bytes in fingerprint.calls)

    @pytest.mark.asyncio
    async def test_candidate_failure_is_skipped(self):
        """One failing candidate does not abort matching"""
        fingerprint = FakeFingerprinter(contents={"urlX": "X"}, failing={"urlBroken"})
        originals = {"A": original("X", "urlX"), "B": original("Y", "urlY")}
        candidates = [song("A", audio="urlBroken"), song("B", audio="urlX")]

        result = await match_songs_by_fingerprint(originals, candidates, fingerprint=fingerprint)

        assert len(result.songs) == 2
        assert result.songs[0].music_id == "A"
        assert result.songs[0].audio == "urlX"


@pytest.mark.unit
class TestDurationMatching:
    """Test the two-song duration fallback"""

    @pytest.mark.asyncio
    async def test_duration_proximity_detects_swap(self):
        fingerprint = FakeFingerprinter(
            contents={"url1": "new1", "url2": "new2"},
            durations={"url1": 95.0, "url2": 121.0},
        )
        originals = {
            "A": original("X", "urlX", duration=120.0),
            "B": original("Y", "urlY", duration=94.0),
        }
        candidates = [song("A", audio="url1"), song("B", audio="url2")]

        result = await match_songs_by_fingerprint(originals, candidates, fingerprint=fingerprint)

        assert result.swapped is True
        assert [s.music_id for s in result.songs] == ["A", "B"]
        assert [s.audio for s in result.songs] == ["url2", "url1"]

    @pytest.mark.asyncio
    async def test_duration_failure_keeps_order(self):
        fingerprint = FakeFingerprinter(failing={"url1"})
        originals = {
            "A": original("X", "urlX", duration=120.0),
            "B": original("Y", "urlY", duration=94.0),
        }
        candidates = [song("A", audio="url1"), song("B", audio="url2")]

        result = await match_songs_by_fingerprint(originals, candidates, fingerprint=fingerprint)

        assert result.swapped is False
        assert [s.audio for s in result.songs] == ["url1", "url2"]


@pytest.mark.unit
class TestMatchingSafetyNets:
    """Test fallbacks that never fabricate a mapping"""

    @pytest.mark.asyncio
    async def test_single_unmatched_keeps_provider_assignment(self, fingerprinter):
        originals = {"A": original("X", "urlX"), "B": original("Y", "urlY"), "C": original("Z", "urlZ")}
        candidates = [song("A", audio="urlX"), song("B", audio="urlY"), song("C", audio="urlNew")]

        result = await match_songs_by_fingerprint(originals, candidates, fingerprint=fingerprinter)

        assert result.swapped is False
        assert [s.audio for s in result.songs] == ["urlX", "urlY", "urlNew"]

    @pytest.mark.asyncio
    async def test_length_mismatch_returns_input(self, fingerprinter):
        """Unknown candidate ids cannot be placed, so the input is returned unchanged"""
        originals = {"A": original("X", "urlX"), "B": original("Y", "urlY"), "C": original("Z", "urlZ")}
        candidates = [song("A", audio="urlX"), song("B", audio="urlY"), song("Q", audio="urlQ")]

        result = await match_songs_by_fingerprint(originals, candidates, fingerprint=fingerprinter)

        assert result.swapped is False
        assert result.songs == candidates
