"""
Song Matcher
Re-identifies songs by audio content so slot order survives URL swaps
"""

import asyncio
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from ..core.logging import audio_logger
from ..services.audio_fingerprint import extract_fingerprint
from .types import AudioFingerprint, MatchResult, Song

Fingerprinter = Callable[..., Awaitable[Optional[AudioFingerprint]]]


async def _fingerprint_at_length(
    fingerprint: Fingerprinter,
    song: Song,
    byte_length: int,
) -> Optional[AudioFingerprint]:
    try:
        return await fingerprint(song.audio, max_audio_bytes=byte_length, min_bytes=0)
    except Exception as e:
        audio_logger.log_fingerprint_warning(
            "Failed to fingerprint candidate for hash matching",
            music_id=song.music_id,
            error=str(e)
        )
        return None


def _slot_order(assigned: Dict[str, Song], originals_order: List[str], candidates: Sequence[Song]) -> List[Song]:
    """Keep slots in candidate id order whenever every original id is present there"""
    candidate_ids = [song.music_id for song in candidates]
    if all(music_id in candidate_ids for music_id in assigned):
        ordered_ids = sorted(assigned, key=candidate_ids.index)
    else:
        ordered_ids = [music_id for music_id in originals_order if music_id in assigned]
    return [assigned[music_id] for music_id in ordered_ids]


async def match_songs_by_fingerprint(
    originals: Dict[str, AudioFingerprint],
    candidates: Sequence[Song],
    fingerprint: Fingerprinter = extract_fingerprint,
) -> MatchResult:
    """
    Match candidate songs to the original fingerprints and reorder if needed.

    Hash equality is tried first, hashing each candidate over exactly the
    original's ``byte_length``. When exactly two songs remain unmatched the
    order with the smallest total duration difference wins. Anything else
    keeps the provider's assignment.
    """

    candidates = list(candidates)
    original_ids = list(originals.keys())
    assigned: Dict[str, Song] = {}
    matched: set = set()
    swapped = False

    # Primary matching: by hash
    for music_id in original_ids:
        original = originals[music_id]

        for song in candidates:
            if song.music_id in matched or not song.audio:
                continue

            candidate_fp = await _fingerprint_at_length(fingerprint, song, original.byte_length)
            if candidate_fp is None:
                continue

            if candidate_fp.hash == original.hash:
                matched.add(song.music_id)
                if song.music_id != music_id:
                    swapped = True
                    audio_logger.log_swap(
                        method="hash",
                        original_id=music_id,
                        candidate_id=song.music_id
                    )
                assigned[music_id] = song.model_copy(update={"music_id": music_id})
                break

    unmatched_ids = [music_id for music_id in original_ids if music_id not in assigned]
    unmatched_songs = [song for song in candidates if song.music_id not in matched]

    # Secondary matching: by duration proximity, two songs only
    if len(unmatched_ids) == 2 and len(unmatched_songs) == 2:
        first, second = unmatched_songs
        try:
            fp1, fp2 = await asyncio.gather(
                fingerprint(first.audio),
                fingerprint(second.audio),
            )
        except Exception as e:
            audio_logger.log_fingerprint_warning(
                "Failed to fingerprint for duration matching, keeping original order",
                error=str(e)
            )
            fp1 = fp2 = None

        keep_order = True
        if fp1 and fp2:
            original_durations = [originals[music_id].duration or 0.0 for music_id in unmatched_ids]
            candidate_durations = [fp1.duration or 0.0, fp2.duration or 0.0]

            original_diff = (
                abs(original_durations[0] - candidate_durations[0])
                + abs(original_durations[1] - candidate_durations[1])
            )
            swapped_diff = (
                abs(original_durations[0] - candidate_durations[1])
                + abs(original_durations[1] - candidate_durations[0])
            )

            audio_logger.logger.info(
                "Duration matching",
                original_diff=round(original_diff, 1),
                swapped_diff=round(swapped_diff, 1)
            )

            keep_order = swapped_diff >= original_diff
        else:
            audio_logger.log_fingerprint_warning(
                "Duration matching skipped, keeping original order"
            )

        pairs = [(first, second), (second, first)][0 if keep_order else 1]
        for music_id, song in zip(unmatched_ids, pairs):
            if song.music_id != music_id:
                swapped = True
                audio_logger.log_swap(
                    method="duration",
                    original_id=music_id,
                    candidate_id=song.music_id
                )
            assigned[music_id] = song.model_copy(update={"music_id": music_id})

    elif unmatched_ids:
        # Keep whatever the provider reported for these ids
        for music_id in unmatched_ids:
            song = next((s for s in candidates if s.music_id == music_id), None)
            if song is not None:
                audio_logger.log_fingerprint_warning(
                    "No fingerprint match, keeping original",
                    music_id=music_id,
                    unmatched=len(unmatched_ids)
                )
                assigned[music_id] = song

    result = _slot_order(assigned, original_ids, candidates)

    if len(result) != len(candidates):
        audio_logger.log_match_summary(swapped=False, matched=len(result), total=len(candidates))
        return MatchResult(songs=candidates, swapped=False)

    audio_logger.log_match_summary(swapped=swapped, matched=len(matched), total=len(candidates))
    return MatchResult(songs=result, swapped=swapped)


__all__ = ["Fingerprinter", "match_songs_by_fingerprint"]
