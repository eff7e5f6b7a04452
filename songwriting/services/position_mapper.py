"""Conversions between the coordinate systems of a section.

A section's bars are laid end to end as if joined by a one-character
separator, so the flat legacy lyrics are always ``"\\n".join(bar texts)``.
Bar *i* owns the closed interval ``[start_i, start_i + len(text_i)]``; the
separator offset belongs to the end of the preceding bar, which keeps the
bar-relative and absolute conversions exact inverses.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence

from songwriting.models import Bar, ChordPlacement, new_id

SEPARATOR = "\n"
SEPARATOR_WIDTH = len(SEPARATOR)


def bar_start_offsets(bars: Sequence[Bar]) -> list[int]:
    starts: list[int] = []
    cursor = 0
    for bar in bars:
        starts.append(cursor)
        cursor += len(bar.text) + SEPARATOR_WIDTH
    return starts


def total_length(bars: Sequence[Bar]) -> int:
    if not bars:
        return 0
    return sum(len(bar.text) for bar in bars) + SEPARATOR_WIDTH * (len(bars) - 1)


def bar_index(bars: Sequence[Bar], bar_id: str) -> int:
    for idx, bar in enumerate(bars):
        if bar.id == bar_id:
            return idx
    raise KeyError(bar_id)


def placement_offset(bar: Bar, start: int, rel_pos: int) -> int:
    # A placement left past a shortened text is pinned to the end of its own bar.
    return start + max(0, min(rel_pos, len(bar.text)))


def bar_relative_to_absolute(bars: Sequence[Bar], bar_id: str, rel_pos: int) -> int:
    idx = bar_index(bars, bar_id)
    absolute = placement_offset(bars[idx], bar_start_offsets(bars)[idx], rel_pos)
    return max(0, min(absolute, total_length(bars)))


def absolute_to_bar_relative(bars: Sequence[Bar], absolute_pos: int) -> tuple[str, int]:
    if not bars:
        raise ValueError("Cannot resolve a position in a section without bars.")
    position = max(0, absolute_pos)
    cursor = 0
    for bar in bars:
        end = cursor + len(bar.text)
        if position <= end:
            return bar.id, position - cursor
        cursor = end + SEPARATOR_WIDTH
    last = bars[-1]
    return last.id, len(last.text)


def beat_to_pixel(beat: float, pixels_per_beat: float) -> float:
    return beat * pixels_per_beat


def pixel_to_beat(pixel: float, pixels_per_beat: float) -> int:
    # Floor then clamp: a drop just left of the origin lands on beat 0.
    return max(0, math.floor(pixel / pixels_per_beat))


def sort_placements(placements: Iterable[ChordPlacement]) -> list[ChordPlacement]:
    return sorted(placements, key=lambda placement: placement.position)


def legacy_lyrics_to_bars(lyrics: str, chords: Sequence[ChordPlacement]) -> list[Bar]:
    """Lift flat lyrics and absolute chords into bars, one bar per line.

    Only explicit line breaks create bars; line length never does.
    """
    if not lyrics:
        lone = Bar(id=new_id(), bar_number=1, text="")
        lone.chords = sort_placements(chord.model_copy(update={"position": 0}) for chord in chords)
        return [lone]

    bars = [
        Bar(id=new_id(), bar_number=idx + 1, text=line)
        for idx, line in enumerate(lyrics.split(SEPARATOR))
    ]
    by_id = {bar.id: bar for bar in bars}
    for chord in chords:
        bar_id, rel_pos = absolute_to_bar_relative(bars, chord.position)
        by_id[bar_id].chords.append(chord.model_copy(update={"position": rel_pos}))
    for bar in bars:
        bar.chords = sort_placements(bar.chords)
    return bars


def bars_to_legacy_lyrics(bars: Sequence[Bar]) -> tuple[str, list[ChordPlacement]]:
    lyrics = SEPARATOR.join(bar.text for bar in bars)
    chords: list[ChordPlacement] = []
    for bar, start in zip(bars, bar_start_offsets(bars)):
        for placement in bar.chords:
            chords.append(placement.model_copy(update={"position": placement_offset(bar, start, placement.position)}))
    return lyrics, chords
