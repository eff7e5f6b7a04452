import pytest

from songwriting.models import Bar, ChordPlacement
from songwriting.services.position_mapper import (
    absolute_to_bar_relative,
    bar_relative_to_absolute,
    bar_start_offsets,
    bars_to_legacy_lyrics,
    legacy_lyrics_to_bars,
    pixel_to_beat,
    total_length,
)


def _bars() -> list[Bar]:
    return [
        Bar(id="b1", bar_number=1, text="Hello", chords=[ChordPlacement(position=0, chord="C")]),
        Bar(id="b2", bar_number=2, text=""),
        Bar(id="b3", bar_number=3, text="World again", chords=[ChordPlacement(position=6, chord="G", voicing="Open G")]),
    ]


def _content(bars):
    return [(bar.text, [(c.position, c.chord, c.voicing) for c in bar.chords]) for bar in bars]


def test_legacy_import_splits_lines_and_rebases_chords():
    bars = legacy_lyrics_to_bars(
        "Hello\nWorld",
        [ChordPlacement(position=0, chord="C"), ChordPlacement(position=6, chord="G")],
    )

    assert [bar.text for bar in bars] == ["Hello", "World"]
    assert [bar.bar_number for bar in bars] == [1, 2]
    assert [(c.position, c.chord) for c in bars[0].chords] == [(0, "C")]
    assert [(c.position, c.chord) for c in bars[1].chords] == [(0, "G")]


def test_legacy_import_keeps_chord_at_line_end_with_that_line():
    bars = legacy_lyrics_to_bars("Hello\nWorld", [ChordPlacement(position=5, chord="F")])

    assert [(c.position, c.chord) for c in bars[0].chords] == [(5, "F")]
    assert bars[1].chords == []


def test_legacy_import_of_empty_lyrics_gives_one_empty_bar_with_chords():
    bars = legacy_lyrics_to_bars("", [ChordPlacement(position=3, chord="Am")])

    assert len(bars) == 1
    assert bars[0].text == ""
    assert [(c.position, c.chord) for c in bars[0].chords] == [(0, "Am")]


def test_legacy_import_never_wraps_long_lines():
    line = "la " * 80
    bars = legacy_lyrics_to_bars(line, [])

    assert len(bars) == 1
    assert bars[0].text == line


def test_legacy_import_keeps_empty_lines_as_bars():
    bars = legacy_lyrics_to_bars("One\n\nThree", [])

    assert [bar.text for bar in bars] == ["One", "", "Three"]


def test_round_trip_preserves_text_and_chords():
    bars = _bars()

    lyrics, chords = bars_to_legacy_lyrics(bars)
    rebuilt = legacy_lyrics_to_bars(lyrics, chords)

    assert _content(rebuilt) == _content(bars)


def test_lowering_joins_bars_with_line_breaks():
    lyrics, chords = bars_to_legacy_lyrics(_bars())

    assert lyrics == "Hello\n\nWorld again"
    assert [(c.position, c.chord) for c in chords] == [(0, "C"), (13, "G")]
    assert total_length(_bars()) == len(lyrics)


def test_bar_start_offsets_account_for_separators():
    assert bar_start_offsets(_bars()) == [0, 6, 7]


def test_inverse_mapping_for_every_valid_position():
    bars = _bars()
    for bar in bars:
        for rel_pos in range(len(bar.text) + 1):
            absolute = bar_relative_to_absolute(bars, bar.id, rel_pos)
            assert absolute_to_bar_relative(bars, absolute) == (bar.id, rel_pos)


def test_absolute_positions_are_clamped():
    bars = _bars()

    assert absolute_to_bar_relative(bars, -4) == ("b1", 0)
    assert absolute_to_bar_relative(bars, 500) == ("b3", len("World again"))
    assert bar_relative_to_absolute(bars, "b3", 99) == total_length(bars)


def test_absolute_lookup_requires_bars():
    with pytest.raises(ValueError):
        absolute_to_bar_relative([], 0)


def test_unknown_bar_id_is_reported():
    with pytest.raises(KeyError):
        bar_relative_to_absolute(_bars(), "missing", 0)


def test_pixel_to_beat_floors_and_clamps():
    assert pixel_to_beat(119, 60) == 1
    assert pixel_to_beat(120, 60) == 2
    assert pixel_to_beat(-10, 60) == 0


def test_whitespace_only_bar_survives_round_trip():
    bars = [Bar(id="b1", bar_number=1, text="  ", chords=[ChordPlacement(position=1, chord="Em")])]

    lyrics, chords = bars_to_legacy_lyrics(bars)
    rebuilt = legacy_lyrics_to_bars(lyrics, chords)

    assert lyrics == "  "
    assert _content(rebuilt) == _content(bars)


def test_stale_placement_lowers_onto_its_own_bar():
    bars = [
        Bar(id="b1", bar_number=1, text="Hi", chords=[ChordPlacement(position=5, chord="G")]),
        Bar(id="b2", bar_number=2, text="World"),
    ]

    lyrics, chords = bars_to_legacy_lyrics(bars)
    rebuilt = legacy_lyrics_to_bars(lyrics, chords)

    assert [(c.position, c.chord) for c in chords] == [(2, "G")]
    assert [(c.position, c.chord) for c in rebuilt[0].chords] == [(2, "G")]
    assert rebuilt[1].chords == []
    assert bar_relative_to_absolute(bars, "b1", 5) == 2
