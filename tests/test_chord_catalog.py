from songwriting.models import ChordVoicing
from songwriting.services.chord_catalog import (
    CHORD_PROGRESSIONS,
    chord_tab,
    default_voicing,
    format_chord_name,
    resolve_chord,
    resolve_progression,
    roman_numeral_to_chord,
    voicings_for,
)


def test_known_chord_returns_catalog_voicings():
    names = [voicing.name for voicing in voicings_for("G")]

    assert names == ["Open G", "G Major", "G Barre"]
    assert default_voicing("G") == "Open G"


def test_min_spelling_maps_to_minor_voicings():
    assert voicings_for("Amin")[0].name == "Open Am"
    assert voicings_for("Am")[0].name == "Open Am"


def test_unknown_chord_falls_back_to_open_voicing():
    voicings = voicings_for("Xsus9")

    assert len(voicings) == 1
    assert voicings[0].name == "Open"
    assert voicings[0].frets == [0, 0, 0, 0, 0, 0]


def test_voicings_are_copies():
    voicings_for("C").clear()

    assert len(voicings_for("C")) == 3


def test_roman_numerals_resolve_through_key():
    assert resolve_progression("C", ["I", "IV", "V", "vi"]) == ["C", "F", "G", "A"]
    assert resolve_progression("G", ["I", "ii", "vii°"]) == ["G", "A", "F#"]


def test_unknown_key_or_numeral_defaults_to_c():
    assert roman_numeral_to_chord("H", "I") == "C"
    assert roman_numeral_to_chord("D", "VIII") == "C"


def test_resolve_chord_passes_chord_names_through():
    assert resolve_chord("D", "V") == "A"
    assert resolve_chord("D", " Em ") == "Em"
    assert resolve_chord("D", "  ") == "C"


def test_format_chord_name_uses_accidental_glyphs():
    assert format_chord_name("C#m") == "C♯m"
    assert format_chord_name("Bb") == "B♭"
    assert format_chord_name("G") == "G"
    assert format_chord_name(None) == "C"


def test_chord_tab_marks_muted_strings_and_open_strings():
    tab = chord_tab(voicings_for("C")[0])

    assert tab.splitlines() == ["E | X", "A | 3", "D | 2", "G | 0", "B | 1", "e | 0"]


def test_chord_tab_shows_base_fret_relative_frets():
    tab = chord_tab(ChordVoicing(name="F Barre", frets=[1, 3, 3, 2, 1, 1], base_fret=1))

    lines = tab.splitlines()
    assert lines[0] == "1fr"
    assert lines[1:3] == ["E | 0", "A | 2"]


def test_presets_exclude_custom():
    names = [preset.name for preset in CHORD_PROGRESSIONS]

    assert "Custom" not in names
    assert CHORD_PROGRESSIONS[0].progression == ["I", "IV", "V", "vi"]
