from __future__ import annotations

from songwriting.models import MUSICAL_KEYS, ChordVoicing, ProgressionPreset

DEFAULT_ROOT = "C"
MAJOR_PATTERN = [0, 2, 4, 5, 7, 9, 11]
ROMAN_NUMERALS = ["I", "ii", "iii", "IV", "V", "vi", "vii°"]
NUMERAL_TO_DEGREE = {numeral: idx for idx, numeral in enumerate(ROMAN_NUMERALS)}
TAB_STRINGS = ["E", "A", "D", "G", "B", "e"]

FALLBACK_VOICING = ChordVoicing(name="Open", frets=[0, 0, 0, 0, 0, 0], base_fret=0)


def _v(name: str, frets: list[int], base_fret: int = 0) -> ChordVoicing:
    return ChordVoicing(name=name, frets=frets, base_fret=base_fret)


CHORD_VOICINGS: dict[str, list[ChordVoicing]] = {
    "C": [
        _v("Open C", [-1, 3, 2, 0, 1, 0]),
        _v("C Major", [3, 3, 2, 0, 1, 0]),
        _v("C Barre", [3, 3, 5, 5, 5, 3], 3),
    ],
    "C#": [
        _v("C# Barre", [4, 4, 6, 6, 6, 4], 4),
        _v("C# Major", [-1, 4, 3, 1, 2, 1], 1),
    ],
    "D": [
        _v("Open D", [-1, 0, 0, 2, 3, 2]),
        _v("D Major", [-1, 5, 5, 7, 7, 5], 5),
        _v("D Barre", [5, 5, 7, 7, 7, 5], 5),
    ],
    "D#": [_v("D# Barre", [6, 6, 8, 8, 8, 6], 6)],
    "E": [
        _v("Open E", [0, 2, 2, 1, 0, 0]),
        _v("E Major", [0, 2, 2, 1, 0, 0]),
        _v("E Barre", [0, 2, 2, 4, 4, 0]),
    ],
    "F": [
        _v("F Barre", [1, 3, 3, 2, 1, 1], 1),
        _v("F Major", [-1, -1, 3, 2, 1, 1], 1),
    ],
    "F#": [_v("F# Barre", [2, 4, 4, 3, 2, 2], 2)],
    "G": [
        _v("Open G", [3, 0, 0, 0, 0, 3]),
        _v("G Major", [3, 2, 0, 0, 3, 3]),
        _v("G Barre", [3, 5, 5, 4, 3, 3], 3),
    ],
    "G#": [_v("G# Barre", [4, 6, 6, 5, 4, 4], 4)],
    "A": [
        _v("Open A", [0, 0, 2, 2, 2, 0]),
        _v("A Major", [5, 7, 7, 6, 5, 5], 5),
        _v("A Barre", [5, 5, 7, 7, 7, 5], 5),
    ],
    "A#": [_v("A# Barre", [6, 6, 8, 8, 8, 6], 6)],
    "B": [
        _v("B Barre", [7, 7, 9, 9, 9, 7], 7),
        _v("B Major", [-1, 2, 4, 4, 4, 2], 2),
    ],
    "Am": [
        _v("Open Am", [-1, 0, 2, 2, 1, 0]),
        _v("Am Barre", [5, 5, 7, 7, 6, 5], 5),
    ],
    "A#m": [_v("A#m Barre", [6, 6, 8, 8, 7, 6], 6)],
    "Bm": [_v("Bm Barre", [7, 7, 9, 9, 8, 7], 7)],
    "Cm": [_v("Cm Barre", [3, 3, 5, 5, 4, 3], 3)],
    "C#m": [_v("C#m Barre", [4, 4, 6, 6, 5, 4], 4)],
    "Dm": [
        _v("Open Dm", [-1, 0, 0, 2, 3, 1]),
        _v("Dm Barre", [5, 5, 7, 7, 6, 5], 5),
    ],
    "D#m": [_v("D#m Barre", [6, 6, 8, 8, 7, 6], 6)],
    "Em": [
        _v("Open Em", [0, 2, 2, 0, 0, 0]),
        _v("Em Barre", [0, 2, 2, 0, 0, 0]),
    ],
    "Fm": [_v("Fm Barre", [1, 3, 3, 1, 1, 1], 1)],
    "F#m": [_v("F#m Barre", [2, 4, 4, 2, 2, 2], 2)],
    "Gm": [_v("Gm Barre", [3, 5, 5, 3, 3, 3], 3)],
    "G#m": [_v("G#m Barre", [4, 6, 6, 4, 4, 4], 4)],
}

CHORD_PROGRESSIONS: list[ProgressionPreset] = [
    ProgressionPreset(name="I - IV - V - vi (Pop)", progression=["I", "IV", "V", "vi"]),
    ProgressionPreset(name="ii - IV - V - iii", progression=["ii", "IV", "V", "iii"]),
    ProgressionPreset(name="I - V - vi - IV (Pop)", progression=["I", "V", "vi", "IV"]),
    ProgressionPreset(name="vi - IV - I - V (Pop)", progression=["vi", "IV", "I", "V"]),
    ProgressionPreset(name="I - vi - IV - V (50s)", progression=["I", "vi", "IV", "V"]),
    ProgressionPreset(name="I - IV - I - V", progression=["I", "IV", "I", "V"]),
    ProgressionPreset(name="I - vi - ii - V (Jazz)", progression=["I", "vi", "ii", "V"]),
    ProgressionPreset(name="ii - V - I (Jazz)", progression=["ii", "V", "I"]),
    ProgressionPreset(name="I - IV - vi - V", progression=["I", "IV", "vi", "V"]),
    ProgressionPreset(name="I - iii - IV - V", progression=["I", "iii", "IV", "V"]),
    ProgressionPreset(name="I - vi - iii - IV", progression=["I", "vi", "iii", "IV"]),
    ProgressionPreset(name="vi - I - V - IV", progression=["vi", "I", "V", "IV"]),
    ProgressionPreset(
        name="I - V - vi - iii - IV - I - IV - V",
        progression=["I", "V", "vi", "iii", "IV", "I", "IV", "V"],
    ),
]


def _minor_spelling(chord_name: str) -> str | None:
    if chord_name.endswith("min") and len(chord_name) > 3:
        return f"{chord_name[:-3]}m"
    if chord_name.endswith("m") and not chord_name.endswith("dim") and len(chord_name) > 1:
        return chord_name
    return None


def voicings_for(chord_name: str) -> list[ChordVoicing]:
    """Return the fingerings for a chord, never empty.

    Unknown spellings get a single synthetic open voicing so callers can always
    pick ``voicings[0]`` as the default.
    """
    cleaned = chord_name.strip()
    minor = _minor_spelling(cleaned)
    if minor is not None and minor in CHORD_VOICINGS:
        return list(CHORD_VOICINGS[minor])
    if CHORD_VOICINGS.get(cleaned):
        return list(CHORD_VOICINGS[cleaned])
    return [FALLBACK_VOICING]


def default_voicing(chord_name: str) -> str:
    return voicings_for(chord_name)[0].name


def is_roman_numeral(token: str) -> bool:
    return token.strip() in NUMERAL_TO_DEGREE


def roman_numeral_to_chord(key: str, numeral: str) -> str:
    key_index = MUSICAL_KEYS.index(key) if key in MUSICAL_KEYS else -1
    degree = NUMERAL_TO_DEGREE.get(numeral.strip())
    if key_index == -1 or degree is None:
        return DEFAULT_ROOT
    return MUSICAL_KEYS[(key_index + MAJOR_PATTERN[degree]) % 12]


def resolve_chord(key: str, token: str) -> str:
    """Resolve a palette token: roman numerals map through the key, chord names pass through."""
    cleaned = token.strip()
    if is_roman_numeral(cleaned):
        return roman_numeral_to_chord(key, cleaned)
    return cleaned or DEFAULT_ROOT


def resolve_progression(key: str, numerals: list[str]) -> list[str]:
    return [roman_numeral_to_chord(key, numeral) for numeral in numerals]


def format_chord_name(chord: str | None) -> str:
    if not chord:
        return DEFAULT_ROOT
    root, rest = chord[:1], chord[1:]
    if rest[:1] == "#":
        return f"{root}♯{rest[1:]}"
    if rest[:1] == "b":
        return f"{root}♭{rest[1:]}"
    return chord


def chord_tab(voicing: ChordVoicing) -> str:
    use_base_fret = voicing.base_fret > 0
    lines: list[str] = []
    if use_base_fret:
        lines.append(f"{voicing.base_fret}fr")
    for string_name, fret in zip(TAB_STRINGS, voicing.frets):
        if fret == -1:
            marker = "X"
        elif fret == 0:
            marker = "0"
        else:
            marker = str(fret - voicing.base_fret if use_base_fret else fret)
        lines.append(f"{string_name} | {marker}")
    return "\n".join(lines)
