import re

from songwriting.models import Bar, ChordPlacement, Section, SongDocument
from songwriting.services.chord_sheet import build_chord_sheet, chord_line, render_chord_sheet_text
from songwriting.services.pdf_export import build_song_pdf


def _song(structure=None) -> SongDocument:
    return SongDocument(
        title="Lantern",
        author_first_name="June",
        author_last_name="Okafor",
        key="F#",
        time_signature="6/8",
        tempo=72,
        structure=structure
        if structure is not None
        else [
            Section(
                id="chorus-1",
                type="chorus",
                order=1,
                lyrics="Carry the light\nhome",
                chords=[ChordPlacement(position=0, chord="F#"), ChordPlacement(position=10, chord="Bb")],
            ),
            Section(id="intro-1", type="intro", order=0, lyrics="", chords=[ChordPlacement(position=0, chord="C#")]),
        ],
    )


def test_chord_line_aligns_names_over_offsets():
    bar = Bar(bar_number=1, text="Carry the light", chords=[ChordPlacement(position=6, chord="G"), ChordPlacement(position=0, chord="C")])

    assert chord_line(bar) == "C     G"


def test_chord_line_pushes_overlapping_names_apart():
    bar = Bar(bar_number=1, text="Hi there", chords=[ChordPlacement(position=0, chord="C#m7"), ChordPlacement(position=1, chord="G")])

    assert chord_line(bar, pretty=False) == "C#m7 G"


def test_sheet_orders_sections_and_formats_accidentals():
    sheet = build_chord_sheet(_song(), year=2024)

    assert [section.label for section in sheet.sections] == ["[Intro]", "[Chorus]"]
    assert sheet.key == "F♯"
    assert sheet.sections[1].lines[0].chords == "F♯        B♭"
    assert sheet.sections[1].lines[1].lyrics == "home"
    assert sheet.copyright == "© 2024 June Okafor. All rights reserved."


def test_text_rendering_puts_chords_above_lyrics():
    text = render_chord_sheet_text(_song(), year=2024)

    lines = text.splitlines()
    assert lines[:3] == ["Lantern", "by June Okafor", "Key: F♯   Time: 6/8   Tempo: 72 BPM"]
    chorus = lines.index("[Chorus]")
    assert lines[chorus + 1 : chorus + 4] == ["F♯        B♭", "Carry the light", "home"]
    assert lines[-1] == "© 2024 June Okafor. All rights reserved."


def test_text_rendering_of_empty_song():
    text = render_chord_sheet_text(_song(structure=[]), year=2024)

    assert "No sections added yet." in text


def test_pdf_export_produces_pdf_bytes():
    content = build_song_pdf(_song(), year=2024)

    assert content.startswith(b"%PDF")
    assert len(content) > 500


def test_pdf_export_paginates_long_songs():
    lyrics = "\n".join(f"line {idx}" for idx in range(120))
    long_song = _song(structure=[Section(id="v", type="verse", lyrics=lyrics, chords=[ChordPlacement(position=0, chord="G")])])

    content = build_song_pdf(long_song, year=2024)

    page_counts = [int(count) for count in re.findall(rb"/Count (\d+)", content)]
    assert max(page_counts) >= 2
