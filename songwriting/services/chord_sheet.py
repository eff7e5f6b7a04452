from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from songwriting.models import Bar, SongDocument
from songwriting.services.bar_store import lift_section
from songwriting.services.chord_catalog import format_chord_name
from songwriting.services.position_mapper import sort_placements


@dataclass(frozen=True)
class SheetLine:
    chords: str
    lyrics: str


@dataclass(frozen=True)
class SheetSection:
    label: str
    lines: list[SheetLine] = field(default_factory=list)


@dataclass(frozen=True)
class ChordSheet:
    title: str
    author: str
    key: str
    time_signature: str
    tempo: int
    sections: list[SheetSection]
    copyright: str

    @property
    def meta_line(self) -> str:
        return f"Key: {self.key}   Time: {self.time_signature}   Tempo: {self.tempo} BPM"


def chord_line(bar: Bar, pretty: bool = True) -> str:
    """Lay chord names over a bar so each starts above its character offset.

    A chord that would overlap the previous name is pushed one space past it.
    """
    line = ""
    for placement in sort_placements(bar.chords):
        name = format_chord_name(placement.chord) if pretty else placement.chord
        column = min(placement.position, len(bar.text))
        if line:
            column = max(column, len(line) + 1)
        line = line.ljust(column) + name
    return line


def author_name(document: SongDocument) -> str:
    return f"{document.author_first_name} {document.author_last_name}".strip() or "Unknown Author"


def build_chord_sheet(document: SongDocument, year: int | None = None, pretty: bool = True) -> ChordSheet:
    sections: list[SheetSection] = []
    for section in sorted(document.structure, key=lambda item: item.order):
        lifted = lift_section(section)
        lines = [SheetLine(chords=chord_line(bar, pretty=pretty), lyrics=bar.text) for bar in lifted.bars]
        sections.append(SheetSection(label=f"[{section.label}]", lines=lines))

    author = author_name(document)
    copyright_year = year or datetime.now(timezone.utc).year
    return ChordSheet(
        title=document.title or "Untitled Song",
        author=author,
        key=format_chord_name(document.key) if pretty else document.key,
        time_signature=document.time_signature,
        tempo=document.tempo,
        sections=sections,
        copyright=f"© {copyright_year} {author}. All rights reserved.",
    )


def render_chord_sheet_text(document: SongDocument, year: int | None = None) -> str:
    sheet = build_chord_sheet(document, year=year)
    out = [sheet.title, f"by {sheet.author}", sheet.meta_line, ""]
    if not sheet.sections:
        out.append("No sections added yet.")
    for section in sheet.sections:
        out.append(section.label)
        for line in section.lines:
            if line.chords:
                out.append(line.chords)
            out.append(line.lyrics)
        out.append("")
    out.append(sheet.copyright)
    return "\n".join(out) + "\n"
