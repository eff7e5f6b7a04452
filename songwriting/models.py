from __future__ import annotations

import uuid
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


SectionType = Literal["intro", "verse", "pre-chorus", "chorus", "bridge", "outro"]
TimeSignature = Literal["4/4", "6/8", "3/4", "2/4"]
TimelineItemType = Literal["chord", "lyric", "section-title"]
TrackName = Literal["chord", "lyric", "section"]
NodeType = Literal["lyric", "chord"]

MUSICAL_KEYS = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]
FLAT_KEY_ALIASES = {"Db": "C#", "Eb": "D#", "Gb": "F#", "Ab": "G#", "Bb": "A#"}

SECTION_LABELS: dict[str, str] = {
    "intro": "Intro",
    "verse": "Verse",
    "pre-chorus": "Pre-Chorus",
    "chorus": "Chorus",
    "bridge": "Bridge",
    "outro": "Outro",
}

DEFAULT_PROGRESSION = ["I", "IV", "V", "vi"]


def new_id() -> str:
    return str(uuid.uuid4())


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChordVoicing(CamelModel):
    name: str = Field(min_length=1)
    frets: list[int] = Field(min_length=6, max_length=6, description="Low E to high e; -1 is a muted string")
    base_fret: int = Field(default=0, ge=0)


class ChordPlacement(CamelModel):
    """A chord anchored at a character offset.

    Inside a Bar the offset is relative to the start of the bar's text; on a
    legacy Section record it is absolute within the section's flat lyrics.
    """

    position: int = Field(ge=0)
    chord: str = Field(min_length=1)
    voicing: str | None = None


class Bar(CamelModel):
    id: str = Field(default_factory=new_id)
    bar_number: int = Field(ge=1)
    text: str = ""
    chords: list[ChordPlacement] = Field(default_factory=list)

    @field_validator("text")
    @classmethod
    def reject_line_breaks(cls, value: str) -> str:
        if "\n" in value:
            raise ValueError("Bar text cannot contain line breaks.")
        return value


class Section(CamelModel):
    id: str = Field(default_factory=new_id)
    type: SectionType
    order: int = Field(default=0, ge=0)
    bars: list[Bar] = Field(default_factory=list)
    lyrics: str = ""
    chords: list[ChordPlacement] = Field(default_factory=list)

    @property
    def label(self) -> str:
        return SECTION_LABELS.get(self.type, self.type)


class SongDocument(CamelModel):
    title: str = Field(min_length=1, max_length=200)
    author_first_name: str = Field(min_length=1, max_length=120)
    author_last_name: str = Field(min_length=1, max_length=120)
    key: str = "C"
    time_signature: TimeSignature = "4/4"
    tempo: int = Field(default=120, ge=60, le=200)
    chord_progression: list[str] = Field(default_factory=lambda: list(DEFAULT_PROGRESSION))
    structure: list[Section] = Field(default_factory=list)
    is_public: bool = False

    @field_validator("title", "author_first_name", "author_last_name")
    @classmethod
    def require_non_blank(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Title and author name are required.")
        return cleaned

    @field_validator("key")
    @classmethod
    def validate_key(cls, value: str) -> str:
        cleaned = value.strip()
        cleaned = FLAT_KEY_ALIASES.get(cleaned, cleaned)
        if cleaned not in MUSICAL_KEYS:
            raise ValueError(f"Invalid key. Use one of: {', '.join(MUSICAL_KEYS)}.")
        return cleaned

    @model_validator(mode="after")
    def validate_ids_unique(self):
        ids = [section.id for section in self.structure]
        if len(ids) != len(set(ids)):
            raise ValueError("Section ids must be unique within a song.")
        bar_ids = [bar.id for section in self.structure for bar in section.bars]
        if len(bar_ids) != len(set(bar_ids)):
            raise ValueError("Bar ids must be unique within a song.")
        return self


class TimelineItem(CamelModel):
    id: str = Field(default_factory=new_id)
    type: TimelineItemType
    start_beat: float = Field(ge=0)
    duration: int = Field(ge=1)
    content: str = ""
    voicing: str | None = None
    section_id: str | None = None
    section_type: SectionType | None = None

    @model_validator(mode="after")
    def validate_ownership(self):
        if self.type == "section-title":
            if self.section_type is None:
                raise ValueError("Section-title items require a section type.")
        elif self.section_id is None:
            raise ValueError(f"{self.type} items require an owning section id.")
        return self


class SongNode(CamelModel):
    id: str = Field(default_factory=new_id)
    type: NodeType
    x: float = Field(ge=0)
    y: float = Field(ge=0)
    width: float = Field(gt=0)
    height: float | None = Field(default=None, gt=0)
    content: str = ""
    voicing: str | None = None
    z_index: int | None = None


class ChordPayload(CamelModel):
    kind: Literal["chord"] = "chord"
    chord: str = Field(min_length=1)


class LyricPayload(CamelModel):
    kind: Literal["lyric"] = "lyric"
    text: str = ""

    @field_validator("text")
    @classmethod
    def reject_line_breaks(cls, value: str) -> str:
        if "\n" in value:
            raise ValueError("Lyric items cannot contain line breaks.")
        return value


class SectionTitlePayload(CamelModel):
    kind: Literal["sectionTitle"] = "sectionTitle"
    section_type: SectionType


class MoveItemPayload(CamelModel):
    kind: Literal["moveItem"] = "moveItem"
    item_id: str = Field(min_length=1)


DropPayload = Annotated[
    Union[ChordPayload, LyricPayload, SectionTitlePayload, MoveItemPayload],
    Field(discriminator="kind"),
]


class VoicingView(ChordVoicing):
    tab: str


class ChordVoicingsResponse(CamelModel):
    chord: str
    display_name: str
    voicings: list[VoicingView]


class ProgressionPreset(CamelModel):
    name: str
    progression: list[str]


class ResolveProgressionRequest(CamelModel):
    key: str = "C"
    numerals: list[str] = Field(default_factory=lambda: list(DEFAULT_PROGRESSION))


class ResolveProgressionResponse(CamelModel):
    key: str
    numerals: list[str]
    chords: list[str]


class TimelineProjectionResponse(CamelModel):
    beats_per_bar: int
    total_beats: float
    items: list[TimelineItem]


class TimelineDropRequest(CamelModel):
    song: SongDocument
    track: TrackName
    beat: float | None = Field(default=None, ge=0)
    pixel: float | None = None
    payload: DropPayload

    @model_validator(mode="after")
    def require_position(self):
        if self.beat is None and self.pixel is None:
            raise ValueError("A drop needs a beat or a pixel position.")
        return self


class TimelineDropResponse(CamelModel):
    song: SongDocument
    item: TimelineItem
