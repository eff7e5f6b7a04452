from __future__ import annotations

import logging
from dataclasses import dataclass

from songwriting.errors import CompositionError, StaleTimelineError, TimelineItemNotFoundError, TrackMismatchError
from songwriting.logging_utils import log_event
from songwriting.models import (
    Bar,
    ChordPayload,
    ChordPlacement,
    DropPayload,
    LyricPayload,
    MoveItemPayload,
    Section,
    SectionTitlePayload,
    TimelineItem,
    TrackName,
    new_id,
)
from songwriting.services.bar_store import BarStore
from songwriting.services.chord_catalog import default_voicing, resolve_chord
from songwriting.services.position_mapper import absolute_to_bar_relative, bar_start_offsets, placement_offset
from songwriting.settings import CHARS_PER_BEAT

logger = logging.getLogger(__name__)

CHORD_ITEM_BEATS = 4
SECTION_TITLE_BARS = 4
DEFAULT_SECTION_BARS = 16

TRACK_FOR_PAYLOAD: dict[str, TrackName] = {"chord": "chord", "lyric": "lyric", "sectionTitle": "section"}
TRACK_FOR_ITEM: dict[str, TrackName] = {"chord": "chord", "lyric": "lyric", "section-title": "section"}


def char_to_beat(offset: int) -> float:
    # Four characters of lyric text are treated as one beat.
    return offset / CHARS_PER_BEAT


def beat_to_char(beat: float) -> int:
    return max(0, round(beat * CHARS_PER_BEAT))


def lyric_item_id(bar_id: str) -> str:
    return f"lyric:{bar_id}"


def chord_item_id(bar_id: str, index: int) -> str:
    return f"chord:{bar_id}:{index}"


def title_item_id(section_id: str) -> str:
    return f"title:{section_id}"


def project(section: Section, beats_per_bar: int, offset: float = 0.0) -> list[TimelineItem]:
    items: list[TimelineItem] = []
    for bar, start in zip(section.bars, bar_start_offsets(section.bars)):
        if bar.text:
            items.append(
                TimelineItem(
                    id=lyric_item_id(bar.id),
                    type="lyric",
                    start_beat=offset + char_to_beat(start),
                    duration=beats_per_bar,
                    content=bar.text,
                    section_id=section.id,
                )
            )
        for idx, placement in enumerate(bar.chords):
            items.append(
                TimelineItem(
                    id=chord_item_id(bar.id, idx),
                    type="chord",
                    start_beat=offset + char_to_beat(placement_offset(bar, start, placement.position)),
                    duration=CHORD_ITEM_BEATS,
                    content=placement.chord,
                    voicing=placement.voicing,
                    section_id=section.id,
                )
            )
    items.sort(key=lambda item: item.start_beat)
    return items


def section_beat_length(section: Section, beats_per_bar: int, default_bars: int = DEFAULT_SECTION_BARS) -> float:
    items = project(section, beats_per_bar)
    if not items:
        return float(beats_per_bar * default_bars)
    return max(item.start_beat + item.duration for item in items)


@dataclass(frozen=True)
class SectionSpan:
    section_id: str
    start: float
    length: float

    @property
    def end(self) -> float:
        return self.start + self.length

    def contains(self, beat: float) -> bool:
        return self.start <= beat < self.end


@dataclass(frozen=True)
class _BarAnchor:
    beat: float
    rank: int
    bar: Bar


def layout_sections(sections: list[Section], beats_per_bar: int, default_bars: int = DEFAULT_SECTION_BARS) -> list[SectionSpan]:
    spans: list[SectionSpan] = []
    cursor = 0.0
    for section in sorted(sections, key=lambda item: item.order):
        length = section_beat_length(section, beats_per_bar, default_bars)
        spans.append(SectionSpan(section_id=section.id, start=cursor, length=length))
        cursor += length
    return spans


def resolve_section(spans: list[SectionSpan], beat: float) -> SectionSpan | None:
    for span in spans:
        if span.contains(beat):
            return span
    return spans[-1] if spans else None


class Timeline:
    """Beat-indexed editing view over a BarStore.

    Items are derived from the store and edited in place here; ``commit`` writes
    them back as bars so the store stays the only source of truth. Store edits
    made since the last refresh are picked up on the next read or edit, unless
    local edits are pending, in which case edits and ``commit`` raise
    ``StaleTimelineError`` instead of overwriting the store.
    """

    def __init__(
        self,
        store: BarStore,
        beats_per_bar: int,
        key: str = "C",
        default_section_bars: int = DEFAULT_SECTION_BARS,
    ) -> None:
        self._store = store
        self.beats_per_bar = beats_per_bar
        self.key = key
        self.default_section_bars = default_section_bars
        self.refresh()

    # -- read model -------------------------------------------------------

    @property
    def items(self) -> list[TimelineItem]:
        self._sync()
        return [item.model_copy() for item in sorted(self._items, key=lambda item: item.start_beat)]

    @property
    def spans(self) -> list[SectionSpan]:
        self._sync()
        return list(self._spans)

    @property
    def total_beats(self) -> float:
        self._sync()
        return self._spans[-1].end if self._spans else 0.0

    def track(self, name: TrackName) -> list[TimelineItem]:
        return [item for item in self.items if TRACK_FOR_ITEM[item.type] == name]

    def item(self, item_id: str) -> TimelineItem:
        self._sync()
        return self._items[self._index(item_id)].model_copy()

    def section_at(self, beat: float) -> Section | None:
        self._sync()
        span = resolve_section(self._spans, beat)
        return self._store.section(span.section_id) if span else None

    # -- projection -------------------------------------------------------

    def refresh(self) -> None:
        sections = self._store.snapshot()
        self._spans = layout_sections(sections, self.beats_per_bar, self.default_section_bars)
        self._items: list[TimelineItem] = []
        self._lyric_bars: dict[str, Bar] = {}
        self._bar_rank: dict[str, int] = {}
        self._anchors: dict[str, list[_BarAnchor]] = {}
        by_id = {section.id: section for section in sections}
        for span in self._spans:
            self._index_section(by_id[span.section_id], span)
        self._revision = self._store.revision
        self._pending = False

    def _sync(self) -> None:
        if self._store.revision != self._revision and not self._pending:
            self.refresh()

    def _require_current(self) -> None:
        self._sync()
        if self._store.revision != self._revision:
            log_event(
                logger,
                "timeline_stale",
                level=logging.WARNING,
                store_revision=self._store.revision,
                timeline_revision=self._revision,
            )
            raise StaleTimelineError()

    def _index_section(self, section: Section, span: SectionSpan) -> None:
        self._items.append(
            TimelineItem(
                id=title_item_id(section.id),
                type="section-title",
                start_beat=span.start,
                duration=self.beats_per_bar * SECTION_TITLE_BARS,
                content=section.type,
                section_type=section.type,
            )
        )
        self._items.extend(project(section, self.beats_per_bar, offset=span.start))
        anchors: list[_BarAnchor] = []
        for rank, (bar, start) in enumerate(zip(section.bars, bar_start_offsets(section.bars))):
            self._bar_rank[bar.id] = rank
            if bar.text:
                self._lyric_bars[lyric_item_id(bar.id)] = bar
            else:
                anchors.append(_BarAnchor(beat=char_to_beat(start), rank=rank, bar=bar))
        self._anchors[section.id] = anchors

    def _index(self, item_id: str) -> int:
        for idx, item in enumerate(self._items):
            if item.id == item_id:
                return idx
        raise TimelineItemNotFoundError(item_id)

    def _span(self, section_id: str) -> SectionSpan | None:
        return next((span for span in self._spans if span.section_id == section_id), None)

    # -- edits ------------------------------------------------------------

    def place_item(self, track: TrackName, beat: float, payload: DropPayload) -> Section:
        section, _ = self._place(track, beat, payload)
        return section

    def drop(self, track: TrackName, beat: float, payload: DropPayload) -> TimelineItem:
        if isinstance(payload, MoveItemPayload):
            existing = self.item(payload.item_id)
            self._require_track(track, TRACK_FOR_ITEM[existing.type], existing.type)
            return self.move_item(payload.item_id, beat)
        _, item = self._place(track, beat, payload)
        return item

    def _require_track(self, track: TrackName, expected: TrackName, kind: str) -> None:
        if track != expected:
            log_event(logger, "timeline_drop_rejected", level=logging.WARNING, kind=kind, track=track, expected_track=expected)
            raise TrackMismatchError(kind, track, expected)

    def _place(self, track: TrackName, beat: float, payload: DropPayload) -> tuple[Section, TimelineItem]:
        if isinstance(payload, MoveItemPayload):
            raise CompositionError("Existing items are moved with move_item, not placed.")
        self._require_track(track, TRACK_FOR_PAYLOAD[payload.kind], payload.kind)
        self._require_current()
        beat = max(0.0, float(beat))

        if isinstance(payload, SectionTitlePayload):
            return self._place_section_title(payload)

        span = resolve_section(self._spans, beat)
        if span is None:
            log_event(logger, "timeline_drop_rejected", level=logging.WARNING, kind=payload.kind, reason="no_sections")
            raise CompositionError("Add a section (Intro, Verse, Chorus, etc.) before placing chords or lyrics.")
        section = self._store.section(span.section_id)

        if isinstance(payload, ChordPayload):
            chord = resolve_chord(self.key, payload.chord)
            item = TimelineItem(
                id=new_id(),
                type="chord",
                start_beat=beat,
                duration=CHORD_ITEM_BEATS,
                content=chord,
                voicing=default_voicing(chord),
                section_id=section.id,
            )
        elif isinstance(payload, LyricPayload):
            item = TimelineItem(
                id=new_id(),
                type="lyric",
                start_beat=beat,
                duration=self.beats_per_bar,
                content=payload.text,
                section_id=section.id,
            )
        else:
            raise CompositionError(f"Unsupported drop payload: {payload.kind}")

        self._items.append(item)
        self._pending = True
        log_event(logger, "timeline_item_placed", item_type=item.type, section_id=section.id, start_beat=beat)
        return section, item.model_copy()

    def _place_section_title(self, payload: SectionTitlePayload) -> tuple[Section, TimelineItem]:
        section = next((s for s in self._store.snapshot() if s.type == payload.section_type), None)
        if section is not None:
            return section, self.item(title_item_id(section.id))

        start = self._spans[-1].end if self._spans else 0.0
        section = self._store.add_section(payload.section_type)
        self._revision = self._store.revision
        span = SectionSpan(
            section_id=section.id,
            start=start,
            length=section_beat_length(section, self.beats_per_bar, self.default_section_bars),
        )
        self._spans.append(span)
        self._index_section(section, span)
        log_event(logger, "timeline_section_created", section_id=section.id, section_type=section.type, start_beat=span.start)
        return section, self.item(title_item_id(section.id))

    def move_item(self, item_id: str, new_beat: float) -> TimelineItem:
        self._require_current()
        idx = self._index(item_id)
        moved = self._items[idx].model_copy(update={"start_beat": max(0.0, float(new_beat))})
        self._items[idx] = moved
        self._pending = True
        log_event(logger, "timeline_item_moved", level=logging.DEBUG, item_id=item_id, start_beat=moved.start_beat)
        return moved.model_copy()

    def resize_item(self, item_id: str, new_duration: float) -> TimelineItem:
        self._require_current()
        idx = self._index(item_id)
        resized = self._items[idx].model_copy(update={"duration": max(1, int(new_duration))})
        self._items[idx] = resized
        self._pending = True
        log_event(logger, "timeline_item_resized", level=logging.DEBUG, item_id=item_id, duration=resized.duration)
        return resized.model_copy()

    # -- write back -------------------------------------------------------

    def commit(self) -> list[Section]:
        """Rebuild each projected section's bars from the current items."""
        self._require_current()
        for span in self._spans:
            self._store.replace_bars(span.section_id, self._rebuild_bars(span))
        log_event(logger, "timeline_committed", section_count=len(self._spans), item_count=len(self._items))
        self.refresh()
        return self._store.snapshot()

    def _rebuild_bars(self, span: SectionSpan) -> list[Bar]:
        owned = [item for item in self._items if item.section_id == span.section_id]
        new_rank = len(self._bar_rank)
        entries: list[tuple[float, int, Bar]] = []
        for item in owned:
            if item.type != "lyric":
                continue
            local = max(0.0, item.start_beat - span.start)
            bar = self._lyric_bars.get(item.id)
            if bar is not None:
                entries.append((local, self._bar_rank[bar.id], bar.model_copy(update={"text": item.content, "chords": []})))
            else:
                entries.append((local, new_rank, Bar(id=new_id(), bar_number=1, text=item.content)))
                new_rank += 1
        for anchor in self._anchors.get(span.section_id, []):
            entries.append((anchor.beat, anchor.rank, anchor.bar.model_copy(update={"chords": []})))
        entries.sort(key=lambda entry: (entry[0], entry[1]))

        bars = [entry[2] for entry in entries] or [Bar(id=new_id(), bar_number=1, text="")]
        by_id = {bar.id: bar for bar in bars}
        for item in sorted((item for item in owned if item.type == "chord"), key=lambda item: item.start_beat):
            local = max(0.0, item.start_beat - span.start)
            bar_id, rel_pos = absolute_to_bar_relative(bars, beat_to_char(local))
            by_id[bar_id].chords.append(ChordPlacement(position=rel_pos, chord=item.content, voicing=item.voicing))
        return bars
