from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from songwriting.errors import BarNotFoundError, BarTextError, CompositionError, LastBarError, SectionNotFoundError
from songwriting.logging_utils import log_event
from songwriting.models import Bar, ChordPlacement, Section, SectionType, new_id
from songwriting.services.chord_catalog import default_voicing
from songwriting.services.position_mapper import (
    absolute_to_bar_relative,
    bars_to_legacy_lyrics,
    legacy_lyrics_to_bars,
    sort_placements,
)

logger = logging.getLogger(__name__)


def _clamp(position: int, text: str) -> int:
    return max(0, min(position, len(text)))


def _renumbered(bars: Iterable[Bar]) -> list[Bar]:
    return [bar.model_copy(update={"bar_number": idx + 1}) for idx, bar in enumerate(bars)]


def _with_legacy_fields(section: Section, bars: list[Bar]) -> Section:
    lyrics, chords = bars_to_legacy_lyrics(bars)
    return section.model_copy(update={"bars": bars, "lyrics": lyrics, "chords": chords})


def lift_section(section: Section) -> Section:
    """Return a copy of ``section`` with bars, lifting legacy lyrics when it has none."""
    if section.bars:
        bars = _renumbered(
            bar.model_copy(update={"chords": sort_placements(bar.chords)}, deep=True) for bar in section.bars
        )
    else:
        bars = legacy_lyrics_to_bars(section.lyrics, section.chords)
    return _with_legacy_fields(section, bars)


def lower_section(section: Section) -> Section:
    """Return the persistence form: legacy lyrics and absolute chords, bars stripped."""
    lyrics, chords = bars_to_legacy_lyrics(section.bars) if section.bars else (section.lyrics, section.chords)
    return section.model_copy(update={"bars": [], "lyrics": lyrics, "chords": chords}, deep=True)


def new_section(section_type: SectionType, order: int) -> Section:
    return _with_legacy_fields(
        Section(id=new_id(), type=section_type, order=order),
        [Bar(id=new_id(), bar_number=1, text="")],
    )


class BarStore:
    """Authoritative bar-structured sections of one song.

    Every mutation builds the new bar list first and swaps it in as a whole, then
    re-derives the section's legacy ``lyrics``/``chords``. Readers get deep copies.
    """

    def __init__(self, sections: Iterable[Section] = ()) -> None:
        ordered = sorted(sections, key=lambda section: section.order)
        self._sections: list[Section] = [
            lift_section(section).model_copy(update={"order": idx}) for idx, section in enumerate(ordered)
        ]
        self._revision = 0

    def __len__(self) -> int:
        return len(self._sections)

    @property
    def revision(self) -> int:
        """Counter bumped by every mutation, so projections can tell when they went stale."""
        return self._revision

    @property
    def section_ids(self) -> list[str]:
        return [section.id for section in self._sections]

    def snapshot(self) -> list[Section]:
        return [section.model_copy(deep=True) for section in self._sections]

    def section(self, section_id: str) -> Section:
        return self._get(section_id)[1].model_copy(deep=True)

    def bars(self, section_id: str) -> list[Bar]:
        return [bar.model_copy(deep=True) for bar in self._get(section_id)[1].bars]

    # -- internal helpers -------------------------------------------------

    def _get(self, section_id: str) -> tuple[int, Section]:
        for idx, section in enumerate(self._sections):
            if section.id == section_id:
                return idx, section
        raise SectionNotFoundError(section_id)

    def _bar(self, section: Section, bar_id: str) -> tuple[int, Bar]:
        for idx, bar in enumerate(section.bars):
            if bar.id == bar_id:
                return idx, bar
        raise BarNotFoundError(section.id, bar_id)

    def _commit(self, section_index: int, bars: list[Bar]) -> Section:
        section = _with_legacy_fields(self._sections[section_index], _renumbered(bars))
        self._sections[section_index] = section
        self._revision += 1
        return section

    def _replace_bar(self, section_id: str, bar_id: str, build: Callable[[Bar], Bar]) -> Bar:
        section_index, section = self._get(section_id)
        bar_index, bar = self._bar(section, bar_id)
        updated = build(bar)
        bars = list(section.bars)
        bars[bar_index] = updated
        self._commit(section_index, bars)
        return updated.model_copy(deep=True)

    # -- sections ---------------------------------------------------------

    def add_section(self, section_type: SectionType) -> Section:
        section = new_section(section_type, order=len(self._sections))
        self._sections.append(section)
        self._revision += 1
        log_event(logger, "section_added", section_id=section.id, section_type=section_type, order=section.order)
        return section.model_copy(deep=True)

    def delete_section(self, section_id: str) -> None:
        idx, section = self._get(section_id)
        remaining = self._sections[:idx] + self._sections[idx + 1 :]
        self._sections = [item.model_copy(update={"order": order}) for order, item in enumerate(remaining)]
        self._revision += 1
        log_event(logger, "section_deleted", section_id=section_id, section_type=section.type)

    def reorder_section(self, section_id: str, target_index: int) -> list[Section]:
        idx, section = self._get(section_id)
        remaining = self._sections[:idx] + self._sections[idx + 1 :]
        target = max(0, min(target_index, len(remaining)))
        remaining.insert(target, section)
        self._sections = [item.model_copy(update={"order": order}) for order, item in enumerate(remaining)]
        self._revision += 1
        log_event(logger, "section_reordered", section_id=section_id, from_index=idx, to_index=target)
        return self.snapshot()

    def replace_bars(self, section_id: str, bars: Iterable[Bar]) -> Section:
        section_index, _ = self._get(section_id)
        rebuilt = [
            bar.model_copy(
                update={
                    "chords": sort_placements(
                        placement.model_copy(update={"position": _clamp(placement.position, bar.text)})
                        for placement in bar.chords
                    )
                },
                deep=True,
            )
            for bar in bars
        ]
        if not rebuilt:
            rebuilt = [Bar(id=new_id(), bar_number=1, text="")]
        bar_ids = [bar.id for bar in rebuilt]
        if len(bar_ids) != len(set(bar_ids)):
            raise CompositionError(f"Duplicate bar ids in replacement for section {section_id}.")
        section = self._commit(section_index, rebuilt)
        log_event(logger, "section_bars_replaced", section_id=section_id, bar_count=len(section.bars))
        return section.model_copy(deep=True)

    # -- bars -------------------------------------------------------------

    def add_bar(self, section_id: str) -> Bar:
        section_index, section = self._get(section_id)
        bar = Bar(id=new_id(), bar_number=len(section.bars) + 1, text="")
        self._commit(section_index, [*section.bars, bar])
        log_event(logger, "bar_added", section_id=section_id, bar_id=bar.id, bar_count=len(section.bars) + 1)
        return bar.model_copy(deep=True)

    def remove_bar(self, section_id: str, bar_id: str) -> None:
        section_index, section = self._get(section_id)
        self._bar(section, bar_id)
        if len(section.bars) <= 1:
            log_event(logger, "bar_removal_rejected", level=logging.WARNING, section_id=section_id, bar_id=bar_id)
            raise LastBarError(section_id)
        self._commit(section_index, [bar for bar in section.bars if bar.id != bar_id])
        log_event(logger, "bar_removed", section_id=section_id, bar_id=bar_id, bar_count=len(section.bars) - 1)

    def set_bar_text(self, section_id: str, bar_id: str, text: str) -> Bar:
        if "\n" in text:
            log_event(logger, "bar_text_rejected", level=logging.WARNING, section_id=section_id, bar_id=bar_id)
            raise BarTextError(bar_id)
        # Placements past the new end stay where they are until moved.
        updated = self._replace_bar(section_id, bar_id, lambda bar: bar.model_copy(update={"text": text}))
        log_event(logger, "bar_text_set", level=logging.DEBUG, section_id=section_id, bar_id=bar_id, length=len(text))
        return updated

    # -- chords, bar-relative ---------------------------------------------

    def place_chord(
        self,
        section_id: str,
        bar_id: str,
        rel_pos: int,
        chord: str,
        voicing: str | None = None,
    ) -> ChordPlacement:
        placed: list[ChordPlacement] = []

        def build(bar: Bar) -> Bar:
            placement = ChordPlacement(
                position=_clamp(rel_pos, bar.text),
                chord=chord,
                voicing=voicing or default_voicing(chord),
            )
            placed.append(placement)
            return bar.model_copy(update={"chords": sort_placements([*bar.chords, placement])})

        self._replace_bar(section_id, bar_id, build)
        log_event(
            logger,
            "chord_placed",
            level=logging.DEBUG,
            section_id=section_id,
            bar_id=bar_id,
            chord=chord,
            position=placed[0].position,
        )
        return placed[0].model_copy()

    def move_chord(self, section_id: str, bar_id: str, old_pos: int, new_pos: int) -> ChordPlacement | None:
        _, section = self._get(section_id)
        _, bar = self._bar(section, bar_id)
        match = next((idx for idx, placement in enumerate(bar.chords) if placement.position == old_pos), None)
        if match is None:
            return None

        moved = bar.chords[match].model_copy(update={"position": _clamp(new_pos, bar.text)})
        chords = list(bar.chords)
        chords[match] = moved
        self._replace_bar(section_id, bar_id, lambda current: current.model_copy(update={"chords": sort_placements(chords)}))
        log_event(
            logger,
            "chord_moved",
            level=logging.DEBUG,
            section_id=section_id,
            bar_id=bar_id,
            from_position=old_pos,
            to_position=moved.position,
        )
        return moved.model_copy()

    def remove_chord(self, section_id: str, bar_id: str, position: int) -> ChordPlacement | None:
        _, section = self._get(section_id)
        _, bar = self._bar(section, bar_id)
        match = next((idx for idx, placement in enumerate(bar.chords) if placement.position == position), None)
        if match is None:
            return None

        removed = bar.chords[match]
        chords = bar.chords[:match] + bar.chords[match + 1 :]
        self._replace_bar(section_id, bar_id, lambda current: current.model_copy(update={"chords": chords}))
        log_event(logger, "chord_removed", level=logging.DEBUG, section_id=section_id, bar_id=bar_id, position=position)
        return removed.model_copy()

    def set_chord_voicing(self, section_id: str, bar_id: str, position: int, voicing: str) -> ChordPlacement | None:
        _, section = self._get(section_id)
        _, bar = self._bar(section, bar_id)
        match = next((idx for idx, placement in enumerate(bar.chords) if placement.position == position), None)
        if match is None:
            return None

        updated = bar.chords[match].model_copy(update={"voicing": voicing})
        chords = list(bar.chords)
        chords[match] = updated
        self._replace_bar(section_id, bar_id, lambda current: current.model_copy(update={"chords": chords}))
        return updated.model_copy()

    # -- chords, absolute -------------------------------------------------

    def resolve(self, section_id: str, absolute_pos: int) -> tuple[str, int]:
        _, section = self._get(section_id)
        return absolute_to_bar_relative(section.bars, absolute_pos)

    def place_chord_at(self, section_id: str, absolute_pos: int, chord: str, voicing: str | None = None) -> ChordPlacement:
        bar_id, rel_pos = self.resolve(section_id, absolute_pos)
        return self.place_chord(section_id, bar_id, rel_pos, chord, voicing)

    def move_chord_at(self, section_id: str, old_absolute: int, new_absolute: int) -> ChordPlacement | None:
        old_bar_id, old_rel = self.resolve(section_id, old_absolute)
        new_bar_id, new_rel = self.resolve(section_id, new_absolute)
        if old_bar_id == new_bar_id:
            return self.move_chord(section_id, old_bar_id, old_rel, new_rel)

        section_index, section = self._get(section_id)
        old_index, old_bar = self._bar(section, old_bar_id)
        match = next((idx for idx, placement in enumerate(old_bar.chords) if placement.position == old_rel), None)
        if match is None:
            return None

        new_index, new_bar = self._bar(section, new_bar_id)
        moved = old_bar.chords[match].model_copy(update={"position": _clamp(new_rel, new_bar.text)})
        bars = list(section.bars)
        bars[old_index] = old_bar.model_copy(update={"chords": old_bar.chords[:match] + old_bar.chords[match + 1 :]})
        bars[new_index] = new_bar.model_copy(update={"chords": sort_placements([*new_bar.chords, moved])})
        self._commit(section_index, bars)
        log_event(
            logger,
            "chord_moved",
            level=logging.DEBUG,
            section_id=section_id,
            from_bar_id=old_bar_id,
            bar_id=new_bar_id,
            to_position=moved.position,
        )
        return moved.model_copy()

    def remove_chord_at(self, section_id: str, absolute_pos: int) -> ChordPlacement | None:
        bar_id, rel_pos = self.resolve(section_id, absolute_pos)
        return self.remove_chord(section_id, bar_id, rel_pos)

    def set_chord_voicing_at(self, section_id: str, absolute_pos: int, voicing: str) -> ChordPlacement | None:
        bar_id, rel_pos = self.resolve(section_id, absolute_pos)
        return self.set_chord_voicing(section_id, bar_id, rel_pos, voicing)
