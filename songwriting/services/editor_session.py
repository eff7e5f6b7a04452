from __future__ import annotations

import logging
from typing import Callable

from songwriting.logging_utils import bind_session, log_event, unbind_session
from songwriting.models import NodeType, SongDocument, SongNode, TimeSignature, new_id
from songwriting.services import canvas
from songwriting.services.bar_store import BarStore, lower_section
from songwriting.services.chord_catalog import resolve_progression
from songwriting.services.timeline import Timeline
from songwriting.services.transport import ClickRequest, Scheduler, Transport
from songwriting.settings import beats_per_bar, clamp_tempo, get_settings

logger = logging.getLogger(__name__)


class EditorSession:
    """One open song: the bar store, its metronome and the free-form canvas.

    The store is authoritative. The timeline is built on first use and
    refreshed from the store; canvas nodes are kept alongside and never
    reconciled with bars.
    """

    def __init__(
        self,
        document: SongDocument,
        scheduler: Scheduler | None = None,
        click: Callable[[ClickRequest], None] | None = None,
    ) -> None:
        self.id = new_id()
        self.document = document.model_copy(update={"structure": []}, deep=True)
        self.store = BarStore(document.structure)
        self.transport = Transport(scheduler=scheduler, click=click)
        self.nodes: list[SongNode] = []
        self._timeline: Timeline | None = None

    @classmethod
    def open(
        cls,
        document: SongDocument,
        scheduler: Scheduler | None = None,
        click: Callable[[ClickRequest], None] | None = None,
    ) -> "EditorSession":
        session = cls(document, scheduler=scheduler, click=click)
        log_event(logger, "session_opened", session_id=session.id, title=document.title, section_count=len(session.store))
        return session

    # -- song settings ----------------------------------------------------

    @property
    def beats_per_bar(self) -> int:
        return beats_per_bar(self.document.time_signature)

    def set_tempo(self, tempo: float) -> int:
        self.document = self.document.model_copy(update={"tempo": clamp_tempo(tempo)})
        return self.document.tempo

    def set_time_signature(self, time_signature: TimeSignature) -> None:
        self.document = SongDocument.model_validate(
            {**self.document.model_dump(), "time_signature": time_signature}
        )
        if self._timeline is not None:
            self._timeline.beats_per_bar = self.beats_per_bar
            self._timeline.refresh()

    def progression_chords(self) -> list[str]:
        return resolve_progression(self.document.key, self.document.chord_progression)

    def to_document(self) -> SongDocument:
        structure = [lower_section(section) for section in self.store.snapshot()]
        return self.document.model_copy(update={"structure": structure}, deep=True)

    # -- timeline ---------------------------------------------------------

    @property
    def timeline(self) -> Timeline:
        if self._timeline is None:
            self._timeline = Timeline(
                self.store,
                self.beats_per_bar,
                key=self.document.key,
                default_section_bars=get_settings().default_section_bars,
            )
        return self._timeline

    # -- transport --------------------------------------------------------

    def play(self, on_beat: Callable[[int], None], on_complete: Callable[[], None] | None = None) -> None:
        """Start the metronome at the song's tempo and meter.

        Without an injected scheduler the timer comes from the running asyncio
        loop, so calling this from synchronous code raises ``RuntimeError``.
        """
        token = bind_session(self.id)
        try:
            self.transport.start(self.document.tempo, self.beats_per_bar, on_beat, on_complete)
        finally:
            unbind_session(token)

    def stop(self) -> None:
        token = bind_session(self.id)
        try:
            self.transport.stop()
        finally:
            unbind_session(token)

    def close(self) -> None:
        self.stop()
        self._timeline = None
        log_event(logger, "session_closed", session_id=self.id)

    # -- canvas -----------------------------------------------------------

    def add_node(self, node_type: NodeType, x: float, y: float, chord: str | None = None) -> SongNode:
        self.nodes = canvas.add_node(self.nodes, node_type, x, y, chord=chord, key=self.document.key)
        return self.nodes[-1]

    def move_node(self, node_id: str, x: float, y: float) -> None:
        self.nodes = canvas.move_node(self.nodes, node_id, x, y)

    def resize_node(self, node_id: str, width: float) -> None:
        self.nodes = canvas.resize_node(self.nodes, node_id, width)

    def delete_node(self, node_id: str) -> None:
        self.nodes = canvas.delete_node(self.nodes, node_id)

    def update_node_content(self, node_id: str, content: str) -> None:
        self.nodes = canvas.update_node_content(self.nodes, node_id, content)

    def bring_to_front(self, node_id: str) -> None:
        self.nodes = canvas.bring_to_front(self.nodes, node_id)
