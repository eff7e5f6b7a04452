class CompositionError(ValueError):
    """Base error for rejected composition edits. No state is changed when raised."""


class SectionNotFoundError(CompositionError):
    def __init__(self, section_id: str):
        self.section_id = section_id
        super().__init__(f"Section not found: {section_id}")


class BarNotFoundError(CompositionError):
    def __init__(self, section_id: str, bar_id: str):
        self.section_id = section_id
        self.bar_id = bar_id
        super().__init__(f"Bar {bar_id} not found in section {section_id}")


class LastBarError(CompositionError):
    def __init__(self, section_id: str):
        self.section_id = section_id
        super().__init__("Cannot remove the last bar. A section must have at least one bar.")


class BarTextError(CompositionError):
    def __init__(self, bar_id: str):
        self.bar_id = bar_id
        super().__init__("Bar text cannot contain line breaks; add a new bar instead.")


class TrackMismatchError(CompositionError):
    def __init__(self, payload_kind: str, track: str, expected_track: str):
        self.payload_kind = payload_kind
        self.track = track
        self.expected_track = expected_track
        super().__init__(f"{payload_kind} items can only be dropped on the {expected_track} track, not {track}.")


class TimelineItemNotFoundError(CompositionError):
    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Timeline item not found: {item_id}")


class NodeNotFoundError(CompositionError):
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Canvas node not found: {node_id}")


class StaleTimelineError(CompositionError):
    def __init__(self) -> None:
        super().__init__("The song changed since the timeline was built; refresh the timeline and reapply the edit.")
