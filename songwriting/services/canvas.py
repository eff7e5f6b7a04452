from __future__ import annotations

import logging

from songwriting.errors import CompositionError, NodeNotFoundError
from songwriting.logging_utils import log_event
from songwriting.models import NodeType, SongNode
from songwriting.services.chord_catalog import default_voicing, resolve_chord

logger = logging.getLogger(__name__)

LYRIC_NODE_WIDTH = 200.0
LYRIC_NODE_MIN_WIDTH = 100.0
CHORD_NODE_WIDTH = 80.0
CHORD_NODE_HEIGHT = 40.0
BASE_Z_INDEX = 10

# Canvas nodes are pixel-positioned and never converted to or from bars.


def _find(nodes: list[SongNode], node_id: str) -> int:
    for idx, node in enumerate(nodes):
        if node.id == node_id:
            return idx
    raise NodeNotFoundError(node_id)


def _replace(nodes: list[SongNode], idx: int, node: SongNode) -> list[SongNode]:
    updated = list(nodes)
    updated[idx] = node
    return updated


def add_node(
    nodes: list[SongNode],
    node_type: NodeType,
    x: float,
    y: float,
    *,
    chord: str | None = None,
    key: str = "C",
) -> list[SongNode]:
    x, y = max(0.0, x), max(0.0, y)
    if node_type == "lyric":
        node = SongNode(type="lyric", x=x, y=y, width=LYRIC_NODE_WIDTH, content="")
    elif node_type == "chord":
        if not chord:
            raise CompositionError("Chord nodes need a chord from the palette.")
        name = resolve_chord(key, chord)
        node = SongNode(
            type="chord",
            x=x,
            y=y,
            width=CHORD_NODE_WIDTH,
            height=CHORD_NODE_HEIGHT,
            content=name,
            voicing=default_voicing(name),
        )
    else:
        raise CompositionError(f"Unsupported canvas node type: {node_type}")
    log_event(logger, "canvas_node_added", node_id=node.id, node_type=node.type, x=x, y=y)
    return [*nodes, node]


def move_node(nodes: list[SongNode], node_id: str, x: float, y: float) -> list[SongNode]:
    idx = _find(nodes, node_id)
    moved = nodes[idx].model_copy(update={"x": max(0.0, x), "y": max(0.0, y)})
    return _replace(nodes, idx, moved)


def resize_node(nodes: list[SongNode], node_id: str, new_width: float) -> list[SongNode]:
    """Resize a lyric node; chord nodes keep their fixed size."""
    idx = _find(nodes, node_id)
    node = nodes[idx]
    if node.type != "lyric":
        return list(nodes)
    return _replace(nodes, idx, node.model_copy(update={"width": max(LYRIC_NODE_MIN_WIDTH, new_width)}))


def delete_node(nodes: list[SongNode], node_id: str) -> list[SongNode]:
    idx = _find(nodes, node_id)
    log_event(logger, "canvas_node_deleted", node_id=node_id, node_type=nodes[idx].type)
    return [node for i, node in enumerate(nodes) if i != idx]


def update_node_content(nodes: list[SongNode], node_id: str, content: str) -> list[SongNode]:
    idx = _find(nodes, node_id)
    return _replace(nodes, idx, nodes[idx].model_copy(update={"content": content}))


def bring_to_front(nodes: list[SongNode], node_id: str) -> list[SongNode]:
    idx = _find(nodes, node_id)
    others = [node.z_index or BASE_Z_INDEX for i, node in enumerate(nodes) if i != idx]
    top = max(others, default=BASE_Z_INDEX - 1) + 1
    return _replace(nodes, idx, nodes[idx].model_copy(update={"z_index": top}))
