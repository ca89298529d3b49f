"""
Canonical writer - regenerate a whole diagram document from a graph store.

The directive codec patches one line at a time and keeps everything else
as the author wrote it; this module does the opposite and rewrites the
document from the graph. Output layout::

    graph TD
    A[Start] --> B[End]
    C

    %% @node: A {"uid":"n_...","x":100,"y":50}
    %% @edge: e1 {"eid":"e_...","source":"A","target":"B"}

Directive keys are written in a fixed order (identity first, then
position and kind, then the remaining metadata as stored), so regenerating
an unchanged store produces an identical document.
"""

import re
from typing import Any, Optional

from .directives import DEFAULT_MARKER, EDGE_TAG, NODE_TAG, format_directive
from .graph_store import GraphStore
from .models import Edge, Node

NODE_KEYS = ("uid", "x", "y", "kind")
EDGE_KEYS = ("eid", "source", "target", "label")
DEFAULT_DIRECTION = "TD"

_HEADER = re.compile(r"^[ \t]*(?:graph|flowchart)[ \t]+(?P<direction>[A-Za-z]{2})\b", re.MULTILINE)


def detect_direction(text: str, default: str = DEFAULT_DIRECTION) -> str:
    """Direction of the first ``graph``/``flowchart`` header in `text`."""
    match = _HEADER.search(text)
    return match.group("direction") if match else default


def _number(value: float) -> int | float:
    return int(value) if float(value).is_integer() else value


def node_declaration(node: Node) -> str:
    """`A` or `A[label]` when the label differs from the text id."""
    if node.label and node.label != node.text_id:
        return f"{node.text_id}[{node.label}]"
    return node.text_id


def canonical_node_body(node: Node) -> dict[str, Any]:
    body: dict[str, Any] = {"uid": node.stable_id}
    if node.x is not None:
        body["x"] = _number(node.x)
    if node.y is not None:
        body["y"] = _number(node.y)
    if node.kind:
        body["kind"] = node.kind
    for key, value in node.metadata.items():
        if key not in NODE_KEYS:
            body[key] = value
    return body


def canonical_edge_body(edge: Edge, source: Node, target: Node) -> dict[str, Any]:
    body: dict[str, Any] = {
        "eid": edge.stable_id,
        "source": source.text_id,
        "target": target.text_id,
    }
    if edge.label:
        body["label"] = edge.label
    for key, value in edge.metadata.items():
        if key not in EDGE_KEYS:
            body[key] = value
    return body


def _live_node(store: GraphStore, stable_id: str) -> Optional[Node]:
    node = store.get_node(stable_id)
    if node is None or node.deleted:
        return None
    return node


def _topology(store: GraphStore, direction: str) -> tuple[list[str], list[tuple[Edge, Node, Node]]]:
    """Header, edge lines and unconnected nodes, plus the edges that were written."""
    lines = [f"graph {direction}"]
    written: list[tuple[Edge, Node, Node]] = []
    connected: set[str] = set()

    for edge in store.active_edges():
        source = _live_node(store, edge.source_id)
        target = _live_node(store, edge.target_id)
        if source is None or target is None:
            continue
        arrow = f"-->|{edge.label}|" if edge.label else "-->"
        lines.append(f"{node_declaration(source)} {arrow} {node_declaration(target)}")
        written.append((edge, source, target))
        connected.update((source.stable_id, target.stable_id))

    for node in store.active_nodes():
        if node.stable_id not in connected:
            lines.append(node_declaration(node))
    return lines, written


def write_topology(store: GraphStore, direction: str = DEFAULT_DIRECTION) -> str:
    """Just the flowchart statements, without directives."""
    lines, _ = _topology(store, direction)
    return "\n".join(lines) + "\n"


def write_document(store: GraphStore, direction: str = DEFAULT_DIRECTION, marker: str = DEFAULT_MARKER) -> str:
    """
    Generate a complete document: topology, then one directive per node and edge.

    Edges whose endpoints no longer exist are left out. Edge directives are
    named ``e1``, ``e2``, ... in output order. Edge directives are matched
    to edges by their endpoints, so parallel edges between the same two
    nodes share one identity after a reparse.

    Args:
        store: The graph to write
        direction: Flowchart direction for the header (TD, LR, ...)
        marker: Comment marker of the diagram syntax

    Returns:
        The document text, ending with a newline
    """
    lines, written = _topology(store, direction)
    lines.append("")

    for node in store.active_nodes():
        lines.append(format_directive(node.text_id, canonical_node_body(node), marker, NODE_TAG))
    for index, (edge, source, target) in enumerate(written, start=1):
        body = canonical_edge_body(edge, source, target)
        lines.append(format_directive(f"e{index}", body, marker, EDGE_TAG))

    return "\n".join(lines) + "\n"
