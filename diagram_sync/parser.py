"""
Reference parser for the Mermaid flowchart subset used by the editor.

The sync engine only depends on the parser contract (text in,
`ParseResult` out); this module is the default implementation of that
contract. Supported input:

- ``graph TD`` / ``flowchart LR`` headers
- Node declarations: ``A``, ``A[label]``, ``A(label)``, ``A((label))``, ``A{label}``
- Edges: ``-->``, ``---``, ``-.->``, ``-.-``, ``==>`` with an optional
  ``|label|``, chained as ``A --> B --> C``
- ``%% @node:`` and ``%% @edge:`` directives (last directive per id wins)

Directives only decorate nodes and edges that exist in the topology; a
directive whose id is never declared is ignored here (validation reports
it as orphaned).
"""

import logging
import re
from typing import Any, Optional

from .directives import DirectiveCodec, DEFAULT_MARKER, NODE_TAG, EDGE_TAG
from .models import ParsedNode, ParsedEdge, ParseResult

logger = logging.getLogger(__name__)


HEADER_KEYWORDS = ("graph", "flowchart")
SKIPPED_KEYWORDS = (
    "subgraph", "end", "classDef", "class", "style",
    "linkStyle", "click", "direction",
)

_NODE = re.compile(
    r"(?P<id>[A-Za-z0-9_]+)"
    r"(?:\(\((?P<circle>.*?)\)\)"
    r"|\[(?P<square>[^\]]*)\]"
    r"|\((?P<round>[^)]*)\)"
    r"|\{(?P<rhombus>[^}]*)\})?"
)
_ARROW = re.compile(r"\s*(?P<arrow>-\.->|-\.-|-->|---|==>)\s*(?:\|(?P<label>[^|]*)\|\s*)?")


class DiagramParseError(ValueError):
    """Raised when a line of diagram text cannot be parsed."""

    def __init__(self, message: str, line_number: Optional[int] = None):
        self.line_number = line_number
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)


def _clean_label(raw: Optional[str]) -> Optional[str]:
    if raw is None:
        return None
    label = raw.strip()
    if len(label) >= 2 and label[0] == label[-1] == '"':
        label = label[1:-1]
    return label or None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class _Statement:
    """Nodes and edges found on one line."""

    def __init__(self):
        self.nodes: list[tuple[str, Optional[str]]] = []
        self.edges: list[tuple[str, str, Optional[str]]] = []


def _parse_statement(line: str, line_number: int) -> _Statement:
    statement = _Statement()
    body = line.rstrip(";").rstrip()

    match = _NODE.match(body)
    if match is None:
        raise DiagramParseError(f"expected a node id: {line!r}", line_number)
    groups = match.groupdict()
    previous = match.group("id")
    statement.nodes.append((previous, _clean_label(
        groups["circle"] or groups["square"] or groups["round"] or groups["rhombus"]
    )))
    pos = match.end()

    while pos < len(body):
        arrow = _ARROW.match(body, pos)
        if arrow is None:
            raise DiagramParseError(f"unexpected input {body[pos:]!r}", line_number)
        pos = arrow.end()
        node = _NODE.match(body, pos)
        if node is None or node.end() == pos:
            raise DiagramParseError(f"edge without a target: {line!r}", line_number)
        groups = node.groupdict()
        current = node.group("id")
        statement.nodes.append((current, _clean_label(
            groups["circle"] or groups["square"] or groups["round"] or groups["rhombus"]
        )))
        statement.edges.append((previous, current, _clean_label(arrow.group("label"))))
        previous = current
        pos = node.end()

    return statement


def parse_diagram(text: str, marker: str = DEFAULT_MARKER) -> ParseResult:
    """
    Parse diagram text into nodes and edges.

    Args:
        text: The full diagram source
        marker: Comment marker of the diagram syntax

    Returns:
        ParseResult with nodes in first-seen order and edges in source order

    Raises:
        DiagramParseError: on a line that is neither a comment, a known
            statement, a node declaration nor an edge
    """
    codec = DirectiveCodec(marker)
    labels: dict[str, Optional[str]] = {}
    edges: list[tuple[str, str, Optional[str]]] = []
    node_directives: dict[str, dict[str, Any]] = {}
    edge_directives: dict[tuple[str, str], tuple[str, dict[str, Any]]] = {}

    for line_number, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line:
            continue

        # 1. Directives and comments
        if codec.is_comment(line):
            directive = codec.parse_line(line, line_number)
            if directive is None:
                continue
            if directive.tag == NODE_TAG:
                node_directives[directive.text_id] = directive.body
            elif directive.tag == EDGE_TAG:
                source = directive.body.get("source")
                target = directive.body.get("target")
                if isinstance(source, str) and isinstance(target, str):
                    edge_directives[(source, target)] = (directive.text_id, directive.body)
            continue

        # 2. Headers and statements the engine does not model
        keyword = line.split(None, 1)[0]
        if keyword in HEADER_KEYWORDS or keyword in SKIPPED_KEYWORDS:
            continue

        # 3. Node declarations and edges
        statement = _parse_statement(line, line_number)
        for node_id, label in statement.nodes:
            if node_id not in labels or label is not None:
                labels[node_id] = label if label is not None else labels.get(node_id)
        edges.extend(statement.edges)

    nodes = []
    for node_id, label in labels.items():
        data: dict[str, Any] = {"id": node_id, "label": label}
        directive = node_directives.get(node_id)
        if directive is not None:
            if _is_number(directive.get("x")):
                data["x"] = directive["x"]
            if _is_number(directive.get("y")):
                data["y"] = directive["y"]
            if isinstance(directive.get("uid"), str):
                data["stable_id"] = directive["uid"]
            data["metadata"] = directive
        nodes.append(ParsedNode(**data))

    parsed_edges = []
    for source, target, label in edges:
        data = {"source_id": source, "target_id": target, "label": label}
        match = edge_directives.get((source, target))
        if match is not None:
            edge_id, body = match
            eid = body.get("eid")
            data["stable_id"] = eid if isinstance(eid, str) else edge_id
            data["metadata"] = body
            if label is None and isinstance(body.get("label"), str):
                data["label"] = body["label"]
        parsed_edges.append(ParsedEdge(**data))

    logger.debug("Parsed %d nodes, %d edges", len(nodes), len(parsed_edges))
    return ParseResult(nodes=nodes, edges=parsed_edges)
