"""
Graph validation - report what the editor tolerates silently.

The sync engine never rejects a document: dangling references, directives
nobody owns and bodies only the loose parser could read all still render.
This module lists them so the API server and the CLI can surface them.
"""

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Iterator, Optional

from .directives import DirectiveCodec, DirectiveStatus, NODE_TAG
from .models import NodeKind

if TYPE_CHECKING:
    from .graph_store import GraphStore


class IssueSeverity(str, Enum):
    """Severity levels for validation issues."""
    ERROR = "error"      # Graph is inconsistent
    WARNING = "warning"  # Text probably does not say what the author meant
    INFO = "info"        # Worth knowing, often intentional


@dataclass
class ValidationIssue:
    """A single validation issue found in a graph or its text."""
    severity: IssueSeverity
    message: str
    node_id: str | None = None
    edge_id: str | None = None
    line: int | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {"type": self.severity.value, "message": self.message}
        for key in ("node_id", "edge_id", "line"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        return result


GraphCheck = Callable[["GraphStore"], Iterator[ValidationIssue]]


def _check_unconnected(store: "GraphStore") -> Iterator[ValidationIssue]:
    nodes = store.active_nodes()
    if len(nodes) < 2:
        return
    connected = set()
    for edge in store.active_edges():
        connected.update((edge.source_id, edge.target_id))
    for node in nodes:
        if node.stable_id not in connected:
            yield ValidationIssue(
                severity=IssueSeverity.WARNING,
                message=f"Unconnected node: {node.label} ({node.text_id})",
                node_id=node.stable_id,
            )


def _check_edge_endpoints(store: "GraphStore") -> Iterator[ValidationIssue]:
    for edge in store.active_edges():
        for role, node_id in (("source", edge.source_id), ("target", edge.target_id)):
            node = store.get_node(node_id)
            if node is None or node.deleted:
                yield ValidationIssue(
                    severity=IssueSeverity.ERROR,
                    message=f"Edge {role} {node_id} does not exist",
                    edge_id=edge.stable_id,
                )


def _check_self_loops(store: "GraphStore") -> Iterator[ValidationIssue]:
    for edge in store.active_edges():
        if edge.source_id == edge.target_id:
            yield ValidationIssue(
                severity=IssueSeverity.WARNING,
                message="Edge points back to its own source",
                node_id=edge.source_id,
                edge_id=edge.stable_id,
            )


def _check_duplicate_edges(store: "GraphStore") -> Iterator[ValidationIssue]:
    seen: set[tuple[str, str]] = set()
    for edge in store.active_edges():
        pair = (edge.source_id, edge.target_id)
        if pair in seen:
            yield ValidationIssue(
                severity=IssueSeverity.WARNING,
                message=f"Duplicate edge from {edge.source_id} to {edge.target_id}",
                edge_id=edge.stable_id,
            )
        seen.add(pair)


def _check_nested_payloads(store: "GraphStore") -> Iterator[ValidationIssue]:
    for node in store.active_nodes():
        if node.kind != NodeKind.DIAGRAM.value:
            continue
        nested = node.metadata.get("diagram")
        if not isinstance(nested, dict) or not isinstance(nested.get("mermaidman"), str):
            yield ValidationIssue(
                severity=IssueSeverity.INFO,
                message=f"Diagram node {node.text_id} has no nested document yet",
                node_id=node.stable_id,
            )


GRAPH_CHECKS: list[GraphCheck] = [
    _check_unconnected,
    _check_edge_endpoints,
    _check_self_loops,
    _check_duplicate_edges,
    _check_nested_payloads,
]


def _check_directives(store: "GraphStore", text: str, codec: DirectiveCodec) -> Iterator[ValidationIssue]:
    for directive in codec.iter_directives(text):
        if directive.status == DirectiveStatus.MALFORMED:
            yield ValidationIssue(
                severity=IssueSeverity.WARNING,
                message=f"Directive for {directive.text_id} is not valid JSON; only x/y were recovered",
                line=directive.line_number,
            )
        if directive.tag == NODE_TAG and store.node_for_text_id(directive.text_id) is None:
            yield ValidationIssue(
                severity=IssueSeverity.WARNING,
                message=f"Orphaned directive: no node named {directive.text_id}",
                line=directive.line_number,
            )


def validate_graph(
    store: "GraphStore",
    text: Optional[str] = None,
    codec: Optional[DirectiveCodec] = None
) -> list[ValidationIssue]:
    """
    Run every graph check, plus the directive checks when `text` is given.

    Args:
        store: The graph store to validate
        text: The diagram text the store was built from
        codec: Directive codec for the text's comment marker

    Returns:
        Issues in check order; an empty graph yields a single INFO issue
    """
    issues: list[ValidationIssue] = []
    if text is not None:
        issues.extend(_check_directives(store, text, codec or DirectiveCodec()))

    if not store.active_nodes():
        issues.append(ValidationIssue(severity=IssueSeverity.INFO, message="Diagram has no nodes"))
        return issues

    for check in GRAPH_CHECKS:
        issues.extend(check(store))
    return issues


def validation_summary(issues: list[ValidationIssue]) -> dict:
    """Count issues by severity; the graph is valid when there are no errors."""
    counts = Counter(issue.severity for issue in issues)
    return {
        "total": len(issues),
        "errors": counts[IssueSeverity.ERROR],
        "warnings": counts[IssueSeverity.WARNING],
        "info": counts[IssueSeverity.INFO],
        "valid": counts[IssueSeverity.ERROR] == 0,
    }
