"""
Graph Store - authoritative in-memory graph for one diagram document.

This module implements:
- O(1) node/edge lookups by stable id
- Identity stability: a text id maps to the same stable id for the
  lifetime of a store, and may inherit the stable id a previous store
  assigned to it
- Create-or-update primitives driven by the external parser's output
- Tombstoning instead of hard deletes

Unknown ids passed to mutators are silent no-ops: a drag can race a
reparse, and the UI re-renders from a fresh parse shortly after.
"""

import itertools
import logging
from typing import Optional

from .aliases import AliasRegistry
from .models import (
    Node, Edge, ParsedNode, ParsedEdge,
    generate_node_id, generate_edge_id,
)

logger = logging.getLogger(__name__)


class GraphStore:
    """
    Owns the nodes, edges and alias registry of one parsed document.

    A full reparse builds a new store (passing the old one as `previous`
    carries identities across); direct UI interactions such as a drag
    mutate the live store in place.
    """

    def __init__(self, previous: Optional["GraphStore"] = None):
        self._nodes: dict[str, Node] = {}          # stable_id -> Node
        self._edges: dict[str, Edge] = {}          # stable_id -> Edge
        self._aliases = AliasRegistry()
        self._issued_ids: set[str] = set()         # never reused within this store
        self._clock = itertools.count(1)
        self._previous_aliases = previous.aliases.copy() if previous is not None else None
        if previous is not None:
            # Only ids still live in the previous document are reserved
            self._issued_ids.update(previous._nodes)
            self._issued_ids.update(previous._edges)

    # --- Properties ---

    @property
    def nodes(self) -> dict[str, Node]:
        """Nodes by stable id (treat as read-only)."""
        return self._nodes

    @property
    def edges(self) -> dict[str, Edge]:
        """Edges by stable id (treat as read-only)."""
        return self._edges

    @property
    def aliases(self) -> AliasRegistry:
        return self._aliases

    # --- Id allocation ---

    def _tick(self) -> int:
        return next(self._clock)

    def _new_id(self, generate) -> str:
        while True:
            candidate = generate()
            if candidate not in self._issued_ids:
                self._issued_ids.add(candidate)
                return candidate

    def _inherited_node_id(self, text_id: str) -> Optional[str]:
        """Stable id the previous store used for `text_id`, if still free here."""
        if self._previous_aliases is None:
            return None
        stable_id = self._previous_aliases.resolve(text_id)
        if stable_id is None or stable_id in self._nodes:
            return None
        return stable_id

    # --- Node Operations ---

    def ensure_node(self, text_id: str, label: Optional[str] = None) -> Node:
        """
        Get the live node for `text_id`, creating it on first sight.

        This is the single entry point that guarantees identity stability:
        two calls with the same text id on one store yield the same node.
        """
        existing_id = self._aliases.resolve(text_id)
        if existing_id is not None and existing_id in self._nodes:
            node = self._nodes[existing_id]
            if label:
                node.label = label
                node.updated_at = self._tick()
            return node

        stable_id = self._inherited_node_id(text_id) or self._new_id(generate_node_id)
        self._issued_ids.add(stable_id)
        node = Node(
            stable_id=stable_id,
            text_id=text_id,
            label=label or text_id,
            updated_at=self._tick(),
        )
        self._nodes[stable_id] = node
        self._aliases.bind(stable_id, text_id)
        return node

    def ensure_node_with_stable_id(
        self,
        stable_id: str,
        text_id: str,
        label: Optional[str] = None
    ) -> Node:
        """
        Identity-preserving variant of `ensure_node`.

        Used when the parse result already carries a stable id (round-tripped
        through a directive). Re-binds the alias even if the text id changed,
        which is how a rename in the text keeps the node's identity.
        """
        node = self._nodes.get(stable_id)
        if node is not None:
            node.text_id = text_id
            if label:
                node.label = label
            node.updated_at = self._tick()
        else:
            self._issued_ids.add(stable_id)
            node = Node(
                stable_id=stable_id,
                text_id=text_id,
                label=label or text_id,
                updated_at=self._tick(),
            )
            self._nodes[stable_id] = node

        self._aliases.bind(stable_id, text_id)
        return node

    def move_node(self, stable_id: str, x: float, y: float):
        """Set a node's position. Unknown ids are ignored."""
        node = self._nodes.get(stable_id)
        if node is None:
            logger.debug("move_node: unknown node %s", stable_id)
            return
        node.x = x
        node.y = y
        node.updated_at = self._tick()

    def rename_node(self, stable_id: str, new_text_id: str):
        """Change a node's text id and repoint the alias registry."""
        node = self._nodes.get(stable_id)
        if node is None:
            logger.debug("rename_node: unknown node %s", stable_id)
            return
        if node.text_id == new_text_id:
            return

        node.text_id = new_text_id
        node.updated_at = self._tick()
        self._aliases.bind(stable_id, new_text_id)

    def get_node(self, stable_id: str) -> Optional[Node]:
        """Get a node by stable id (O(1) lookup)."""
        return self._nodes.get(stable_id)

    def node_for_text_id(self, text_id: str) -> Optional[Node]:
        """Get the node currently bound to a text id."""
        stable_id = self._aliases.resolve(text_id)
        if stable_id is None:
            return None
        return self._nodes.get(stable_id)

    def active_nodes(self) -> list[Node]:
        return [n for n in self._nodes.values() if not n.deleted]

    # --- Edge Operations ---

    def upsert_edge(self, source_id: str, target_id: str, label: Optional[str] = None) -> Edge:
        """
        Create an edge under a freshly minted stable id.

        Edges have no secondary alias, so calls without a stable id are
        never deduplicated.
        """
        edge = Edge(
            stable_id=self._new_id(generate_edge_id),
            source_id=source_id,
            target_id=target_id,
            label=label,
            updated_at=self._tick(),
        )
        self._edges[edge.stable_id] = edge
        return edge

    def upsert_edge_with_stable_id(
        self,
        stable_id: str,
        source_id: str,
        target_id: str,
        label: Optional[str] = None
    ) -> Edge:
        """Create or update the edge with a known stable id."""
        edge = self._edges.get(stable_id)
        if edge is not None:
            edge.source_id = source_id
            edge.target_id = target_id
            if label:
                edge.label = label
            edge.updated_at = self._tick()
            return edge

        self._issued_ids.add(stable_id)
        edge = Edge(
            stable_id=stable_id,
            source_id=source_id,
            target_id=target_id,
            label=label,
            updated_at=self._tick(),
        )
        self._edges[stable_id] = edge
        return edge

    def mark_edge_deleted(self, edge_id: str):
        """Tombstone an edge. Consumers filter on `deleted`."""
        edge = self._edges.get(edge_id)
        if edge is None:
            logger.debug("mark_edge_deleted: unknown edge %s", edge_id)
            return
        edge.deleted = True
        edge.updated_at = self._tick()

    def get_edge(self, edge_id: str) -> Optional[Edge]:
        """Get an edge by stable id (O(1) lookup)."""
        return self._edges.get(edge_id)

    def active_edges(self) -> list[Edge]:
        return [e for e in self._edges.values() if not e.deleted]

    def edges_for_node(self, stable_id: str) -> list[Edge]:
        """Active edges touching a node, in either direction."""
        return [e for e in self.active_edges() if stable_id in (e.source_id, e.target_id)]

    def outgoing_edges(self, stable_id: str) -> list[Edge]:
        return [e for e in self.active_edges() if e.source_id == stable_id]

    def incoming_edges(self, stable_id: str) -> list[Edge]:
        return [e for e in self.active_edges() if e.target_id == stable_id]

    # --- Parser adapters ---

    def upsert_node_from_parse_result(self, parsed: ParsedNode | dict) -> Node:
        """Apply one parsed node to the store."""
        if isinstance(parsed, dict):
            parsed = ParsedNode.model_validate(parsed)

        label = parsed.label or parsed.id
        if parsed.stable_id:
            node = self.ensure_node_with_stable_id(parsed.stable_id, parsed.id, label)
        else:
            node = self.ensure_node(parsed.id, label)

        if parsed.x is not None:
            node.x = parsed.x
        if parsed.y is not None:
            node.y = parsed.y
        if parsed.metadata is not None:
            node.metadata = dict(parsed.metadata)
            kind = parsed.metadata.get("kind")
            if isinstance(kind, str):
                node.kind = kind
        node.updated_at = self._tick()
        return node

    def upsert_edge_from_parse_result(self, parsed: ParsedEdge | dict) -> Edge:
        """
        Apply one parsed edge to the store.

        Endpoints are text ids; unknown endpoints are created through
        `ensure_node`, so an edge may reference a node declared later.
        """
        if isinstance(parsed, dict):
            parsed = ParsedEdge.model_validate(parsed)

        source = self.node_for_text_id(parsed.source_id) or self.ensure_node(parsed.source_id)
        target = self.node_for_text_id(parsed.target_id) or self.ensure_node(parsed.target_id)

        if parsed.stable_id:
            edge = self.upsert_edge_with_stable_id(
                parsed.stable_id, source.stable_id, target.stable_id, parsed.label
            )
        else:
            edge = self.upsert_edge(source.stable_id, target.stable_id, parsed.label)

        if parsed.metadata is not None:
            edge.metadata = dict(parsed.metadata)
        edge.updated_at = self._tick()
        return edge

    # --- Serialization ---

    def to_json_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "nodes": [n.model_dump() for n in self._nodes.values()],
            "edges": [e.model_dump() for e in self._edges.values()],
            "aliases": self._aliases.to_json_dict(),
        }
