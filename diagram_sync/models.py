"""
Core data models for the diagram sync engine.

These models define the canonical schema shared by every layer:
- Nodes and edges of the in-memory graph, keyed by stable ids
- The parser output contract (parsed nodes/edges) consumed by the store
- Navigation frames for nested diagrams
- Render models published after every successful sync

Field Naming Convention:
- Python attributes are snake_case (`stable_id`, `source_id`)
- Parser payloads may use camelCase (`stableId`, `sourceId`) or the legacy
  short names used inside directives (`uid`, `eid`, `meta`, `source`, `target`);
  these are converted on input
"""

from enum import Enum
from typing import Optional, Any
from pydantic import BaseModel, Field, model_validator
import uuid


NODE_ID_PREFIX = "n_"
EDGE_ID_PREFIX = "e_"


class NodeKind(str, Enum):
    """Known node kinds. The core treats `kind` as an open string."""
    CARD = "card"
    NOTE = "note"
    CODE = "code"
    MEDIA = "media"
    DIAGRAM = "diagram"
    MARKDOWN = "markdown"
    OEMBED = "oembed"
    TEXT = "text"
    IMAGE = "image"
    EMBED = "embed"


def generate_node_id() -> str:
    """Generate a unique node ID."""
    return f"{NODE_ID_PREFIX}{uuid.uuid4().hex[:8]}"


def generate_edge_id() -> str:
    """Generate a unique edge ID."""
    return f"{EDGE_ID_PREFIX}{uuid.uuid4().hex[:8]}"


def _rename_keys(data: dict, renames: dict[str, str]) -> dict:
    data = dict(data)
    for old, new in renames.items():
        if old in data and new not in data:
            data[new] = data.pop(old)
    return data


class Node(BaseModel):
    """A node in the graph store."""
    stable_id: str = Field(default_factory=generate_node_id)
    text_id: str
    label: str = ""
    x: Optional[float] = None
    y: Optional[float] = None
    kind: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    deleted: bool = False
    updated_at: int = 0

    @property
    def has_position(self) -> bool:
        return self.x is not None and self.y is not None

    def position(self) -> Optional[tuple[float, float]]:
        """Get the (x, y) position, or None when layout should decide."""
        if not self.has_position:
            return None
        return (self.x, self.y)


class Edge(BaseModel):
    """An edge connecting two nodes by stable id."""
    stable_id: str = Field(default_factory=generate_edge_id)
    source_id: str
    target_id: str
    label: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    deleted: bool = False
    updated_at: int = 0


# --- Parser contract ---

class ParsedNode(BaseModel):
    """A node as produced by the external diagram parser."""
    id: str
    label: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    stable_id: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None

    @model_validator(mode='before')
    @classmethod
    def convert_legacy_fields(cls, data: Any) -> Any:
        """Accept camelCase and the directive-style `uid`/`meta` names."""
        if isinstance(data, dict):
            data = _rename_keys(data, {
                "stableId": "stable_id",
                "uid": "stable_id",
                "meta": "metadata",
            })
        return data


class ParsedEdge(BaseModel):
    """An edge as produced by the external diagram parser (endpoints are TextIds)."""
    source_id: str
    target_id: str
    label: Optional[str] = None
    stable_id: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None

    @model_validator(mode='before')
    @classmethod
    def convert_legacy_fields(cls, data: Any) -> Any:
        """Convert `source`/`target`, camelCase and `eid`/`meta` names."""
        if isinstance(data, dict):
            data = _rename_keys(data, {
                "sourceId": "source_id",
                "source": "source_id",
                "targetId": "target_id",
                "target": "target_id",
                "stableId": "stable_id",
                "eid": "stable_id",
                "meta": "metadata",
            })
        return data


class ParseResult(BaseModel):
    """Complete output of one parser run."""
    nodes: list[ParsedNode] = Field(default_factory=list)
    edges: list[ParsedEdge] = Field(default_factory=list)


# --- Navigation ---

class DiagramFrame(BaseModel):
    """One level of the nested-diagram navigation stack."""
    title: str
    raw_text: str
    owner_node_id: Optional[str] = None  # TextId of the owning node in the parent frame


class Breadcrumb(BaseModel):
    """A breadcrumb entry; clickable entries navigate to `depth`."""
    title: str
    depth: int
    clickable: bool


# --- Render output ---

class RenderNode(BaseModel):
    """A node as handed to layout and rendering."""
    stable_id: str
    text_id: str
    label: str
    x: Optional[float] = None
    y: Optional[float] = None
    has_position: bool = False
    kind: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_node(cls, node: Node) -> "RenderNode":
        return cls(
            stable_id=node.stable_id,
            text_id=node.text_id,
            label=node.label or node.text_id,
            x=node.x,
            y=node.y,
            has_position=node.has_position,
            kind=node.kind,
            metadata=dict(node.metadata),
        )


class RenderEdge(BaseModel):
    """An edge as handed to layout and rendering."""
    stable_id: str
    source_id: str
    target_id: str
    label: Optional[str] = None

    @classmethod
    def from_edge(cls, edge: Edge) -> "RenderEdge":
        return cls(
            stable_id=edge.stable_id,
            source_id=edge.source_id,
            target_id=edge.target_id,
            label=edge.label,
        )


class GraphSnapshot(BaseModel):
    """
    The result of one successful text -> graph sync.

    This is what gets published to renderers and WebSocket clients.
    """
    revision: int = 0
    text: str = ""
    nodes: list[RenderNode] = Field(default_factory=list)
    edges: list[RenderEdge] = Field(default_factory=list)
    orphaned_node_ids: list[str] = Field(default_factory=list)

    def get_node(self, stable_id: str) -> Optional[RenderNode]:
        """Get a render node by stable ID (O(n))."""
        for node in self.nodes:
            if node.stable_id == stable_id:
                return node
        return None

    def node_for_text_id(self, text_id: str) -> Optional[RenderNode]:
        """Get a render node by its text ID (O(n))."""
        for node in self.nodes:
            if node.text_id == text_id:
                return node
        return None
