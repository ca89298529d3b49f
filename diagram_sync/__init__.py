"""
Diagram Sync - Bidirectional text/graph synchronization for diagram editors.

This package keeps a diagram's text and its node/edge graph consistent,
embeds per-node metadata in comment directives, and navigates nested
diagrams. It is used by both the API server and the CLI.
"""

from .models import (
    # Enums
    NodeKind,
    # Graph models
    Node,
    Edge,
    # Parser contract
    ParsedNode,
    ParsedEdge,
    ParseResult,
    # Navigation
    DiagramFrame,
    Breadcrumb,
    # Render output
    RenderNode,
    RenderEdge,
    GraphSnapshot,
)

from .aliases import AliasRegistry
from .graph_store import GraphStore
from .directives import (
    DirectiveCodec,
    DirectiveLookup,
    DirectiveStatus,
    merge_patch,
    upsert_node_directive,
)
from .parser import parse_diagram, DiagramParseError
from .layout import get_layout, apply_layout, waterfall_layout, grid_layout, tree_layout, force_layout
from .sync import SyncController, EditSource
from .navigation import NavigationStack, fold_into_parent, seed_nested_diagram
from .validation import validate_graph, validation_summary, ValidationIssue, IssueSeverity
from .config import SyncConfig, get_config

__all__ = [
    # Enums
    "NodeKind",
    "EditSource",
    "DirectiveStatus",
    "IssueSeverity",
    # Models
    "Node",
    "Edge",
    "ParsedNode",
    "ParsedEdge",
    "ParseResult",
    "DiagramFrame",
    "Breadcrumb",
    "RenderNode",
    "RenderEdge",
    "GraphSnapshot",
    # Graph
    "AliasRegistry",
    "GraphStore",
    # Directives
    "DirectiveCodec",
    "DirectiveLookup",
    "merge_patch",
    "upsert_node_directive",
    # Parser
    "parse_diagram",
    "DiagramParseError",
    # Layout
    "get_layout",
    "apply_layout",
    "waterfall_layout",
    "grid_layout",
    "tree_layout",
    "force_layout",
    # Sync and navigation
    "SyncController",
    "NavigationStack",
    "fold_into_parent",
    "seed_nested_diagram",
    # Validation
    "validate_graph",
    "validation_summary",
    "ValidationIssue",
    # Config
    "SyncConfig",
    "get_config",
]
