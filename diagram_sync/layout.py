"""
Layout algorithms for nodes that have no position yet.

A node without coordinates in the text means "let layout decide". These
functions implement the layout contract consumed by the sync controller:

- Input: the current render nodes and edges
- Output: ``{stable_id: (x, y)}`` for every node lacking a position
- Nodes that already carry a position are never moved

Strategies:
- Waterfall: diagonal cascade (the editor's historical fallback)
- Grid: simple grid arrangement
- Tree: hierarchical layout based on edge directions
- Force: force-directed layout with positioned nodes pinned in place
"""

import math
from collections import defaultdict
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from .models import RenderNode, RenderEdge


Positions = dict[str, tuple[float, float]]
LayoutFunction = Callable[[list["RenderNode"], list["RenderEdge"]], Positions]

# Default layout parameters
DEFAULT_SPACING_X = 200
DEFAULT_SPACING_Y = 150
DEFAULT_START_X = 100
DEFAULT_START_Y = 100


def _unpositioned(nodes: list["RenderNode"]) -> list["RenderNode"]:
    return [n for n in nodes if not n.has_position]


def waterfall_layout(
    nodes: list["RenderNode"],
    edges: list["RenderEdge"],
    step_x: float = 150,
    step_y: float = 100,
    start_x: float = DEFAULT_START_X,
    start_y: float = DEFAULT_START_Y
) -> Positions:
    """
    Cascade unpositioned nodes diagonally by their index in the node list.

    Args:
        nodes: All nodes of the graph (positioned nodes keep their index slot)
        edges: Unused
        step_x: Horizontal offset per index
        step_y: Vertical offset per index

    Returns:
        Positions for the unpositioned nodes
    """
    positions: Positions = {}
    for index, node in enumerate(nodes):
        if node.has_position:
            continue
        positions[node.stable_id] = (start_x + index * step_x, start_y + index * step_y)
    return positions


def grid_layout(
    nodes: list["RenderNode"],
    edges: list["RenderEdge"],
    spacing_x: float = DEFAULT_SPACING_X,
    spacing_y: float = DEFAULT_SPACING_Y,
    start_x: float = DEFAULT_START_X,
    start_y: float = DEFAULT_START_Y,
    columns: int | None = None
) -> Positions:
    """
    Arrange unpositioned nodes in a grid below every positioned node.

    Args:
        nodes: All nodes of the graph
        edges: Unused
        spacing_x: Horizontal spacing between nodes
        spacing_y: Vertical spacing between nodes
        columns: Number of columns (auto-calculated if None)

    Returns:
        Positions for the unpositioned nodes
    """
    free = _unpositioned(nodes)
    if not free:
        return {}

    # Auto-calculate columns based on node count
    if columns is None:
        columns = max(3, int(len(free) ** 0.5) + 1)

    # Start below whatever the user already placed
    placed_y = [n.y for n in nodes if n.has_position]
    if placed_y:
        start_y = max(start_y, max(placed_y) + spacing_y)

    positions: Positions = {}
    for i, node in enumerate(free):
        row = i // columns
        col = i % columns
        positions[node.stable_id] = (start_x + col * spacing_x, start_y + row * spacing_y)
    return positions


def tree_layout(
    nodes: list["RenderNode"],
    edges: list["RenderEdge"],
    spacing_x: float = DEFAULT_SPACING_X,
    spacing_y: float = DEFAULT_SPACING_Y,
    start_x: float = DEFAULT_START_X,
    start_y: float = DEFAULT_START_Y,
    orientation: str = "vertical"  # "vertical" or "horizontal"
) -> Positions:
    """
    Arrange unpositioned nodes in a hierarchy based on edge directions.

    Levels are computed over the whole graph; positioned nodes occupy no
    slot, so free nodes fill their level from the left.

    Args:
        nodes: All nodes of the graph
        edges: Edges defining the hierarchy
        orientation: "vertical" (top-to-bottom) or "horizontal" (left-to-right)

    Returns:
        Positions for the unpositioned nodes
    """
    if not _unpositioned(nodes):
        return {}

    # Build adjacency list (parent -> children)
    children: dict[str, list[str]] = {n.stable_id: [] for n in nodes}
    has_parent: set[str] = set()

    for edge in edges:
        if edge.source_id in children and edge.target_id in children:
            children[edge.source_id].append(edge.target_id)
            has_parent.add(edge.target_id)

    # Find roots (nodes with no incoming edges)
    roots = [n.stable_id for n in nodes if n.stable_id not in has_parent]
    if not roots:
        # No clear roots, use first node
        roots = [nodes[0].stable_id]

    # BFS to assign levels
    levels: dict[str, int] = {}
    queue = [(r, 0) for r in roots]

    while queue:
        node_id, level = queue.pop(0)
        if node_id in levels:
            continue
        levels[node_id] = level
        for child in children.get(node_id, []):
            queue.append((child, level + 1))

    # Assign positions by level
    level_counts: dict[int, int] = defaultdict(int)
    positions: Positions = {}

    for node in nodes:
        if node.has_position:
            continue
        level = levels.get(node.stable_id, 0)
        idx = level_counts[level]
        level_counts[level] += 1

        if orientation == "vertical":
            positions[node.stable_id] = (start_x + idx * spacing_x, start_y + level * spacing_y)
        else:  # horizontal
            positions[node.stable_id] = (start_x + level * spacing_x, start_y + idx * spacing_y)

    return positions


def force_layout(
    nodes: list["RenderNode"],
    edges: list["RenderEdge"],
    iterations: int = 100,
    repulsion: float = 5000,
    attraction: float = 0.01,
    damping: float = 0.1,
    min_distance: float = 50
) -> Positions:
    """
    Arrange unpositioned nodes using a force-directed simulation.

    Simulates physical forces:
    - All nodes repel each other (like charged particles)
    - Connected nodes attract each other (like springs)
    Positioned nodes exert forces but are pinned.

    Returns:
        Positions for the unpositioned nodes
    """
    free = _unpositioned(nodes)
    if not free:
        return {}

    coords: dict[str, tuple[float, float]] = {}
    for node in nodes:
        if node.has_position:
            coords[node.stable_id] = (node.x, node.y)

    # Initialize free nodes on a circle for better starting positions
    center_x, center_y = 400, 400
    radius = 200
    for i, node in enumerate(free):
        angle = 2 * math.pi * i / len(free)
        coords[node.stable_id] = (center_x + radius * math.cos(angle), center_y + radius * math.sin(angle))

    if len(coords) < 2:
        return {n.stable_id: coords[n.stable_id] for n in free}

    pinned = {n.stable_id for n in nodes if n.has_position}
    ids = list(coords)

    for _ in range(iterations):
        forces: dict[str, tuple[float, float]] = {i: (0.0, 0.0) for i in ids}

        # Repulsion between all node pairs (Coulomb's law)
        for i, a in enumerate(ids):
            for b in ids[i + 1:]:
                ax, ay = coords[a]
                bx, by = coords[b]
                dx = ax - bx
                dy = ay - by
                dist = max(min_distance, math.sqrt(dx * dx + dy * dy))
                force = repulsion / (dist * dist)
                fx = force * dx / dist
                fy = force * dy / dist
                f1x, f1y = forces[a]
                f2x, f2y = forces[b]
                forces[a] = (f1x + fx, f1y + fy)
                forces[b] = (f2x - fx, f2y - fy)

        # Attraction along edges (Hooke's law)
        for edge in edges:
            if edge.source_id not in coords or edge.target_id not in coords:
                continue
            sx, sy = coords[edge.source_id]
            tx, ty = coords[edge.target_id]
            dx = tx - sx
            dy = ty - sy
            dist = max(min_distance, math.sqrt(dx * dx + dy * dy))
            force = dist * attraction
            fx = force * dx / dist
            fy = force * dy / dist
            f1x, f1y = forces[edge.source_id]
            f2x, f2y = forces[edge.target_id]
            forces[edge.source_id] = (f1x + fx, f1y + fy)
            forces[edge.target_id] = (f2x - fx, f2y - fy)

        # Apply forces with damping, free nodes only
        for node_id in ids:
            if node_id in pinned:
                continue
            fx, fy = forces[node_id]
            x, y = coords[node_id]
            coords[node_id] = (max(min_distance, x + fx * damping), max(min_distance, y + fy * damping))

    return {n.stable_id: coords[n.stable_id] for n in free}


LAYOUT_STRATEGIES: dict[str, LayoutFunction] = {
    "waterfall": waterfall_layout,
    "grid": grid_layout,
    "tree": tree_layout,
    "force": force_layout,
}


def get_layout(name: str) -> LayoutFunction:
    """Get a layout strategy by name."""
    try:
        return LAYOUT_STRATEGIES[name]
    except KeyError:
        raise ValueError(
            f"Unknown layout strategy: {name}. Use one of: {', '.join(LAYOUT_STRATEGIES)}"
        ) from None


def apply_layout(
    nodes: list["RenderNode"],
    edges: list["RenderEdge"],
    layout: LayoutFunction
) -> list["RenderNode"]:
    """
    Run `layout` and return render nodes with positions filled in.

    Input nodes are not modified; `has_position` keeps reporting whether the
    text carried coordinates.
    """
    positions = layout(nodes, edges)
    result = []
    for node in nodes:
        if node.has_position or node.stable_id not in positions:
            result.append(node)
            continue
        x, y = positions[node.stable_id]
        result.append(node.model_copy(update={"x": x, "y": y}))
    return result
