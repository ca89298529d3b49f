"""
Navigation stack for nested diagrams.

A node can carry a whole sub-diagram in its directive
(``{"kind": "diagram", "diagram": {"title": ..., "mermaidman": <text>}}``).
Drilling into it pushes a frame for the document we leave and loads the
nested text; navigating back folds the edited child text into its owner
node's directive in the parent text, one level at a time, so no frame's
text is ever lost: it is either live or embedded in its parent.
"""

import logging
from typing import TYPE_CHECKING, Callable, Optional

from .directives import DirectiveCodec
from .models import Breadcrumb, DiagramFrame, NodeKind

if TYPE_CHECKING:
    from .graph_store import GraphStore

logger = logging.getLogger(__name__)

Loader = Callable[[str, Optional["GraphStore"]], None]

NESTED_KEY = "diagram"
NESTED_TEXT_KEY = "mermaidman"
NESTED_TITLE_KEY = "title"
SEED_NODE_ID = "Root"


def fold_into_parent(
    frame: DiagramFrame,
    owner_node_id: str,
    child_text: str,
    codec: Optional[DirectiveCodec] = None
) -> str:
    """
    Embed `child_text` as the nested diagram of `owner_node_id` in the frame's text.

    Other keys of the owner's `diagram` object (such as its title) are kept.
    """
    codec = codec or DirectiveCodec()
    return codec.upsert(frame.raw_text, owner_node_id, {NESTED_KEY: {NESTED_TEXT_KEY: child_text}})


def seed_nested_diagram(label: str) -> str:
    """Minimal valid document for a brand-new nested diagram."""
    cleaned = "".join(ch for ch in label if ch not in "[]\n\r").strip() or SEED_NODE_ID
    return f"graph TD\n{SEED_NODE_ID}[{cleaned}]\n"


class NavigationStack:
    """
    Stack of the diagram frames above the one being edited.

    The current frame is not on the stack: its text is whatever the sync
    controller holds; only its title and owner node are tracked here.
    Loading a text (push or pop) goes through `loader`, normally
    `SyncController.replace_text`, called with the text and the graph store
    that document had when it was left (None for a document entered from
    above). With a `store_source` connected, each pushed frame keeps the
    store of the document it holds, so stable ids survive a round trip.
    """

    def __init__(
        self,
        root_title: str = "Root",
        codec: Optional[DirectiveCodec] = None,
        loader: Optional[Loader] = None,
        text_source: Optional[Callable[[], str]] = None,
        store_source: Optional[Callable[[], "GraphStore"]] = None
    ):
        self._frames: list[DiagramFrame] = []
        self._stores: list[Optional["GraphStore"]] = []    # parallel to _frames
        self._current_title = root_title
        self._current_owner: Optional[str] = None
        self._codec = codec or DirectiveCodec()
        self._loader = loader
        self._text_source = text_source
        self._store_source = store_source

    # --- Properties ---

    @property
    def frames(self) -> tuple[DiagramFrame, ...]:
        return tuple(self._frames)

    @property
    def depth(self) -> int:
        """Number of frames above the current one (0 at the root)."""
        return len(self._frames)

    @property
    def current_title(self) -> str:
        return self._current_title

    @property
    def current_owner_node_id(self) -> Optional[str]:
        """Text id of the parent-frame node that owns the current document."""
        return self._current_owner

    def connect(
        self,
        loader: Loader,
        text_source: Callable[[], str],
        store_source: Optional[Callable[[], "GraphStore"]] = None
    ):
        """Wire the stack to the component that owns the live text and graph."""
        self._loader = loader
        self._text_source = text_source
        self._store_source = store_source

    def _live_text(self, current_text: Optional[str]) -> str:
        if current_text is not None:
            return current_text
        if self._text_source is None:
            raise ValueError("current_text is required when no text source is connected")
        return self._text_source()

    def _load(self, text: str, store: Optional["GraphStore"] = None):
        if self._loader is not None:
            self._loader(text, store)

    # --- Navigation ---

    def push(
        self,
        current_title: str,
        current_text: str,
        current_owner_node_id: Optional[str],
        new_title: str,
        new_text: str,
        new_owner_node_id: Optional[str]
    ):
        """Remember where we came from and make `new_text` the live document."""
        self._frames.append(DiagramFrame(
            title=current_title,
            raw_text=current_text,
            owner_node_id=current_owner_node_id,
        ))
        self._stores.append(self._store_source() if self._store_source is not None else None)
        self._current_title = new_title
        self._current_owner = new_owner_node_id
        logger.debug("Entered nested diagram %r (depth %d)", new_title, self.depth)
        self._load(new_text)

    def pop_to(self, target_depth: int, current_text: Optional[str] = None) -> Optional[str]:
        """
        Navigate back up to `target_depth`, folding edits into each parent.

        Returns:
            The reconstructed text of the target frame, or None when there is
            nothing above `target_depth` to pop
        """
        if target_depth < 0 or self.depth <= target_depth:
            return None

        live_text = self._live_text(current_text)
        store = None
        while self.depth > target_depth:
            frame = self._frames[-1]
            if self._current_owner is not None:
                live_text = fold_into_parent(frame, self._current_owner, live_text, self._codec)
            else:
                logger.warning("Frame %r has no owner node; discarding its child text", frame.title)
                live_text = frame.raw_text
            self._frames.pop()
            store = self._stores.pop()
            self._current_title = frame.title
            self._current_owner = frame.owner_node_id

        logger.debug("Returned to %r (depth %d)", self._current_title, self.depth)
        self._load(live_text, store)
        return live_text

    def reconstruct_root(self, current_text: str) -> str:
        """
        The complete root document with every open level folded in.

        Pure: the stack is left untouched.
        """
        live_text = current_text
        owner = self._current_owner
        for frame in reversed(self._frames):
            if owner is not None:
                live_text = fold_into_parent(frame, owner, live_text, self._codec)
            else:
                live_text = frame.raw_text
            owner = frame.owner_node_id
        return live_text

    def breadcrumbs(self) -> list[Breadcrumb]:
        """Frame titles followed by the current title; all but the last are clickable."""
        crumbs = [
            Breadcrumb(title=frame.title, depth=index, clickable=True)
            for index, frame in enumerate(self._frames)
        ]
        crumbs.append(Breadcrumb(title=self._current_title, depth=self.depth, clickable=False))
        return crumbs

    # --- Nested diagrams ---

    def open_nested(self, current_text: str, text_id: str, label: Optional[str] = None) -> str:
        """
        Drill into the nested diagram stored on node `text_id`.

        Creates one first when the node carries no nested payload.

        Returns:
            The text of the nested diagram now being edited
        """
        body = self._codec.read(current_text, text_id)
        nested = body.get(NESTED_KEY)
        if not isinstance(nested, dict) or not isinstance(nested.get(NESTED_TEXT_KEY), str):
            stored_title = nested.get(NESTED_TITLE_KEY) if isinstance(nested, dict) else None
            return self.create_nested(current_text, text_id, stored_title or label)

        title = nested.get(NESTED_TITLE_KEY) or label or text_id
        nested_text = nested[NESTED_TEXT_KEY]
        self.push(
            self._current_title, current_text, self._current_owner,
            str(title), nested_text, text_id,
        )
        return nested_text

    def create_nested(self, current_text: str, text_id: str, label: Optional[str] = None) -> str:
        """
        Give node `text_id` a fresh nested diagram and drill into it.

        The node is marked as a diagram node in the parent text before the
        parent frame is pushed, so the marker survives navigation.

        Returns:
            The seed text of the new nested diagram
        """
        title = label or text_id
        seed = seed_nested_diagram(title)
        parent_text = self._codec.upsert(current_text, text_id, {
            "kind": NodeKind.DIAGRAM.value,
            NESTED_KEY: {NESTED_TITLE_KEY: title, NESTED_TEXT_KEY: seed},
        })
        self.push(
            self._current_title, parent_text, self._current_owner,
            title, seed, text_id,
        )
        return seed
