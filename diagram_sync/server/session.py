"""
Editor Session - one open diagram with its sync controller and navigation.

This module implements:
- Single document editing (one diagram hierarchy open at a time)
- Wiring between the SyncController (live text and graph) and the
  NavigationStack (nested diagrams)
- Change callbacks for real-time sync to connected clients
"""

import functools
import logging
from typing import Any, Callable, Optional

from ..config import SyncConfig, get_config
from ..directives import DirectiveCodec
from ..layout import get_layout
from ..models import GraphSnapshot
from ..navigation import NavigationStack
from ..parser import parse_diagram
from ..sync import SyncController, ParserFunction
from ..validation import validate_graph, validation_summary

logger = logging.getLogger(__name__)


INITIAL_TEXT = """graph TD
A[Start] --> B[Processing]
B --> C[End]
%% @node: A {"x":100,"y":100}
%% @node: B {"x":300,"y":100}
%% @node: C {"x":500,"y":100}
"""

# Change event names delivered to callbacks
TEXT_CHANGED = "text_changed"
DIAGRAM_UPDATED = "diagram_updated"
NAVIGATED = "navigated"


class EditorSession:
    """
    Manages the diagram currently being edited.

    Features:
    - Debounced text -> graph sync through the SyncController
    - Drag and inspector edits written back into directives
    - Drill-down into nested diagrams with breadcrumbs
    - Change callbacks receiving an event name
    """

    def __init__(
        self,
        config: Optional[SyncConfig] = None,
        parser: Optional[ParserFunction] = None,
        text: str = INITIAL_TEXT
    ):
        self._config = config or get_config()
        codec = DirectiveCodec(self._config.comment_marker)
        parser = parser or functools.partial(parse_diagram, marker=self._config.comment_marker)

        self._controller = SyncController(
            parser,
            get_layout(self._config.layout_strategy),
            text=text,
            debounce_seconds=self._config.debounce_seconds,
            codec=codec,
        )
        self._navigation = NavigationStack(self._config.root_title, codec)
        self._navigation.connect(
            self._controller.replace_text,
            lambda: self._controller.text,
            lambda: self._controller.store,
        )

        self._on_change_callbacks: list[Callable[[str], Any]] = []
        self._controller.on_text(lambda _text: self._notify_change(TEXT_CHANGED))
        self._controller.on_publish(lambda _snapshot: self._notify_change(DIAGRAM_UPDATED))

    # --- Properties ---

    @property
    def controller(self) -> SyncController:
        return self._controller

    @property
    def navigation(self) -> NavigationStack:
        return self._navigation

    @property
    def text(self) -> str:
        return self._controller.text

    @property
    def snapshot(self) -> GraphSnapshot:
        return self._controller.snapshot

    # --- Change Callbacks ---

    def on_change(self, callback: Callable[[str], Any]):
        """Register a callback for session changes."""
        self._on_change_callbacks.append(callback)

    def _notify_change(self, event: str):
        """Notify all registered callbacks of a change."""
        for callback in self._on_change_callbacks:
            callback(event)

    # --- Text ---

    def set_text(self, text: str):
        """Replace the text as a user edit; the graph follows after the debounce delay."""
        self._controller.update_text(text)

    async def sync(self) -> GraphSnapshot:
        """Parse the current text now."""
        return await self._controller.sync_now()

    def root_text(self) -> str:
        """The root document with every open nested level folded in."""
        return self._navigation.reconstruct_root(self._controller.text)

    # --- Node Operations ---

    def has_node(self, stable_id: str) -> bool:
        return self._controller.store.get_node(stable_id) is not None

    def has_text_node(self, text_id: str) -> bool:
        return self._controller.store.node_for_text_id(text_id) is not None

    def move_node(self, stable_id: str, x: float, y: float) -> str:
        """Apply a drag end to node `stable_id`."""
        return self._controller.move_node(stable_id, x, y)

    def patch_node(self, text_id: str, patch: dict[str, Any]) -> str:
        """Merge an inspector patch into node `text_id`'s directive."""
        return self._controller.patch_node(text_id, patch)

    # --- Navigation ---

    def _label(self, text_id: str) -> Optional[str]:
        node = self._controller.store.node_for_text_id(text_id)
        return node.label if node is not None else None

    def open_nested(self, text_id: str) -> str:
        """Drill into node `text_id`'s nested diagram (creating it if needed)."""
        nested = self._navigation.open_nested(self._controller.text, text_id, self._label(text_id))
        self._notify_change(NAVIGATED)
        return nested

    def create_nested(self, text_id: str) -> str:
        """Give node `text_id` a fresh nested diagram and drill into it."""
        nested = self._navigation.create_nested(self._controller.text, text_id, self._label(text_id))
        self._notify_change(NAVIGATED)
        return nested

    def navigate_to(self, depth: int) -> Optional[str]:
        """Pop back to breadcrumb `depth`; None when already at or above it."""
        text = self._navigation.pop_to(depth)
        if text is not None:
            self._notify_change(NAVIGATED)
        return text

    # --- Analysis ---

    def validate(self) -> dict:
        issues = validate_graph(self._controller.store, self._controller.text, self._controller.codec)
        return {
            "issues": [issue.to_dict() for issue in issues],
            "summary": validation_summary(issues),
        }

    def get_state(self) -> dict:
        """Get the full session state as a JSON-serializable dict."""
        return {
            "text": self._controller.text,
            "edit_source": self._controller.edit_source.value,
            "pending_sync": self._controller.has_pending_parse,
            "graph": self._controller.snapshot.model_dump(),
            "breadcrumbs": [crumb.model_dump() for crumb in self._navigation.breadcrumbs()],
            "depth": self._navigation.depth,
        }
