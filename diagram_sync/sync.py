"""
Sync Controller - keeps diagram text and the graph store consistent.

Directions:
- Text -> graph: every text change restarts a debounce timer; when it fires
  the external parser runs on the latest text, a fresh GraphStore is built
  from the result, layout fills in missing positions and a GraphSnapshot is
  published.
- Graph -> text: a node drag updates the live store immediately and writes
  an ``{x, y}`` patch into the node's directive; inspector edits write an
  arbitrary patch and let the next reparse rebuild the graph.

The `edit_source` flag suppresses the echo of a graph-originated rewrite:
publishing the new text after a drag must not trigger a reparse that would
reset unsaved visual state.

Everything runs on one asyncio event loop; no locks are needed.
"""

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from .directives import DirectiveCodec
from .graph_store import GraphStore
from .layout import LayoutFunction, apply_layout, waterfall_layout
from .models import GraphSnapshot, ParseResult, RenderNode, RenderEdge

logger = logging.getLogger(__name__)


ParserResult = Union[ParseResult, dict]
ParserFunction = Callable[[str], Union[ParserResult, Awaitable[ParserResult]]]

DEFAULT_DEBOUNCE_SECONDS = 0.3


class EditSource(str, Enum):
    """Which side last produced an authoritative change."""
    TEXT = "text"
    GRAPH = "graph"


class SyncController:
    """
    Orchestrates text -> graph and graph -> text synchronization.

    Listeners:
    - `on_text(cb)`: called with the new text whenever the controller
      rewrites the text (drag, metadata patch, navigation load)
    - `on_publish(cb)`: called with each published GraphSnapshot
    """

    def __init__(
        self,
        parser: ParserFunction,
        layout: Optional[LayoutFunction] = None,
        *,
        text: str = "",
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        codec: Optional[DirectiveCodec] = None
    ):
        self._parser = parser
        self._layout = layout or waterfall_layout
        self._codec = codec or DirectiveCodec()
        self._debounce_seconds = debounce_seconds

        self._text = text
        self._edit_source = EditSource.TEXT
        self._store = GraphStore()
        self._snapshot = GraphSnapshot(text=text)

        self._debounce_task: Optional[asyncio.Task] = None
        self._pending = False          # A parse is due but no event loop was running
        self._parse_seq = 0            # Sequence number of the latest parse request
        self._published_seq = 0        # Sequence number of the latest published result
        self._document = 0             # Bumped whenever a different document is loaded

        self._on_text_callbacks: list[Callable[[str], Any]] = []
        self._on_publish_callbacks: list[Callable[[GraphSnapshot], Any]] = []

    # --- Properties ---

    @property
    def text(self) -> str:
        """The current diagram text."""
        return self._text

    @property
    def store(self) -> GraphStore:
        """The live graph store of the current document."""
        return self._store

    @property
    def snapshot(self) -> GraphSnapshot:
        """The last published snapshot."""
        return self._snapshot

    @property
    def edit_source(self) -> EditSource:
        return self._edit_source

    @property
    def codec(self) -> DirectiveCodec:
        return self._codec

    @property
    def has_pending_parse(self) -> bool:
        """True while a debounced or deferred parse has not run yet."""
        return self._pending or (self._debounce_task is not None and not self._debounce_task.done())

    # --- Callbacks ---

    def on_text(self, callback: Callable[[str], Any]):
        """Register a callback for controller-originated text rewrites."""
        self._on_text_callbacks.append(callback)

    def on_publish(self, callback: Callable[[GraphSnapshot], Any]):
        """Register a callback for published snapshots."""
        self._on_publish_callbacks.append(callback)

    def _notify_text(self, text: str):
        for callback in self._on_text_callbacks:
            try:
                callback(text)
            except Exception:
                logger.exception("Text callback failed")

    def _notify_publish(self, snapshot: GraphSnapshot):
        for callback in self._on_publish_callbacks:
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Publish callback failed")

    # --- Text -> graph ---

    def update_text(self, text: str):
        """A user edit of the text: always authoritative, always reparsed."""
        self._edit_source = EditSource.TEXT
        self._observe_text(text)

    def replace_text(self, text: str, store: Optional[GraphStore] = None):
        """
        Load a whole new document (navigation).

        Identities never leak between documents: the next parse inherits
        stable ids from `store`, the store this document had when it was
        last live, or starts from an empty store. Parses still running for
        the outgoing document are discarded.
        """
        self._document += 1
        self._store = store if store is not None else GraphStore()
        self._edit_source = EditSource.TEXT
        self._publish_text(text)

    def _publish_text(self, text: str):
        """Make `text` current, run it through the text-change path, then tell listeners."""
        self._observe_text(text)
        self._notify_text(text)

    def _observe_text(self, text: str):
        self._text = text
        if self._edit_source == EditSource.GRAPH:
            # Echo of our own rewrite: consume it once
            self._edit_source = EditSource.TEXT
            logger.debug("Suppressed reparse of graph-originated text")
            return
        self._schedule_parse()

    def _schedule_parse(self):
        self._cancel_timer()
        self._parse_seq += 1
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._pending = True
            return
        self._debounce_task = loop.create_task(self._debounced_parse(self._parse_seq))

    def _cancel_timer(self):
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = None

    async def _debounced_parse(self, seq: int):
        await asyncio.sleep(self._debounce_seconds)
        await self._run_parse(seq, self._text)

    async def flush(self) -> GraphSnapshot:
        """Skip the debounce delay and parse the current text now."""
        if self._pending or (self._debounce_task is not None and not self._debounce_task.done()):
            self._cancel_timer()
            self._pending = False
            await self._run_parse(self._parse_seq, self._text)
        return self._snapshot

    async def sync_now(self) -> GraphSnapshot:
        """Parse the current text immediately, whether or not a parse is due."""
        self._cancel_timer()
        self._pending = False
        self._parse_seq += 1
        await self._run_parse(self._parse_seq, self._text)
        return self._snapshot

    def close(self):
        """Cancel any pending debounce timer."""
        self._cancel_timer()
        self._pending = False

    async def _call_parser(self, text: str) -> ParseResult:
        result = self._parser(text)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, ParseResult):
            return result
        return ParseResult.model_validate(result)

    async def _run_parse(self, seq: int, text: str) -> Optional[GraphSnapshot]:
        """
        Parse `text`, rebuild the store and publish.

        Parser and layout failures leave the previous store and snapshot in
        place. Results older than the last published one, or parsed for a
        document that has since been replaced, are dropped.
        """
        document = self._document
        try:
            result = await self._call_parser(text)
            if document != self._document:
                logger.debug("Dropping parse result %d for a replaced document", seq)
                return None

            store = GraphStore(previous=self._store)
            for parsed_node in result.nodes:
                store.upsert_node_from_parse_result(parsed_node)
            for parsed_edge in result.edges:
                store.upsert_edge_from_parse_result(parsed_edge)

            nodes = [RenderNode.from_node(n) for n in store.active_nodes()]
            edges = [RenderEdge.from_edge(e) for e in store.active_edges()]
            nodes = apply_layout(nodes, edges, self._layout)
        except Exception:
            logger.exception("Failed to sync diagram text; keeping previous graph")
            return None

        if seq <= self._published_seq:
            logger.debug("Dropping stale parse result %d (published %d)", seq, self._published_seq)
            return None

        orphaned = sorted(
            text_id for text_id, _ in self._store.aliases.items()
            if store.aliases.resolve(text_id) is None
        )

        self._published_seq = seq
        self._store = store
        self._snapshot = GraphSnapshot(
            revision=seq,
            text=text,
            nodes=nodes,
            edges=edges,
            orphaned_node_ids=orphaned,
        )
        logger.debug("Published revision %d: %d nodes, %d edges", seq, len(nodes), len(edges))
        self._notify_publish(self._snapshot)
        return self._snapshot

    # --- Graph -> text ---

    def move_node(self, stable_id: str, x: float, y: float) -> str:
        """
        Apply a drag end: update the live graph, then patch the directive.

        The new text is published with `edit_source = GRAPH`, so its echo
        does not trigger a reparse. Unknown nodes leave the text unchanged.
        """
        text_id = self._store.aliases.resolve_reverse(stable_id)
        if text_id is None:
            logger.debug("move_node: unknown node %s", stable_id)
            return self._text

        x, y = round(x), round(y)
        self._store.move_node(stable_id, x, y)
        new_text = self._codec.upsert(self._text, text_id, {"x": x, "y": y})

        self._edit_source = EditSource.GRAPH
        self._publish_text(new_text)
        return new_text

    def move_text_node(self, text_id: str, x: float, y: float) -> str:
        """Same as `move_node`, addressed by the node's text id."""
        stable_id = self._store.aliases.resolve(text_id)
        if stable_id is None:
            logger.debug("move_text_node: unknown node %s", text_id)
            return self._text
        return self.move_node(stable_id, x, y)

    def patch_node(self, text_id: str, patch: dict[str, Any]) -> str:
        """
        Write an arbitrary metadata patch into the node's directive.

        Unlike a drag, the graph is not updated optimistically: the patched
        text is reparsed through the normal debounce cycle.
        """
        new_text = self._codec.upsert(self._text, text_id, patch)
        self._edit_source = EditSource.TEXT
        self._publish_text(new_text)
        return new_text
