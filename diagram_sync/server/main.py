"""
Diagram Sync Server - FastAPI Application

It provides:
- REST API for the open diagram (text edits, drags, metadata patches)
- Nested diagram navigation with breadcrumbs
- WebSocket endpoint for real-time updates
- CORS configuration for local frontend development
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from ..config import get_config
from ..logging import setup_logging
from .session import EditorSession
from .websocket_manager import ws_manager

logger = logging.getLogger(__name__)

editor_session = EditorSession()


# --- Request Models ---

class TextUpdateRequest(BaseModel):
    text: str
    sync: bool = False  # Parse immediately instead of waiting for the debounce


class MoveNodeRequest(BaseModel):
    x: float
    y: float


class MetadataPatchRequest(BaseModel):
    patch: dict[str, Any] = Field(default_factory=dict)


# --- Async change notification ---
# Bridge between sync EditorSession callbacks and async WebSocket broadcasts

# Recreated by each lifespan run, on its event loop
_change_event: Optional[asyncio.Event] = None
_pending_events: list[str] = []


def on_session_change(event: str):
    """Callback for session changes - queues the event for the async handler."""
    if _change_event is None:
        return
    if event not in _pending_events:
        _pending_events.append(event)
    _change_event.set()


editor_session.on_change(on_session_change)


async def change_broadcaster(change_event: asyncio.Event):
    """Background task that broadcasts changes to WebSocket clients."""
    while True:
        await change_event.wait()
        change_event.clear()

        events = list(_pending_events)
        _pending_events.clear()

        revision = editor_session.snapshot.revision
        for event in events:
            await ws_manager.notify(event, revision)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup/shutdown tasks."""
    global _change_event
    _change_event = asyncio.Event()
    _pending_events.clear()

    # Publish the initial graph before accepting edits
    await editor_session.sync()

    broadcaster_task = asyncio.create_task(change_broadcaster(_change_event))

    yield

    # Cleanup
    editor_session.controller.close()
    broadcaster_task.cancel()
    try:
        await broadcaster_task
    except asyncio.CancelledError:
        pass
    _change_event = None


# --- FastAPI App ---

app = FastAPI(
    title="Diagram Sync API",
    description="Bidirectional text/graph sync for diagram editors",
    version="1.0.0",
    lifespan=lifespan
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Health Check ---

@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "connections": ws_manager.connection_count}


# --- Diagram ---

@app.get("/api/diagram")
async def get_diagram():
    """Get the current text, graph and navigation state."""
    return editor_session.get_state()


@app.put("/api/diagram/text")
async def update_text(request: TextUpdateRequest):
    """Replace the diagram text as a user edit."""
    editor_session.set_text(request.text)
    if request.sync:
        await editor_session.sync()
    return editor_session.get_state()


@app.post("/api/diagram/sync")
async def sync_diagram():
    """Parse the current text now, skipping the debounce delay."""
    await editor_session.sync()
    return editor_session.get_state()


@app.get("/api/diagram/validate")
async def validate_diagram():
    """Validate the current graph and its directives."""
    return editor_session.validate()


# --- Node Operations ---

@app.post("/api/nodes/{stable_id}/move")
async def move_node(stable_id: str, request: MoveNodeRequest):
    """Apply a drag end to a node."""
    if not editor_session.has_node(stable_id):
        raise HTTPException(status_code=404, detail=f"Node not found: {stable_id}")

    text = editor_session.move_node(stable_id, request.x, request.y)
    node = editor_session.controller.store.get_node(stable_id)
    return {"text": text, "node": node.model_dump()}


@app.patch("/api/nodes/{text_id}/metadata")
async def patch_node_metadata(text_id: str, request: MetadataPatchRequest):
    """Merge a metadata patch into a node's directive."""
    if not editor_session.has_text_node(text_id):
        raise HTTPException(status_code=404, detail=f"Node not found: {text_id}")

    text = editor_session.patch_node(text_id, request.patch)
    return {"text": text}


# --- Navigation ---

@app.post("/api/nodes/{text_id}/open")
async def open_nested(text_id: str):
    """Drill into a node's nested diagram, creating one if needed."""
    if not editor_session.has_text_node(text_id):
        raise HTTPException(status_code=404, detail=f"Node not found: {text_id}")

    editor_session.open_nested(text_id)
    return editor_session.get_state()


@app.post("/api/nodes/{text_id}/nested")
async def create_nested(text_id: str):
    """Give a node a fresh nested diagram and drill into it."""
    if not editor_session.has_text_node(text_id):
        raise HTTPException(status_code=404, detail=f"Node not found: {text_id}")

    editor_session.create_nested(text_id)
    return editor_session.get_state()


@app.get("/api/navigation")
async def get_navigation():
    """Get the breadcrumbs and the reconstructed root document."""
    navigation = editor_session.navigation
    return {
        "depth": navigation.depth,
        "breadcrumbs": [crumb.model_dump() for crumb in navigation.breadcrumbs()],
        "root_text": editor_session.root_text(),
    }


@app.post("/api/navigation/{depth}")
async def navigate_to(depth: int):
    """Navigate back to a breadcrumb, folding nested edits into each parent."""
    text: Optional[str] = editor_session.navigate_to(depth)
    if text is None:
        raise HTTPException(status_code=400, detail=f"Cannot navigate to depth {depth}")
    return editor_session.get_state()


# --- WebSocket ---

@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for real-time updates.

    Clients are greeted with {"type": "connected", "revision": n}, then receive
    {"type": "text_changed" | "diagram_updated" | "navigated",
    "revision": n} messages and fetch the state via GET /api/diagram.
    """
    await ws_manager.connect(websocket, editor_session.snapshot.revision)

    try:
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text('{"type": "pong"}')
    except WebSocketDisconnect:
        await ws_manager.disconnect(websocket)
    except Exception:
        logger.exception("WebSocket connection failed")
        await ws_manager.disconnect(websocket)


def run(host: Optional[str] = None, port: Optional[int] = None):
    """Run the server with uvicorn."""
    import uvicorn

    config = get_config()
    setup_logging(config.log_level)
    uvicorn.run(app, host=host or config.host, port=port or config.port)


# --- Run with uvicorn ---

if __name__ == "__main__":
    run()
