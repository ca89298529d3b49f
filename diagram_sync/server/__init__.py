"""HTTP and WebSocket surface for a live editing session."""

from .session import EditorSession

__all__ = ["EditorSession"]
