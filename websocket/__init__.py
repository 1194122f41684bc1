"""
WebSocket module for gfxs-studio.

Provides render-server events (render started/completed/failed, uploads,
batches) to connected editors.
"""

from .manager import (
    RENDER_CHANNEL,
    MessageType,
    WebSocketManager,
    WebSocketMessage,
    notify_render_event,
    ws_manager,
)

__all__ = [
    "WebSocketManager",
    "WebSocketMessage",
    "MessageType",
    "RENDER_CHANNEL",
    "ws_manager",
    "notify_render_event",
]
