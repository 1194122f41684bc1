"""
WebSocket connection manager for gfxs-studio.

Pushes render-server events to connected editors so a UI can show that the
server is busy, that a new source image was uploaded, or that a batch
finished. Clients subscribe to channels; render events go to ``render``.
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket

from api.shared.logger import get_logger

logger = get_logger(__name__)

RENDER_CHANNEL = "render"


class MessageType(str, Enum):
    """Types of WebSocket messages."""

    # Render events
    RENDER_STARTED = "render_started"
    RENDER_COMPLETED = "render_completed"
    RENDER_FAILED = "render_failed"
    IMAGE_UPLOADED = "image_uploaded"
    BATCH_COMPLETED = "batch_completed"

    # System messages
    PING = "ping"
    PONG = "pong"
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    ERROR = "error"
    CONNECTED = "connected"
    SUBSCRIBED = "subscribed"
    UNSUBSCRIBED = "unsubscribed"


@dataclass
class WebSocketMessage:
    """Represents a WebSocket message."""

    type: MessageType
    channel: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[str] = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now().isoformat()

    def to_json(self) -> str:
        return json.dumps({
            "type": self.type.value,
            "channel": self.channel,
            "data": self.data,
            "timestamp": self.timestamp,
        })

    @classmethod
    def from_json(cls, json_str: str) -> "WebSocketMessage":
        data = json.loads(json_str)
        return cls(
            type=MessageType(data.get("type", "error")),
            channel=data.get("channel", ""),
            data=data.get("data", {}),
            timestamp=data.get("timestamp"),
        )


class WebSocketManager:
    """
    Tracks editor connections and their channel subscriptions.
    """

    def __init__(self):
        self._connections: Set[WebSocket] = set()
        # channel -> subscribed sockets
        self._channels: Dict[str, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, client_id: Optional[str] = None) -> None:
        """Accept a connection and confirm it to the client."""
        await websocket.accept()
        async with self._lock:
            self._connections.add(websocket)

        await self.send_to_connection(
            websocket,
            WebSocketMessage(
                type=MessageType.CONNECTED,
                channel="system",
                data={"client_id": client_id},
            ),
        )

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            for channel in list(self._channels):
                self._channels[channel].discard(websocket)
                if not self._channels[channel]:
                    del self._channels[channel]
            self._connections.discard(websocket)

    async def subscribe(self, websocket: WebSocket, channel: str) -> None:
        async with self._lock:
            self._channels.setdefault(channel, set()).add(websocket)

        await self.send_to_connection(
            websocket,
            WebSocketMessage(type=MessageType.SUBSCRIBED, channel=channel, data={"channel": channel}),
        )

    async def unsubscribe(self, websocket: WebSocket, channel: str) -> None:
        async with self._lock:
            if channel in self._channels:
                self._channels[channel].discard(websocket)
                if not self._channels[channel]:
                    del self._channels[channel]

        await self.send_to_connection(
            websocket,
            WebSocketMessage(type=MessageType.UNSUBSCRIBED, channel=channel, data={"channel": channel}),
        )

    async def send_to_connection(self, websocket: WebSocket, message: WebSocketMessage) -> bool:
        """
        Send a message to one connection.

        Returns:
            True if sent successfully, False otherwise
        """
        try:
            await websocket.send_text(message.to_json())
            return True
        except Exception as e:
            logger.warning("Error sending WebSocket message: %s", e)
            await self.disconnect(websocket)
            return False

    async def broadcast_to_channel(self, channel: str, message: WebSocketMessage) -> int:
        """
        Broadcast a message to all subscribers of a channel.

        Returns:
            Number of connections that received the message
        """
        async with self._lock:
            subscribers = list(self._channels.get(channel, set()))

        sent_count = 0
        disconnected = []
        for websocket in subscribers:
            try:
                await websocket.send_text(message.to_json())
                sent_count += 1
            except Exception:
                disconnected.append(websocket)

        for ws in disconnected:
            await self.disconnect(ws)

        return sent_count

    def get_channel_subscribers(self, channel: str) -> int:
        return len(self._channels.get(channel, set()))

    def get_connection_count(self) -> int:
        return len(self._connections)

    async def handle_message(self, websocket: WebSocket, message_text: str) -> Optional[WebSocketMessage]:
        """
        Handle an incoming client message (ping, subscribe, unsubscribe).

        Returns:
            Response message or None
        """
        try:
            message = WebSocketMessage.from_json(message_text)
        except (json.JSONDecodeError, ValueError) as e:
            return WebSocketMessage(
                type=MessageType.ERROR,
                channel="system",
                data={"error": f"Invalid message format: {e}"},
            )

        if message.type == MessageType.PING:
            return WebSocketMessage(
                type=MessageType.PONG,
                channel="system",
                data={"timestamp": datetime.now().isoformat()},
            )

        channel = message.data.get("channel") or message.channel
        if message.type == MessageType.SUBSCRIBE and channel:
            await self.subscribe(websocket, channel)
        elif message.type == MessageType.UNSUBSCRIBE and channel:
            await self.unsubscribe(websocket, channel)

        return None


# Global WebSocket manager instance
ws_manager = WebSocketManager()


async def notify_render_event(event: str, data: Optional[Dict[str, Any]] = None) -> int:
    """
    Broadcast a render-server event to the ``render`` channel.

    Args:
        event: One of the render MessageType values (e.g. ``"render_started"``)
        data: Event payload

    Returns:
        Number of connections notified
    """
    message = WebSocketMessage(
        type=MessageType(event),
        channel=RENDER_CHANNEL,
        data=data or {},
    )
    return await ws_manager.broadcast_to_channel(RENDER_CHANNEL, message)
