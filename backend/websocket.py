"""
WebSocket server for real-time dashboard updates.

CS Concept: **Pub/Sub Pattern** - The server acts as a message broker.
Clients subscribe to topics (dashboard, perspectives) and the server
publishes the dashboard state to all subscribers whenever it changes.

Architecture:
┌─────────────┐     ┌─────────────┐     ┌─────────────┐
│  Client A   │────►│  WebSocket  │◄────│  Client B   │
│  (browser)  │◄────│   Manager   │────►│  (browser)  │
└─────────────┘     └──────┬──────┘     └─────────────┘
                           │
                    ┌──────▼──────┐
                    │  Refresh    │
                    │  Engine     │
                    │  (publish)  │
                    └─────────────┘
"""

from fastapi import WebSocket, WebSocketDisconnect
from typing import Any, Dict, List, Set
import json
import asyncio
import logging
from datetime import datetime, timezone
from dataclasses import dataclass, field
from enum import Enum

from notedash.dashboard.refresh import DashboardState

logger = logging.getLogger("backend.websocket")


class TopicType(str, Enum):
    """Available subscription topics"""
    DASHBOARD = "dashboard"
    PERSPECTIVES = "perspectives"


@dataclass
class Connection:
    """Represents a WebSocket connection"""
    websocket: WebSocket
    topics: Set[str] = field(default_factory=set)
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class WebSocketManager:
    """
    Manages WebSocket connections and message broadcasting.

    Usage:
        manager = WebSocketManager()

        # In WebSocket endpoint
        await manager.connect(websocket)

        # When the dashboard changes
        await manager.broadcast_to_topic("dashboard", {
            "type": "sections_updated",
            "data": state.to_dict()
        })
    """

    def __init__(self):
        # Map of connection_id -> Connection
        self.connections: Dict[str, Connection] = {}
        # Map of topic -> set of connection_ids
        self.topic_subscribers: Dict[str, Set[str]] = {
            topic.value: set() for topic in TopicType
        }
        self._lock = asyncio.Lock()

    def _get_connection_id(self, websocket: WebSocket) -> str:
        """Generate unique ID for a connection"""
        return f"{id(websocket)}"

    async def connect(self, websocket: WebSocket) -> str:
        """
        Accept and register a new WebSocket connection.

        Returns:
            Connection ID
        """
        await websocket.accept()

        conn_id = self._get_connection_id(websocket)

        async with self._lock:
            self.connections[conn_id] = Connection(websocket=websocket)

        logger.info(f"Client connected: {conn_id}")
        return conn_id

    async def disconnect(self, websocket: WebSocket):
        """Remove a connection and all its subscriptions"""
        conn_id = self._get_connection_id(websocket)

        async with self._lock:
            if conn_id in self.connections:
                for topic in self.connections[conn_id].topics:
                    self.topic_subscribers[topic].discard(conn_id)
                del self.connections[conn_id]
                logger.info(f"Client disconnected: {conn_id}")

    async def subscribe(self, websocket: WebSocket, topics: List[str]):
        """Subscribe a connection to topics"""
        conn_id = self._get_connection_id(websocket)

        async with self._lock:
            if conn_id not in self.connections:
                return

            for topic in topics:
                if topic in self.topic_subscribers:
                    self.topic_subscribers[topic].add(conn_id)
                    self.connections[conn_id].topics.add(topic)
                    logger.debug(f"{conn_id} subscribed to {topic}")

    async def unsubscribe(self, websocket: WebSocket, topics: List[str]):
        """Unsubscribe a connection from topics"""
        conn_id = self._get_connection_id(websocket)

        async with self._lock:
            if conn_id not in self.connections:
                return

            for topic in topics:
                if topic in self.topic_subscribers:
                    self.topic_subscribers[topic].discard(conn_id)
                    self.connections[conn_id].topics.discard(topic)

    async def broadcast_to_topic(self, topic: str, message: Dict[str, Any]):
        """
        Send a message to all connections subscribed to a topic.

        Args:
            topic: The topic name ("dashboard" or "perspectives")
            message: The message to send (will be JSON serialized)
        """
        if topic not in self.topic_subscribers:
            return

        message["timestamp"] = datetime.now(timezone.utc).isoformat()
        message_json = json.dumps(message, default=str)

        async with self._lock:
            subscriber_ids = list(self.topic_subscribers[topic])

        disconnected = []
        for conn_id in subscriber_ids:
            if conn_id in self.connections:
                try:
                    await self.connections[conn_id].websocket.send_text(message_json)
                except Exception as e:
                    logger.warning(f"Failed to send to {conn_id}: {e}")
                    disconnected.append(conn_id)

        if disconnected:
            async with self._lock:
                for conn_id in disconnected:
                    if conn_id in self.connections:
                        for t in self.connections[conn_id].topics:
                            self.topic_subscribers[t].discard(conn_id)
                        del self.connections[conn_id]

    def get_connection_count(self) -> int:
        """Get number of active connections"""
        return len(self.connections)

    def get_topic_subscriber_count(self, topic: str) -> int:
        """Get number of subscribers for a topic"""
        return len(self.topic_subscribers.get(topic, set()))


# Global manager instance
ws_manager = WebSocketManager()


async def websocket_endpoint(websocket: WebSocket):
    """
    Main WebSocket endpoint handler.

    Protocol:
        Client sends: { "type": "subscribe", "topics": ["dashboard", "perspectives"] }
        Client sends: { "type": "ping", "timestamp": 1234567890 }
        Server sends: { "type": "sections_updated", "data": {...}, "timestamp": "..." }
        Server sends: { "type": "pong", "timestamp": 1234567890, "serverTime": "..." }
    """
    await ws_manager.connect(websocket)

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
                msg_type = message.get("type")

                if msg_type == "subscribe":
                    await ws_manager.subscribe(websocket, message.get("topics", []))

                elif msg_type == "unsubscribe":
                    await ws_manager.unsubscribe(websocket, message.get("topics", []))

                elif msg_type == "ping":
                    await websocket.send_text(json.dumps({
                        "type": "pong",
                        "timestamp": message.get("timestamp"),
                        "serverTime": datetime.now(timezone.utc).isoformat(),
                    }))

                else:
                    await websocket.send_text(json.dumps({
                        "type": "error",
                        "code": "UNKNOWN_MESSAGE_TYPE",
                        "message": f"Unknown message type: {msg_type}",
                    }))

            except json.JSONDecodeError:
                await websocket.send_text(json.dumps({
                    "type": "error",
                    "code": "INVALID_JSON",
                    "message": "Message must be valid JSON",
                }))

    except WebSocketDisconnect:
        await ws_manager.disconnect(websocket)


# ============================================================
# HELPER FUNCTIONS
# ============================================================
# publish_state is installed as the refresh engine's notifier

async def notify_sections_updated(state: DashboardState):
    """Send the full state blob"""
    await ws_manager.broadcast_to_topic("dashboard", {
        "type": "sections_updated",
        "data": state.to_dict(),
    })


async def notify_refreshing(refreshing):
    """Tell clients which sections are being regenerated"""
    await ws_manager.broadcast_to_topic("dashboard", {
        "type": "refreshing",
        "refreshing": refreshing,
    })


async def notify_error_banner(message: str):
    await ws_manager.broadcast_to_topic("dashboard", {
        "type": "error_banner",
        "message": message,
    })


async def notify_perspectives_changed(perspectives: List[Dict[str, Any]]):
    """Call this after any perspective add/rename/delete/switch/save"""
    await ws_manager.broadcast_to_topic("perspectives", {
        "type": "perspectives_changed",
        "data": perspectives,
    })


async def publish_state(state: DashboardState):
    """Refresh-engine notifier"""
    if state.refreshing:
        await notify_refreshing(state.refreshing)
        return
    if state.error_message:
        await notify_error_banner(state.error_message)
    await notify_sections_updated(state)
