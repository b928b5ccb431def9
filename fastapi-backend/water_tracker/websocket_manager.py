"""
WebSocket push of status changes to tracking pages.

Trackers subscribe to a single complaint id; whenever that complaint's
status changes a `status_update` event is sent to every subscriber.
"""
import logging
from typing import Dict, Any, List, Optional
from datetime import datetime, timezone
from fastapi import WebSocket
from pydantic import BaseModel, Field

from .observability import active_websocket_connections

logger = logging.getLogger(__name__)


class WebSocketEvent(BaseModel):
    """Base model for WebSocket events."""
    event_type: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: Dict[str, Any] = {}


class StatusUpdateEvent(WebSocketEvent):
    """Event sent when a complaint status is updated."""
    event_type: str = "status_update"

    @classmethod
    def build(cls, complaint_id: str, old_status: Optional[str], new_status: str,
              timeline: List[Dict[str, Any]]) -> "StatusUpdateEvent":
        return cls(data={
            "complaint_id": complaint_id,
            "old_status": old_status,
            "new_status": new_status,
            "timeline": timeline,
        })


class ConnectionManager:
    """Manages WebSocket connections grouped by the complaint they track."""

    def __init__(self):
        self.connections_by_complaint: Dict[str, List[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, complaint_id: str):
        """Accept a WebSocket connection and subscribe it to a complaint."""
        await websocket.accept()
        self.connections_by_complaint.setdefault(complaint_id, []).append(websocket)
        active_websocket_connections.set(self.get_connection_count())
        logger.info(f"WebSocket connected: complaint_id={complaint_id}")

    def disconnect(self, websocket: WebSocket, complaint_id: str):
        """Remove a WebSocket connection."""
        connections = self.connections_by_complaint.get(complaint_id, [])
        if websocket in connections:
            connections.remove(websocket)
            if not connections:
                del self.connections_by_complaint[complaint_id]
            active_websocket_connections.set(self.get_connection_count())
            logger.info(f"WebSocket disconnected: complaint_id={complaint_id}")

    async def broadcast(self, complaint_id: str, event: WebSocketEvent):
        """Send an event to every tracker of one complaint."""
        connections = list(self.connections_by_complaint.get(complaint_id, []))
        if not connections:
            return

        message = event.model_dump_json()
        disconnected = []
        for websocket in connections:
            try:
                await websocket.send_text(message)
            except Exception as e:
                logger.error(f"Error broadcasting to connection: {e}")
                disconnected.append(websocket)

        for websocket in disconnected:
            self.disconnect(websocket, complaint_id)

        logger.info(f"Broadcasted {event.event_type} to {len(connections)} connections")

    def get_connection_count(self) -> int:
        """Get the total number of active connections."""
        return sum(len(c) for c in self.connections_by_complaint.values())
