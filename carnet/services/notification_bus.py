# carnet/services/notification_bus.py
from typing import Dict, List, Set, Optional
from uuid import UUID
from fastapi import WebSocket
import json
import logging

logger = logging.getLogger(__name__)

class NotificationBus:
    """Echoes assignment patches to viewers of the same assignment."""

    def __init__(self):
        # Store active connections: {connection_key: {websocket, user_id}}
        self.active_connections: Dict[str, Dict] = {}
        # Store assignment subscriptions: {assignment_id: {connection_keys}}
        self.room_subscriptions: Dict[str, Set[str]] = {}

    async def connect(self, websocket: WebSocket, user_id: UUID, assignment_id: UUID) -> str:
        """Accept websocket connection and subscribe it to the assignment"""
        await websocket.accept()
        connection_key = f"{user_id}:{id(websocket)}"
        room_key = str(assignment_id)

        self.active_connections[connection_key] = {
            "websocket": websocket,
            "user_id": str(user_id),
        }
        self.room_subscriptions.setdefault(room_key, set()).add(connection_key)
        logger.info(f"User {user_id} watching assignment {room_key}")

        await self.send_personal_message({
            "type": "connection_status",
            "status": "connected",
            "assignment_id": room_key,
        }, connection_key)
        return connection_key

    def disconnect(self, connection_key: str):
        """Remove connection and clean up subscriptions"""
        if connection_key not in self.active_connections:
            return

        for subscribers in self.room_subscriptions.values():
            subscribers.discard(connection_key)

        # Clean up empty rooms
        self.room_subscriptions = {
            room_id: subscribers
            for room_id, subscribers in self.room_subscriptions.items()
            if subscribers
        }
        del self.active_connections[connection_key]
        logger.info(f"Connection {connection_key} closed")

    async def send_personal_message(self, message: dict, connection_key: str):
        connection = self.active_connections.get(connection_key)
        if connection is None:
            return
        try:
            await connection["websocket"].send_text(json.dumps(message, default=str))
        except Exception as e:
            logger.warning(f"Error sending message to {connection_key}: {e}")
            self.disconnect(connection_key)

    async def publish(self, assignment_id: UUID, message: dict, exclude_user: Optional[UUID] = None) -> int:
        """Send message to every viewer of an assignment; returns delivered count"""
        room_key = str(assignment_id)
        exclude_key = str(exclude_user) if exclude_user else None

        disconnected: List[str] = []
        sent_count = 0
        for connection_key in list(self.room_subscriptions.get(room_key, set())):
            connection = self.active_connections.get(connection_key)
            if connection is None or connection["user_id"] == exclude_key:
                continue
            try:
                await connection["websocket"].send_text(json.dumps(message, default=str))
                sent_count += 1
            except Exception as e:
                logger.warning(f"Error broadcasting to {connection_key}: {e}")
                disconnected.append(connection_key)

        # Clean up dropped viewers
        for connection_key in disconnected:
            self.disconnect(connection_key)
        return sent_count

    def viewers(self, assignment_id: UUID) -> List[str]:
        room_key = str(assignment_id)
        return sorted({
            self.active_connections[key]["user_id"]
            for key in self.room_subscriptions.get(room_key, set())
            if key in self.active_connections
        })


# Global bus instance
notification_bus = NotificationBus()
