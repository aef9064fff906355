# carnet/routers/websocket_router.py
from uuid import UUID
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
import json
import logging
from ..core.database import get_db
from ..core.exceptions import CarnetException
from ..services.assignment_lifecycle_service import AssignmentLifecycleService
from ..services.notification_bus import notification_bus

logger = logging.getLogger(__name__)
router = APIRouter()

@router.websocket("/ws/assignments/{assignment_id}")
async def assignment_updates(
    websocket: WebSocket,
    assignment_id: UUID,
    user_id: UUID = Query(...),
    db: AsyncSession = Depends(get_db)
):
    """Live patches for everyone viewing the same gradebook"""
    service = AssignmentLifecycleService(db)
    try:
        loaded = await service.load(assignment_id)
        await service.scoper.ensure_authorized(user_id, loaded.assignment, loaded.student, loaded.context)
    except CarnetException as e:
        logger.warning(f"Refused live updates for {user_id} on {assignment_id}: {e.code}")
        await websocket.close(code=4403 if e.status_code == 403 else 4404)
        return
    # The subscription outlives this read
    await db.close()

    connection_key = await notification_bus.connect(websocket, user_id, assignment_id)
    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except ValueError:
                continue
            if message.get("type") == "ping":
                await notification_bus.send_personal_message({"type": "pong"}, connection_key)
    except WebSocketDisconnect:
        logger.info(f"User {user_id} stopped watching {assignment_id}")
    finally:
        notification_bus.disconnect(connection_key)
