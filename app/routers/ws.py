"""
WebSocket Router

Each browser connection opens a session. The server only pushes to the
socket (session id, merge progress, description events); anything the
client sends is ignored.
"""

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.services.description_tasks import description_task_manager
from app.services.session_store import session_store

router = APIRouter()
logger = logging.getLogger(__name__)


@router.websocket("/ws")
async def session_socket(websocket: WebSocket):
    await websocket.accept()
    session = session_store.create(websocket)
    logger.info(f"WebSocket connected, session {session.id}")

    await session.send({"type": "session", "sessionId": session.id})
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected, session {session.id}")
    finally:
        description_task_manager.cleanup_task(session.id)
        session_store.remove(session.id)
