"""In-memory upload sessions.

A session holds the ordered package records of one user and, while the
browser is connected, the WebSocket used to push progress to it.
"""
from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from app.models.package import PackageRecord

logger = logging.getLogger(__name__)


@dataclass
class Session:
    id: str
    packages: List[PackageRecord] = field(default_factory=list)
    websocket: Optional[WebSocket] = None
    last_active: float = field(default_factory=time.time)

    @property
    def valid_packages(self) -> List[PackageRecord]:
        return [pkg for pkg in self.packages if pkg.is_valid]

    def find_package(self, package_id: str) -> Optional[PackageRecord]:
        for pkg in self.packages:
            if pkg.id == package_id:
                return pkg
        return None

    async def send(self, message: Dict[str, Any]) -> None:
        """Push a message to the connected client, if any (best-effort)"""
        ws = self.websocket
        if ws is None or ws.client_state != WebSocketState.CONNECTED:
            return
        try:
            await ws.send_text(json.dumps(message, default=str))
        except Exception as e:
            logger.warning(f"Dropping message for session {self.id}: {e}")


class SessionStore:
    def __init__(self):
        self._sessions: Dict[str, Session] = {}

    def create(self, websocket: Optional[WebSocket] = None) -> Session:
        session = Session(id=uuid.uuid4().hex, websocket=websocket)
        self._sessions[session.id] = session
        return session

    def get(self, session_id: Optional[str]) -> Optional[Session]:
        if not session_id:
            return None
        return self._sessions.get(session_id)

    def get_or_create(self, session_id: Optional[str]) -> Session:
        session = self.get(session_id)
        if session is None:
            if session_id:
                logger.info(f"Session not found, creating new session for: {session_id}")
            session = Session(id=session_id or uuid.uuid4().hex)
            self._sessions[session.id] = session
        session.last_active = time.time()
        return session

    def remove(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def sweep_idle(self, max_age_seconds: int, now: Optional[float] = None) -> int:
        """Drop sessions with no connected socket that have been idle too long"""
        now = now if now is not None else time.time()
        stale = [
            session_id for session_id, session in self._sessions.items()
            if session.websocket is None and now - session.last_active > max_age_seconds
        ]
        for session_id in stale:
            self.remove(session_id)
        if stale:
            logger.info(f"Removed {len(stale)} idle sessions")
        return len(stale)

    def __len__(self) -> int:
        return len(self._sessions)


# Session store instance
session_store = SessionStore()
