import asyncio
import enum
import json
import uuid
from typing import Dict, List, Optional

from fastapi import WebSocket

from constants import SESSION_QUEUE_SIZE
from logging_config import get_logger

logger = get_logger(__name__)


class SessionState(str, enum.Enum):
    CONNECTING = "connecting"
    JOINED = "joined"
    CLOSED = "closed"


class Session:
    """One live WebSocket connection bound to a single project.

    Outbound frames go through a bounded queue drained by a writer task, so
    every send on the socket happens from one place. Once the session is
    closed, anything still being delivered to it is dropped.
    """

    def __init__(self, websocket: WebSocket, project_id: str, connection_id: Optional[str] = None, queue_size: int = SESSION_QUEUE_SIZE):
        self.websocket = websocket
        self.project_id = project_id
        self.connection_id = connection_id or str(uuid.uuid4())
        self.state = SessionState.CONNECTING
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._writer: Optional[asyncio.Task] = None

    @property
    def closed(self) -> bool:
        return self.state == SessionState.CLOSED

    def start(self):
        if self._writer is None:
            self._writer = asyncio.create_task(self._drain())

    def deliver(self, event: str, payload) -> bool:
        """Queue a frame for this connection without waiting for the send."""
        if self.closed:
            logger.debug(f"Dropping '{event}' for closed connection {self.connection_id}")
            return False
        try:
            self._queue.put_nowait({"event": event, "data": payload})
        except asyncio.QueueFull:
            logger.warning(f"Outbound queue full for connection {self.connection_id}, dropping '{event}'")
            return False
        return True

    async def _drain(self):
        try:
            while True:
                frame = await self._queue.get()
                await self.websocket.send_text(json.dumps(frame))
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.warning(f"Error sending to connection {self.connection_id} in project {self.project_id}: {e}")
            self.close()

    def close(self):
        if self.closed:
            return
        self.state = SessionState.CLOSED
        if self._writer is not None and self._writer is not asyncio.current_task():
            self._writer.cancel()
        logger.debug(f"Session {self.connection_id} closed")


class RoomRegistry:
    """Maps project ids to the sessions currently connected to them.

    Rooms exist only while they have members and live in this process only.
    """

    def __init__(self):
        # Format: {project_id: {connection_id: session}}
        self._rooms: Dict[str, Dict[str, Session]] = {}

    def join(self, project_id: str, session: Session):
        room = self._rooms.setdefault(project_id, {})
        if session.connection_id in room:
            logger.debug(f"Connection {session.connection_id} already in project {project_id}")
            return
        room[session.connection_id] = session
        session.state = SessionState.JOINED
        logger.info(f"Connection {session.connection_id} joined project {project_id} (members: {len(room)})")

    def leave(self, session: Session):
        room = self._rooms.get(session.project_id)
        if not room or session.connection_id not in room:
            return
        del room[session.connection_id]
        logger.info(f"Connection {session.connection_id} left project {session.project_id} (members: {len(room)})")
        if not room:
            del self._rooms[session.project_id]
            logger.debug(f"No more connections in project {session.project_id}, dropping room")

    def broadcast(self, project_id: str, exclude_session: Optional[Session], event: str, payload) -> int:
        """Queue an event for every member except ``exclude_session``.

        Returns how many sessions accepted the frame.
        """
        room = self._rooms.get(project_id)
        if not room:
            return 0
        delivered = 0
        for session in list(room.values()):
            if session is exclude_session:
                continue
            if session.deliver(event, payload):
                delivered += 1
        logger.debug(f"Broadcast '{event}' to {delivered} connections in project {project_id}")
        return delivered

    def emit_to(self, session: Session, event: str, payload) -> bool:
        return session.deliver(event, payload)

    def members(self, project_id: str) -> List[Session]:
        return list(self._rooms.get(project_id, {}).values())

    def room_count(self) -> int:
        return len(self._rooms)


room_registry = RoomRegistry()
