"""
Relay Protocol Handler - dispatches client events for one project room.

Every frame in either direction is a JSON object ``{"event": name, "data": payload}``.
Events that touch the store run in arrival order on the connection's receive
loop; reviews run as their own tasks so a slow model never holds up the
connection. Nothing here is transactional: edits and chat messages reach
peers before the store confirms the write.
"""
import asyncio
import json
from typing import Optional, Set

from fastapi import WebSocket

from backend import redis_backend
from constants import REVIEW_TIMEOUT_SECONDS
from registry import Session, room_registry
from review import ReviewError, review_oracle
from logging_config import get_logger

logger = get_logger(__name__)

# Inbound
CHAT_HISTORY = "chat-history"
GET_PROJECT_CODE = "get-project-code"
CHAT_MESSAGE = "chat-message"
CODE_CHANGE = "code-change"
GET_REVIEW = "get-review"
SAVE_PROJECT_CODE = "save-project-code"

# Outbound
PROJECT_CODE = "project-code"
CODE_REVIEW = "code-review"
ERROR = "error"


class RelayHandler:
    def __init__(self, store=None, registry=None, oracle=None, review_timeout: float = REVIEW_TIMEOUT_SECONDS):
        self.store = store if store is not None else redis_backend
        self.registry = registry if registry is not None else room_registry
        self.oracle = oracle if oracle is not None else review_oracle
        self.review_timeout = review_timeout
        self._review_tasks: Set[asyncio.Task] = set()
        self._handlers = {
            CHAT_HISTORY: self.on_chat_history,
            GET_PROJECT_CODE: self.on_get_project_code,
            CHAT_MESSAGE: self.on_chat_message,
            CODE_CHANGE: self.on_code_change,
            GET_REVIEW: self.on_get_review,
            SAVE_PROJECT_CODE: self.on_save_project_code,
        }

    @property
    def review_tasks(self) -> Set[asyncio.Task]:
        return set(self._review_tasks)

    def open_session(self, websocket: WebSocket, project_id: str) -> Session:
        session = Session(websocket, project_id)
        session.start()
        self.registry.join(project_id, session)
        return session

    def close_session(self, session: Session):
        self.registry.leave(session)
        session.close()

    def send_error(self, session: Session, kind: str, message: str):
        self.registry.emit_to(session, ERROR, {"kind": kind, "message": message})

    async def handle_frame(self, session: Session, raw: str):
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug(f"Non-JSON frame from connection {session.connection_id}")
            self.send_error(session, "bad-frame", "Frame is not valid JSON")
            return

        if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
            self.send_error(session, "bad-frame", "Frame must be an object with an 'event' name")
            return

        event = frame["event"]
        handler = self._handlers.get(event)
        if handler is None:
            logger.debug(f"Unknown event '{event}' from connection {session.connection_id}")
            self.send_error(session, "unknown-event", f"Unknown event '{event}'")
            return

        logger.debug(f"Handling '{event}' from connection {session.connection_id} in project {session.project_id}")
        try:
            await handler(session, frame.get("data"))
        except Exception as e:
            # Store failures end here: the caller gets no reply
            logger.error(f"Error handling '{event}' for project {session.project_id}: {e}", exc_info=True)

    async def on_chat_history(self, session: Session, data):
        messages = await self.store.get_messages(session.project_id)
        self.registry.emit_to(session, CHAT_HISTORY, messages)

    async def on_get_project_code(self, session: Session, data):
        code = await self.store.get_project_code(session.project_id)
        self.registry.emit_to(session, PROJECT_CODE, code)

    async def on_chat_message(self, session: Session, text):
        self.registry.broadcast(session.project_id, session, CHAT_MESSAGE, text)
        await self.store.append_message(session.project_id, text)

    async def on_code_change(self, session: Session, code):
        if not isinstance(code, str):
            self.send_error(session, "bad-payload", "'code-change' expects the full code as a string")
            return
        self.registry.broadcast(session.project_id, session, CODE_CHANGE, code)
        await self.store.set_project_code(session.project_id, code)

    async def on_save_project_code(self, session: Session, code):
        if not isinstance(code, str):
            self.send_error(session, "bad-payload", "'save-project-code' expects the full code as a string")
            return
        await self.store.set_project_code(session.project_id, code)

    async def on_get_review(self, session: Session, code):
        if not isinstance(code, str):
            self.send_error(session, "bad-payload", "'get-review' expects the code as a string")
            return
        task = asyncio.create_task(self._review(session, code))
        self._review_tasks.add(task)
        task.add_done_callback(self._review_tasks.discard)

    async def _review(self, session: Session, code: str) -> Optional[str]:
        try:
            review = await asyncio.wait_for(self.oracle.review(code), timeout=self.review_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Review for project {session.project_id} timed out after {self.review_timeout}s")
            self.send_error(session, "review-failed", "Review timed out")
            return None
        except ReviewError as e:
            logger.error(f"Review for project {session.project_id} failed: {e}")
            self.send_error(session, "review-failed", str(e))
            return None
        except Exception as e:
            logger.error(f"Unexpected review error for project {session.project_id}: {e}", exc_info=True)
            self.send_error(session, "review-failed", "Review failed")
            return None

        if session.closed:
            logger.debug(f"Connection {session.connection_id} closed before its review arrived, dropping it")
            return None
        self.registry.emit_to(session, CODE_REVIEW, review)
        return review


relay_handler = RelayHandler()
