from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from starlette.websockets import WebSocketState
from routers.projects import projects_router
from relay import relay_handler
from constants import CORS_ORIGINS
from typing import Optional
from logging_config import get_logger, setup_logging
import os

# Setup logging
log_level = os.getenv("LOG_LEVEL", "INFO")
log_file = os.getenv("LOG_FILE", None)
setup_logging(log_level=log_level, log_file=log_file)
logger = get_logger(__name__)

app = FastAPI(title="CodeRoom")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(projects_router)

logger.info("FastAPI application initialized")


@app.get("/")
async def index():
    return "Hello world"


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, project: Optional[str] = None):
    """Realtime connection for one project room.

    Query parameters:
    - project: id of the project whose room to join (not checked against the store)
    """
    if not project or not project.strip():
        logger.info("WebSocket connection rejected: missing project parameter")
        await websocket.close(code=1008, reason="Missing project")
        return

    await websocket.accept()
    session = relay_handler.open_session(websocket, project)
    logger.info(f"WebSocket connection {session.connection_id} accepted for project: {project}")

    close_code = 1000
    try:
        message_count = 0
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
            message_count += 1
            logger.debug(f"Received frame #{message_count} from connection {session.connection_id} in project {project}")

            data = message.get("text")
            if data is None:
                try:
                    data = (message.get("bytes") or b"").decode("utf-8")
                except UnicodeDecodeError:
                    relay_handler.send_error(session, "bad-frame", "Binary frame is not valid UTF-8")
                    continue
            await relay_handler.handle_frame(session, data)
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for connection {session.connection_id} in project {project}")
    except Exception as e:
        logger.error(f"WebSocket error for connection {session.connection_id} in project {project}: {e}", exc_info=True)
        close_code = 1011
    finally:
        relay_handler.close_session(session)
        if websocket.client_state == WebSocketState.CONNECTED:
            try:
                await websocket.close(code=close_code)
            except Exception as e:
                logger.debug(f"Error closing WebSocket: {e}")
