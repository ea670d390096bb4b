import json
from typing import Optional

import redis.asyncio as redis

from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, REDIS_DB
from redis_keys import REDIS_PROJECT_KEY, REDIS_PROJECT_INDEX_KEY, REDIS_MESSAGES_KEY
from logging_config import get_logger

logger = get_logger(__name__)

# The asyncio client connects lazily, on the first command
redis_client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, db=REDIS_DB, decode_responses=True)


class RedisBackend:
    """Durable project state and chat logs.

    Projects are hashes keyed by project id; chat messages are an append-only
    list per project. Errors from Redis are not caught here, callers decide
    whether a failure gets reported or just logged.
    """

    def __init__(self, client=None):
        self.redis_client = client if client is not None else redis_client
        logger.info(f"Initializing RedisBackend with connection to {REDIS_HOST}:{REDIS_PORT}")

    async def create_project(self, project_id: str, project_data: dict) -> str:
        logger.info(f"Creating project {project_id}")
        key = REDIS_PROJECT_KEY.format(project_id=project_id)
        # Convert dict values to strings for Redis hash, skip None values
        project_data_str = {"id": project_id}
        for k, v in project_data.items():
            if v is None:
                continue
            if isinstance(v, (dict, list)):
                project_data_str[k] = json.dumps(v)
            else:
                project_data_str[k] = str(v)
        project_data_str.setdefault("code", "")
        await self.redis_client.hset(key, mapping=project_data_str)
        await self.redis_client.sadd(REDIS_PROJECT_INDEX_KEY, project_id)
        logger.debug(f"Project {project_id} created successfully with key: {key}")
        return project_id

    async def get_project(self, project_id: str) -> Optional[dict]:
        logger.debug(f"Fetching project {project_id}")
        key = REDIS_PROJECT_KEY.format(project_id=project_id)
        project_data = await self.redis_client.hgetall(key)
        if not project_data:
            logger.debug(f"Project {project_id} not found in Redis")
            return None
        return dict(project_data)

    async def list_projects(self) -> list:
        project_ids = await self.redis_client.smembers(REDIS_PROJECT_INDEX_KEY)
        logger.debug(f"Listing {len(project_ids)} projects")
        projects = []
        for project_id in project_ids:
            project = await self.get_project(project_id)
            if project:
                projects.append(project)
        projects.sort(key=lambda p: (p.get("created_at", ""), p.get("id", "")))
        return projects

    async def get_project_code(self, project_id: str) -> Optional[str]:
        """Current code buffer, or None for an unknown project."""
        key = REDIS_PROJECT_KEY.format(project_id=project_id)
        code = await self.redis_client.hget(key, "code")
        logger.debug(f"Read code for project {project_id}: {len(code) if code is not None else 'missing'}")
        return code

    async def set_project_code(self, project_id: str, code: str) -> bool:
        """Overwrite the project's code. Unknown projects are left alone."""
        key = REDIS_PROJECT_KEY.format(project_id=project_id)
        if not await self.redis_client.exists(key):
            logger.debug(f"Ignoring code write for unknown project {project_id}")
            return False
        await self.redis_client.hset(key, "code", code)
        logger.debug(f"Stored {len(code)} chars of code for project {project_id}")
        return True

    async def append_message(self, project_id: str, text) -> int:
        """Append a chat message; returns the new length of the log."""
        key = REDIS_MESSAGES_KEY.format(project_id=project_id)
        length = await self.redis_client.rpush(key, json.dumps(text))
        logger.debug(f"Appended message #{length} to project {project_id}")
        return length

    async def get_messages(self, project_id: str) -> list:
        key = REDIS_MESSAGES_KEY.format(project_id=project_id)
        raw_messages = await self.redis_client.lrange(key, 0, -1)
        messages = []
        for raw in raw_messages:
            try:
                text = json.loads(raw)
            except (json.JSONDecodeError, TypeError):
                text = raw
            messages.append({"text": text})
        logger.debug(f"Project {project_id} has {len(messages)} messages")
        return messages


redis_backend = RedisBackend()
