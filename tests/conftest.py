"""
Pytest configuration and fixtures for testing
"""
import asyncio
import json

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

import backend
import relay
from app import app
from registry import RoomRegistry
from redis_keys import REDIS_PROJECT_KEY, REDIS_PROJECT_INDEX_KEY

PROJECT_ID = "abc123"


class FakeRedis:
    """In-memory stand-in for the async Redis commands RedisBackend uses.

    Set ``fail_reads`` / ``fail_writes`` to make the matching commands raise
    a Redis connection error.
    """

    def __init__(self):
        self.hashes = {}
        self.sets = {}
        self.lists = {}
        self.fail_reads = False
        self.fail_writes = False

    def _check(self, write):
        if (write and self.fail_writes) or (not write and self.fail_reads):
            raise RedisConnectionError("redis unavailable")

    async def hset(self, key, field=None, value=None, mapping=None):
        self._check(write=True)
        target = self.hashes.setdefault(key, {})
        added = 0
        items = dict(mapping or {})
        if field is not None:
            items[field] = value
        for k, v in items.items():
            if k not in target:
                added += 1
            target[k] = str(v)
        return added

    async def hget(self, key, field):
        self._check(write=False)
        return self.hashes.get(key, {}).get(field)

    async def hgetall(self, key):
        self._check(write=False)
        return dict(self.hashes.get(key, {}))

    async def exists(self, *keys):
        self._check(write=False)
        return sum(1 for key in keys if key in self.hashes or key in self.sets or key in self.lists)

    async def sadd(self, key, *members):
        self._check(write=True)
        target = self.sets.setdefault(key, set())
        before = len(target)
        target.update(members)
        return len(target) - before

    async def smembers(self, key):
        self._check(write=False)
        return set(self.sets.get(key, set()))

    async def rpush(self, key, *values):
        self._check(write=True)
        target = self.lists.setdefault(key, [])
        target.extend(values)
        return len(target)

    async def lrange(self, key, start, end):
        self._check(write=False)
        items = self.lists.get(key, [])
        if end == -1:
            return list(items[start:])
        return list(items[start:end + 1])


class FakeOracle:
    def __init__(self, reply="Looks good to me."):
        self.reply = reply
        self.error = None
        self.gate = None
        self.calls = []

    async def review(self, code):
        self.calls.append(code)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.reply


class FakeWebSocket:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send_text(self, text):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(json.loads(text))

    @property
    def events(self):
        return [frame["event"] for frame in self.sent]


async def settle(rounds=5):
    """Let queued writer tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def seed_project(fake_redis, project_id=PROJECT_ID, code="", name="demo", created_at="2025-01-01T00:00:00"):
    fake_redis.hashes[REDIS_PROJECT_KEY.format(project_id=project_id)] = {
        "id": project_id,
        "name": name,
        "description": "",
        "code": code,
        "created_at": created_at,
    }
    fake_redis.sets.setdefault(REDIS_PROJECT_INDEX_KEY, set()).add(project_id)


@pytest.fixture
def fake_redis(monkeypatch):
    client = FakeRedis()
    monkeypatch.setattr(backend.redis_backend, "redis_client", client)
    return client


@pytest.fixture
def store(fake_redis):
    return backend.redis_backend


@pytest.fixture
def oracle(monkeypatch):
    fake = FakeOracle()
    monkeypatch.setattr(relay.relay_handler, "oracle", fake)
    return fake


@pytest.fixture
def registry(monkeypatch):
    fresh = RoomRegistry()
    monkeypatch.setattr(relay.relay_handler, "registry", fresh)
    return fresh


@pytest.fixture
def project(fake_redis):
    seed_project(fake_redis)
    return PROJECT_ID


@pytest.fixture
def client(fake_redis, oracle, registry):
    with TestClient(app) as test_client:
        yield test_client
