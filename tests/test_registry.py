"""
Unit tests for RoomRegistry and Session delivery
"""
import pytest

from registry import RoomRegistry, Session, SessionState
from tests.conftest import FakeWebSocket, settle


def make_session(project_id="p1", **kwargs):
    session = Session(FakeWebSocket(fail=kwargs.pop("fail", False)), project_id, **kwargs)
    session.start()
    return session


@pytest.mark.asyncio
async def test_join_is_idempotent_and_marks_session_joined():
    registry = RoomRegistry()
    session = make_session()
    assert session.state == SessionState.CONNECTING

    registry.join("p1", session)
    registry.join("p1", session)

    assert registry.members("p1") == [session]
    assert session.state == SessionState.JOINED
    session.close()


@pytest.mark.asyncio
async def test_broadcast_reaches_room_except_sender():
    registry = RoomRegistry()
    sender, peer_1, peer_2 = make_session(), make_session(), make_session()
    outsider = make_session("p2")
    for session in (sender, peer_1, peer_2, outsider):
        registry.join(session.project_id, session)

    delivered = registry.broadcast("p1", sender, "chat-message", "hi")
    await settle()

    assert delivered == 2
    assert peer_1.websocket.sent == [{"event": "chat-message", "data": "hi"}]
    assert peer_2.websocket.sent == [{"event": "chat-message", "data": "hi"}]
    assert sender.websocket.sent == []
    assert outsider.websocket.sent == []


@pytest.mark.asyncio
async def test_broadcast_to_empty_or_unknown_room_is_noop():
    registry = RoomRegistry()
    assert registry.broadcast("nobody-here", None, "code-change", "x") == 0

    session = make_session()
    registry.join("p1", session)
    assert registry.broadcast("p1", session, "code-change", "x") == 0


@pytest.mark.asyncio
async def test_leave_twice_is_noop_and_drops_empty_room():
    registry = RoomRegistry()
    a, b = make_session(), make_session()
    registry.join("p1", a)
    registry.join("p1", b)

    registry.leave(a)
    registry.leave(a)
    assert registry.members("p1") == [b]

    registry.leave(b)
    assert registry.room_count() == 0
    assert registry.broadcast("p1", None, "chat-message", "anyone?") == 0


@pytest.mark.asyncio
async def test_emit_to_closed_session_is_dropped():
    registry = RoomRegistry()
    session = make_session()
    registry.join("p1", session)
    session.close()

    assert registry.emit_to(session, "project-code", "x") is False
    await settle()
    assert session.websocket.sent == []


@pytest.mark.asyncio
async def test_full_queue_drops_new_frames():
    session = Session(FakeWebSocket(), "p1", queue_size=2)
    # Writer not started, so nothing drains the queue
    assert session.deliver("chat-message", 1) is True
    assert session.deliver("chat-message", 2) is True
    assert session.deliver("chat-message", 3) is False

    session.start()
    await settle()
    assert [frame["data"] for frame in session.websocket.sent] == [1, 2]
    session.close()


@pytest.mark.asyncio
async def test_send_failure_closes_session():
    registry = RoomRegistry()
    broken = make_session(fail=True)
    healthy = make_session()
    registry.join("p1", broken)
    registry.join("p1", healthy)

    registry.broadcast("p1", None, "code-change", "y")
    await settle()

    assert broken.closed
    assert healthy.websocket.sent == [{"event": "code-change", "data": "y"}]
    # A closed member does not break later broadcasts
    assert registry.broadcast("p1", None, "code-change", "z") == 1
