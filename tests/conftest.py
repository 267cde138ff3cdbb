"""Pytest configuration and shared fixtures for all tests"""
import json
import pytest
from unittest.mock import AsyncMock

from database.chat_database import ChatDatabase
from events.relay import ChatRelay
from websocket.connection_manager import ConnectionManager
from websocket.presence import PresenceRegistry

pytest_plugins = ("pytest_asyncio",)


def sent_frames(ws) -> list[dict]:
    """Decode every frame sent through a mocked websocket"""
    return [json.loads(call.args[0]) for call in ws.send_text.call_args_list]


def sent_types(ws) -> list[str]:
    """Event types sent through a mocked websocket, in order"""
    return [frame["type"] for frame in sent_frames(ws)]


@pytest.fixture
async def in_memory_db():
    """Create an in-memory SQLite database for testing"""
    db = ChatDatabase(":memory:")
    await db.init()
    yield db
    await db.close()


@pytest.fixture
def presence():
    """Create an empty PresenceRegistry"""
    return PresenceRegistry()


@pytest.fixture
def connection_manager():
    """Create a ConnectionManager instance for testing"""
    return ConnectionManager()


@pytest.fixture
async def relay(in_memory_db, presence, connection_manager):
    """Create a ChatRelay wired to an in-memory store"""
    return ChatRelay(in_memory_db, presence, connection_manager)


@pytest.fixture
def mock_websocket():
    """Create a mock WebSocket for testing"""
    ws = AsyncMock()
    ws.accept = AsyncMock()
    ws.send_text = AsyncMock()
    ws.close = AsyncMock()
    return ws


@pytest.fixture
def make_session(connection_manager):
    """Connect a fresh mocked websocket and return its (session, websocket)"""
    async def _make():
        ws = AsyncMock()
        session = await connection_manager.connect(ws)
        return session, ws
    return _make


@pytest.fixture
def frames():
    """Helper that decodes frames sent through a mocked websocket"""
    return sent_frames


@pytest.fixture
def types():
    """Helper that lists event types sent through a mocked websocket"""
    return sent_types
