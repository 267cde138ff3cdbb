"""Per-connection session state"""
import asyncio
import json
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from fastapi import WebSocket

from domain.constants import EventType


class SessionState(str, Enum):
    """Lifecycle of one client connection"""
    CONNECTED = "connected"
    JOINED = "joined"
    CLOSED = "closed"


def encode_event(event: EventType, payload: Any = None) -> str:
    """Serialize an outbound frame as {"type": ..., "data": ...}

    `data` is left out for events without a payload (pong).
    """
    frame: dict[str, Any] = {"type": event}
    if payload is not None:
        frame["data"] = payload
    return json.dumps(frame)


@dataclass(eq=False)
class Session:
    """One client's live connection and its bound identity

    Sessions compare by identity, so two sessions bound to the same
    username stay distinct in the connection list.
    """
    websocket: WebSocket
    connection_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    username: str | None = None
    is_typing: bool = False
    state: SessionState = SessionState.CONNECTED
    pending_tasks: set[asyncio.Task] = field(default_factory=set)

    @property
    def is_joined(self) -> bool:
        return self.state == SessionState.JOINED

    @property
    def is_closed(self) -> bool:
        return self.state == SessionState.CLOSED

    def bind(self, username: str) -> None:
        """Bind (or rebind) the session to a username"""
        self.username = username
        self.is_typing = False
        self.state = SessionState.JOINED

    def close(self) -> str | None:
        """Move to CLOSED and return the username that was bound, if any"""
        username = self.username if self.state == SessionState.JOINED else None
        self.state = SessionState.CLOSED
        self.is_typing = False
        return username

    def track(self, task: asyncio.Task) -> None:
        """Keep a reference to an in-flight task until it finishes"""
        self.pending_tasks.add(task)
        task.add_done_callback(self.pending_tasks.discard)

    async def send(self, event: EventType, payload: Any = None) -> None:
        await self.websocket.send_text(encode_event(event, payload))
