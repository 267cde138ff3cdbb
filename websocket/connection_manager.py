"""WebSocket connection management for handling multiple concurrent clients"""
import logging
from typing import Any

from fastapi import WebSocket

from domain.constants import EventType
from websocket.session import Session, encode_event

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Manages live sessions with lifecycle and broadcast support"""

    def __init__(self) -> None:
        """Initialize connection manager with no active sessions"""
        self.active_sessions: list[Session] = []

    async def connect(self, websocket: WebSocket) -> Session:
        """Accept a new WebSocket connection and track it as a session"""
        await websocket.accept()
        session = Session(websocket=websocket)
        self.active_sessions.append(session)
        return session

    def disconnect(self, session: Session) -> None:
        """Remove a session from the fan-out list"""
        if session in self.active_sessions:
            self.active_sessions.remove(session)

    async def send(self, session: Session, event: EventType, payload: Any = None) -> bool:
        """Send one event to a single session

        Returns:
            False if the session could not be reached
        """
        try:
            await session.send(event, payload)
            return True
        except Exception as e:
            logger.warning("Error sending %s to session %s: %s", event, session.connection_id, e)
            return False

    async def broadcast(self, event: EventType, payload: Any = None) -> None:
        """Send an event to all connected sessions

        Args:
            event: Wire event name
            payload: JSON-serializable event data
        """
        await self._fan_out(encode_event(event, payload), exclude=None)

    async def broadcast_except(self, event: EventType, payload: Any, exclude: Session) -> None:
        """Send an event to all connected sessions except one

        Args:
            event: Wire event name
            payload: JSON-serializable event data
            exclude: Session to leave out (usually the sender)
        """
        await self._fan_out(encode_event(event, payload), exclude=exclude)

    async def _fan_out(self, message_text: str, exclude: Session | None) -> None:
        disconnected: list[Session] = []

        # Iterate over a snapshot; sessions may join or leave while we await
        for session in list(self.active_sessions):
            if session is exclude:
                continue
            try:
                await session.websocket.send_text(message_text)
            except Exception as e:
                logger.warning("Error sending message to session %s: %s", session.connection_id, e)
                disconnected.append(session)

        # Clean up unreachable sessions
        for session in disconnected:
            self.disconnect(session)

    def get_connection_count(self) -> int:
        """Get the number of active sessions"""
        return len(self.active_sessions)
