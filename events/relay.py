"""Broadcast core: routes client events to presence, persistence and fan-out"""
import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable

from database.chat_database import ChatDatabase
from domain.constants import (
    EVENT_USER_JOINED, EVENT_USER_LEFT, EVENT_USER_COUNT, EVENT_GET_HISTORY, EVENT_HISTORY,
    EVENT_MESSAGE, EVENT_TYPING, EVENT_STOP_TYPING, EVENT_PING, EVENT_PONG, EVENT_ERROR,
    MAX_USERNAME_LENGTH, MAX_TEXT_LENGTH, HISTORY_LIMIT,
    ERROR_INVALID_MESSAGE, ERROR_INVALID_USERNAME, ERROR_NOT_JOINED, ERROR_SEND_FAILED, ERROR_HISTORY_FAILED,
)
from domain.errors import PersistenceError, TransportError, ValidationError
from domain.models import Message, parse_timestamp, utc_now
from websocket.connection_manager import ConnectionManager
from websocket.presence import PresenceRegistry
from websocket.session import Session

logger = logging.getLogger(__name__)

# Events whose handling awaits the message store
STORE_BOUND_EVENTS = frozenset({EVENT_MESSAGE, EVENT_GET_HISTORY})


def validate_message(username: Any, text: Any) -> None:
    """Check a message before it is persisted or broadcast

    Raises:
        ValidationError: if username or text is missing, empty or too long
    """
    if not isinstance(username, str) or not username:
        raise ValidationError("Username is required")
    if not isinstance(text, str) or not text:
        raise ValidationError("Text is required")
    if len(username) > MAX_USERNAME_LENGTH:
        raise ValidationError(f"Username exceeds {MAX_USERNAME_LENGTH} characters")
    if len(text) > MAX_TEXT_LENGTH:
        raise ValidationError(f"Text exceeds {MAX_TEXT_LENGTH} characters")


def resolve_timestamp(value: Any) -> datetime:
    """Client-declared send time, or receipt time when absent or unreadable"""
    if value is None:
        return utc_now()
    try:
        return parse_timestamp(value)
    except ValueError:
        logger.warning("Unreadable client timestamp %r, using receipt time", value)
        return utc_now()


class ChatRelay:
    """Applies the per-event rules for persistence, presence and fan-out

    Presence mutations happen before the first await in each handler, so
    they never interleave with one another. The only I/O suspension that
    matters for ordering is the store call; message ids reflect store
    commit order.
    """

    def __init__(
        self,
        db: ChatDatabase,
        presence: PresenceRegistry,
        connection_manager: ConnectionManager,
        history_limit: int = HISTORY_LIMIT,
    ) -> None:
        self.db = db
        self.presence = presence
        self.connection_manager = connection_manager
        self.history_limit = history_limit

    async def dispatch(self, session: Session, event_type: str, data: dict[str, Any]) -> None:
        """Handle one inbound event, logging failures instead of raising them

        Store-bound events are scheduled rather than awaited so the caller's
        receive loop keeps reading while the store call is in flight.
        """
        try:
            if event_type in STORE_BOUND_EVENTS:
                self.schedule(session, event_type, data)
            else:
                await self.handle_event(session, event_type, data)
        except TransportError as e:
            logger.warning("Ignoring event from session %s: %s", session.connection_id, e)
        except Exception:
            logger.exception("Unexpected error handling %r for session %s", event_type, session.connection_id)

    def schedule(self, session: Session, event_type: str, data: dict[str, Any]) -> asyncio.Task:
        """Start store-bound work as a task owned by the session

        The open-session check runs now, at receipt. A disconnect that happens
        afterwards does not cancel the task.

        Raises:
            TransportError: if the session already left
        """
        self._ensure_open(session, event_type)
        if event_type == EVENT_MESSAGE:
            work = self.send_message(session, data)
        elif event_type == EVENT_GET_HISTORY:
            work = self.send_history(session)
        else:
            raise TransportError(f"{event_type!r} is not a store-bound event")

        task = asyncio.create_task(self._run(session, event_type, work))
        session.track(task)
        return task

    async def _run(self, session: Session, event_type: str, work: Awaitable[Any]) -> None:
        try:
            await work
        except Exception:
            logger.exception("Unexpected error handling %r for session %s", event_type, session.connection_id)

    def _ensure_open(self, session: Session, event_type: str) -> None:
        if session.is_closed:
            raise TransportError(f"{event_type!r} received after session closed")

    async def handle_event(self, session: Session, event_type: str, data: dict[str, Any]) -> None:
        """Route an inbound event to its handler

        Raises:
            TransportError: for unknown events or events sent after leaving
        """
        if event_type == EVENT_PING:
            await self.ping(session)
            return

        self._ensure_open(session, event_type)

        if event_type == EVENT_USER_JOINED:
            await self.join(session, data.get("username"))
        elif event_type == EVENT_USER_LEFT:
            await self.leave(session)
        elif event_type == EVENT_GET_HISTORY:
            await self.send_history(session)
        elif event_type == EVENT_MESSAGE:
            await self.send_message(session, data)
        elif event_type == EVENT_TYPING:
            await self.start_typing(session)
        elif event_type == EVENT_STOP_TYPING:
            await self.stop_typing(session)
        else:
            raise TransportError(f"Unknown event type {event_type!r}")

    async def join(self, session: Session, username: Any) -> None:
        """Bind a username to the session and announce it

        A re-join under a different name is an atomic leave of the old name
        followed by a join of the new one.
        """
        username = username.strip() if isinstance(username, str) else ""
        if not username or len(username) > MAX_USERNAME_LENGTH:
            logger.warning("Rejected join from session %s: invalid username", session.connection_id)
            await self.connection_manager.send(session, EVENT_ERROR, {"message": ERROR_INVALID_USERNAME})
            return

        previous = session.username if session.is_joined else None
        replaced = previous is not None and previous != username
        if replaced:
            self.presence.leave(previous)
        self.presence.join(username)
        session.bind(username)
        count = self.presence.size()

        if replaced:
            logger.info("%s renamed to %s", previous, username)
            await self.connection_manager.broadcast_except(EVENT_USER_LEFT, {"username": previous}, session)
        else:
            logger.info("%s joined the chat", username)

        await self.connection_manager.broadcast_except(EVENT_USER_JOINED, {"username": username}, session)
        await self.connection_manager.broadcast(EVENT_USER_COUNT, {"count": count})

    async def leave(self, session: Session) -> None:
        """Explicit leave; the connection stays open but only answers ping"""
        await self._release(session)

    async def disconnect(self, session: Session) -> None:
        """Transport went away; runs the same cleanup as an explicit leave

        Does not wait for the session's in-flight store tasks.
        """
        self.connection_manager.disconnect(session)
        await self._release(session)
        logger.info("Session %s disconnected", session.connection_id)

    async def _release(self, session: Session) -> None:
        username = session.close()
        if username is None:
            return

        self.presence.leave(username)
        count = self.presence.size()
        logger.info("%s left the chat", username)

        await self.connection_manager.broadcast_except(EVENT_USER_LEFT, {"username": username}, session)
        await self.connection_manager.broadcast(EVENT_USER_COUNT, {"count": count})

    async def send_history(self, session: Session) -> None:
        """Send the most recent messages, oldest first, to the requester only"""
        try:
            messages = await self.db.recent(self.history_limit)
        except PersistenceError as e:
            logger.error("Error fetching message history: %s", e)
            await self.connection_manager.send(session, EVENT_ERROR, {"message": ERROR_HISTORY_FAILED})
            return

        history = [message.to_dict() for message in reversed(messages)]
        await self.connection_manager.send(session, EVENT_HISTORY, history)

    async def send_message(self, session: Session, data: dict[str, Any]) -> Message | None:
        """Validate, persist, then broadcast a chat message to everyone

        Nothing is broadcast unless the store accepted the message.

        Returns:
            The stored message, or None if it was rejected or not persisted
        """
        # The bound username outlives close, so a send received just before a
        # disconnect is still delivered
        if session.username is None:
            await self.connection_manager.send(session, EVENT_ERROR, {"message": ERROR_NOT_JOINED})
            return None

        username = data.get("username", session.username)
        text = data.get("text")
        try:
            validate_message(username, text)
        except ValidationError as e:
            logger.warning("Rejected message from session %s: %s", session.connection_id, e)
            await self.connection_manager.send(session, EVENT_ERROR, {"message": ERROR_INVALID_MESSAGE})
            return None

        timestamp = resolve_timestamp(data.get("timestamp"))
        try:
            message_id = await self.db.insert_message(username, text, timestamp)
        except PersistenceError as e:
            logger.error("Error saving message: %s", e)
            await self.connection_manager.send(session, EVENT_ERROR, {"message": ERROR_SEND_FAILED})
            return None

        message = Message(id=message_id, username=username, text=text, timestamp=timestamp)
        logger.info("Message from %s: %s", username, text[:50])
        await self.connection_manager.broadcast(EVENT_MESSAGE, message.to_dict())
        return message

    async def start_typing(self, session: Session) -> None:
        if not session.is_joined:
            return
        session.is_typing = True
        if self.presence.start_typing(session.username):
            await self.connection_manager.broadcast_except(EVENT_TYPING, {"username": session.username}, session)

    async def stop_typing(self, session: Session) -> None:
        if not session.is_joined:
            return
        session.is_typing = False
        if self.presence.stop_typing(session.username):
            await self.connection_manager.broadcast_except(EVENT_STOP_TYPING, {"username": session.username}, session)

    async def ping(self, session: Session) -> None:
        await self.connection_manager.send(session, EVENT_PONG)
