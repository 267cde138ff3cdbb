"""WebSocket connection handling and frame parsing"""
import json
import logging
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect

from domain.constants import EVENT_ERROR, ERROR_INVALID_JSON
from domain.errors import TransportError
from events.relay import ChatRelay
from websocket.session import Session

logger = logging.getLogger(__name__)


def parse_frame(raw: str | None) -> tuple[str, dict[str, Any]]:
    """Parse an inbound frame into (event type, data)

    Frames look like {"type": "message", "data": {...}}; `data` may be
    omitted for events without a payload.

    Raises:
        TransportError: if the frame is not text, not valid JSON or has the wrong shape
    """
    if not isinstance(raw, str):
        raise TransportError("Expected a text frame")
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError as e:
        raise TransportError(f"Invalid JSON: {e}") from e

    if not isinstance(frame, dict):
        raise TransportError("Frame must be a JSON object")

    event_type = frame.get("type")
    if not isinstance(event_type, str) or not event_type.strip():
        raise TransportError("Frame is missing an event type")

    data = frame.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise TransportError("Event data must be a JSON object")

    return event_type.strip(), data


async def handle_websocket_connection(websocket: WebSocket, relay: ChatRelay) -> Session:
    """Run one client's session from accept to disconnect

    Leave cleanup always runs on exit, even while a send is still being
    persisted.

    Returns:
        The closed session; its pending_tasks may still be running
    """
    session = await relay.connection_manager.connect(websocket)
    logger.info(
        "Session %s connected. Total clients: %d",
        session.connection_id,
        relay.connection_manager.get_connection_count()
    )

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))

            try:
                # Binary frames carry no "text" and are rejected like bad JSON
                event_type, data = parse_frame(message.get("text"))
            except TransportError as e:
                logger.warning("Malformed frame from session %s: %s", session.connection_id, e)
                # Report but don't close the connection - client can recover
                await relay.connection_manager.send(session, EVENT_ERROR, {"message": ERROR_INVALID_JSON})
                continue

            await relay.dispatch(session, event_type, data)

    except WebSocketDisconnect:
        logger.info("Client %s disconnected", session.username or session.connection_id)
    except Exception as e:
        logger.error("WebSocket error on session %s: %s", session.connection_id, e)
    finally:
        await relay.disconnect(session)

    return session
