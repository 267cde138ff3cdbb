"""Main FastAPI application - real-time chat relay over WebSocket"""
import json
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from ai.agent import AIReplyBridge
from config import Settings, configure_logging, get_settings
from database.chat_database import ChatDatabase
from domain.constants import AI_USERNAME, MAX_TEXT_LENGTH
from domain.errors import PersistenceError, UpstreamProviderError, ValidationError
from domain.models import format_timestamp, utc_now
from events.relay import ChatRelay
from websocket.connection_manager import ConnectionManager
from websocket.handler import handle_websocket_connection
from websocket.presence import PresenceRegistry

logger = logging.getLogger(__name__)


async def read_json_body(request: Request) -> dict[str, Any]:
    """Decode the request body by hand so bad input maps to 400, not 422

    An empty body or a JSON value that is not an object reads as {}.

    Raises:
        ValidationError: if the body is not valid JSON
    """
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except ValueError as e:
        raise ValidationError("Invalid prompt") from e
    return body if isinstance(body, dict) else {}


def create_app(
    settings: Settings | None = None,
    db: ChatDatabase | None = None,
    ai_bridge: AIReplyBridge | None = None,
) -> FastAPI:
    """Build the relay application

    One presence registry, connection manager and relay live as long as the
    returned app.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    db = db or ChatDatabase(settings.database_path)
    ai_bridge = ai_bridge or AIReplyBridge(settings)
    presence = PresenceRegistry()
    connection_manager = ConnectionManager()
    relay = ChatRelay(db, presence, connection_manager, history_limit=settings.history_limit)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown"""
        # A store that cannot be initialized is fatal; PersistenceError propagates
        await db.init()
        logger.info("Chat relay ready, database: %s", settings.database_path)

        yield

        await db.close()
        logger.info("Application shutdown complete")

    app = FastAPI(lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.db = db
    app.state.presence = presence
    app.state.connection_manager = connection_manager
    app.state.relay = relay
    app.state.ai_bridge = ai_bridge

    @app.get("/api/health")
    async def health() -> dict:
        return {
            "status": "OK",
            "timestamp": format_timestamp(utc_now()),
            "connectedUsers": presence.size()
        }

    @app.get("/api/stats")
    async def stats():
        try:
            total = await db.count()
            recent = await db.recent(settings.stats_recent_limit)
        except PersistenceError as e:
            logger.error("Error fetching stats: %s", e)
            return JSONResponse(status_code=500, content={"error": "Failed to fetch statistics"})

        return {
            "totalMessages": total,
            "connectedUsers": presence.size(),
            "recentMessages": [message.to_dict() for message in recent]
        }

    @app.post("/api/ai-chat")
    async def ai_chat(request: Request):
        try:
            body = await read_json_body(request)
            reply = await ai_bridge.reply(body.get("prompt"), body.get("history"))
        except ValidationError as e:
            return JSONResponse(status_code=400, content={"error": str(e)})
        except UpstreamProviderError as e:
            return JSONResponse(status_code=502, content={"error": str(e)})
        except Exception:
            logger.exception("AI endpoint error")
            return JSONResponse(status_code=500, content={"error": "Failed to get AI reply"})

        if ai_bridge.demo_mode:
            return {"reply": reply}

        # Best-effort: the reply is returned even if it cannot be stored
        try:
            await db.insert_message(AI_USERNAME, reply[:MAX_TEXT_LENGTH], utc_now())
        except PersistenceError as e:
            logger.warning("Could not persist AI message: %s", e)

        return {"reply": reply}

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        """WebSocket endpoint that delegates to handler"""
        await handle_websocket_connection(websocket, relay)

    return app


app = create_app()


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
