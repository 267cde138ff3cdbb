"""Database access layer for chat system"""
import logging
from datetime import datetime

import aiosqlite

from domain.errors import PersistenceError
from domain.models import Message, format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

# Database path
DB_PATH = "chat_app.db"

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS messages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT NOT NULL,
        text TEXT NOT NULL,
        timestamp TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_timestamp ON messages(timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_messages_username ON messages(username)",
)


class ChatDatabase:
    """Append-only SQLite message log

    Ids come from AUTOINCREMENT, so they are strictly increasing and never
    reused. Every public operation re-applies the idempotent schema first.
    All driver errors surface as PersistenceError.
    """

    def __init__(self, db_path: str = DB_PATH) -> None:
        self.db_path = db_path
        self.conn: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Open the database and create the schema

        Raises:
            PersistenceError: if the database cannot be opened or initialized
        """
        try:
            self.conn = await aiosqlite.connect(self.db_path)
            await self.conn.execute("PRAGMA journal_mode = WAL")
            await self.ensure_schema()
        except (aiosqlite.Error, OSError) as e:
            raise PersistenceError(f"Database initialization failed: {e}") from e
        logger.info("Database initialized at %s", self.db_path)

    async def close(self) -> None:
        """Close database connection"""
        if self.conn:
            await self.conn.close()
            self.conn = None

    def _connection(self) -> aiosqlite.Connection:
        if self.conn is None:
            raise PersistenceError("Database not initialized")
        return self.conn

    async def ensure_schema(self) -> None:
        """Create tables and indexes if absent; safe to call repeatedly"""
        conn = self._connection()
        try:
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(statement)
            await conn.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Schema check failed: {e}") from e

    async def insert_message(self, username: str, text: str, timestamp: datetime) -> int:
        """Append one message and return its store-assigned id

        The timestamp is stored as given; it is not replaced by receipt time.
        """
        await self.ensure_schema()
        conn = self._connection()
        try:
            cursor = await conn.execute(
                "INSERT INTO messages (username, text, timestamp) VALUES (?, ?, ?)",
                (username, text, format_timestamp(timestamp))
            )
            await conn.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to insert message: {e}") from e

        message_id = cursor.lastrowid
        if message_id is None:
            raise PersistenceError("Store did not assign a message id")
        return message_id

    async def recent(self, limit: int) -> list[Message]:
        """Return up to `limit` most recently inserted messages, newest first"""
        await self.ensure_schema()
        conn = self._connection()
        try:
            cursor = await conn.execute(
                "SELECT id, username, text, timestamp FROM messages ORDER BY id DESC LIMIT ?",
                (limit,)
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to read messages: {e}") from e

        return [
            Message(
                id=row[0],
                username=row[1],
                text=row[2],
                timestamp=parse_timestamp(row[3])
            )
            for row in rows
        ]

    async def count(self) -> int:
        """Total number of messages ever inserted"""
        await self.ensure_schema()
        conn = self._connection()
        try:
            cursor = await conn.execute("SELECT COUNT(*) FROM messages")
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to count messages: {e}") from e
        return row[0] if row else 0
