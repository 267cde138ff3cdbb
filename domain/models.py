"""Domain models for the chat system"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


def utc_now() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render a datetime the way browsers render Date.toISOString()

    Naive datetimes are treated as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime:
    """Parse a client or stored timestamp into an aware UTC datetime

    Accepts ISO 8601 strings (with or without a trailing 'Z') and epoch
    milliseconds, which is what Date.now() produces.

    Raises:
        ValueError: if the value cannot be interpreted as a timestamp
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool):
        raise ValueError(f"Invalid timestamp: {value!r}")
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError) as e:
            raise ValueError(f"Invalid timestamp: {value!r}") from e
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class Message:
    """A chat message as recorded by the message store

    Fields:
    - id: Store-assigned, strictly increasing identity
    - username: Declared sender name (at most 50 chars)
    - text: Message content (at most 255 chars)
    - timestamp: Client-declared send time, stored verbatim
    """
    id: int
    username: str
    text: str
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        """Wire representation used in message, messageHistory and stats payloads"""
        return {
            "id": self.id,
            "username": self.username,
            "text": self.text,
            "timestamp": format_timestamp(self.timestamp),
        }
