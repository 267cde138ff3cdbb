"""Domain constants and type aliases"""
from typing import Literal

# Type alias for wire event names (both directions share one namespace)
EventType = Literal[
    "userJoined",
    "userLeft",
    "userCount",
    "getMessageHistory",
    "messageHistory",
    "message",
    "typing",
    "stopTyping",
    "ping",
    "pong",
    "error",
]

# Event name constants
EVENT_USER_JOINED: EventType = "userJoined"
EVENT_USER_LEFT: EventType = "userLeft"
EVENT_USER_COUNT: EventType = "userCount"
EVENT_GET_HISTORY: EventType = "getMessageHistory"
EVENT_HISTORY: EventType = "messageHistory"
EVENT_MESSAGE: EventType = "message"
EVENT_TYPING: EventType = "typing"
EVENT_STOP_TYPING: EventType = "stopTyping"
EVENT_PING: EventType = "ping"
EVENT_PONG: EventType = "pong"
EVENT_ERROR: EventType = "error"

# Message limits
MAX_USERNAME_LENGTH = 50
MAX_TEXT_LENGTH = 255

# History sizes
HISTORY_LIMIT = 20
STATS_RECENT_LIMIT = 10

# Reserved username for persisted AI replies
AI_USERNAME = "AI"

# Error texts sent to clients
ERROR_INVALID_MESSAGE = "Invalid message data"
ERROR_INVALID_USERNAME = "Invalid username"
ERROR_NOT_JOINED = "Join the chat before sending messages"
ERROR_SEND_FAILED = "Failed to send message"
ERROR_HISTORY_FAILED = "Failed to load message history"
ERROR_INVALID_JSON = "Invalid JSON format"
