"""Application settings and logging setup"""
import logging
from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from domain.constants import HISTORY_LIMIT, STATS_RECENT_LIMIT

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_console_handler: logging.Handler | None = None


class Settings(BaseSettings):
    """Relay settings, loaded from the environment and an optional .env file"""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Server ---
    host: str = Field(default="localhost", alias="HOST")
    port: int = Field(default=3000, alias="PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    cors_allow_origins: list[str] = Field(default=["*"], alias="CORS_ALLOW_ORIGINS")

    # --- Persistence ---
    database_path: str = Field(default="chat_app.db", alias="CHAT_DB_PATH")
    history_limit: int = Field(default=HISTORY_LIMIT, alias="HISTORY_LIMIT")
    stats_recent_limit: int = Field(default=STATS_RECENT_LIMIT, alias="STATS_RECENT_LIMIT")

    # --- AI bridge ---
    openai_api_key: SecretStr | None = Field(default=None, alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4o-mini", alias="OPENAI_MODEL")
    openai_base_url: str | None = Field(default=None, alias="OPENAI_BASE_URL")


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str | int = logging.INFO) -> logging.Handler:
    """Install the relay's console handler on the root logger

    Safe to call more than once: the handler from a previous call is
    replaced, and handlers installed by anything else are left alone.
    """
    global _console_handler

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)

    if _console_handler is not None:
        root.removeHandler(_console_handler)

    _console_handler = logging.StreamHandler()
    _console_handler.setLevel(level)
    _console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    root.addHandler(_console_handler)
    return _console_handler
