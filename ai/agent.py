"""AI reply bridge: forwards a prompt to an OpenAI chat model"""
import logging
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from config import Settings
from domain.errors import UpstreamProviderError, ValidationError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a helpful AI assistant. Keep answers concise."
DEMO_GREETING = "Demo AI: Hello! Provide a prompt to chat."
DEMO_ECHO_LENGTH = 200
MAX_CONTENT_LENGTH = 4000


def build_messages(prompt: str, history: Any = None) -> list[dict[str, str]]:
    """Assemble chat messages: system prompt, prior turns, then the new prompt

    History entries without both a role and content are skipped. Every
    content string is cut to MAX_CONTENT_LENGTH characters.
    """
    messages = [{"role": "system", "content": SYSTEM_PROMPT}]
    if isinstance(history, list):
        for item in history:
            if not isinstance(item, dict) or not item.get("role") or not item.get("content"):
                continue
            messages.append({
                "role": str(item["role"]),
                "content": str(item["content"])[:MAX_CONTENT_LENGTH]
            })
    messages.append({"role": "user", "content": prompt[:MAX_CONTENT_LENGTH]})
    return messages


def demo_reply(prompt: Any) -> str:
    """Local stand-in reply used when no API key is configured"""
    if isinstance(prompt, str) and prompt:
        return f'Demo AI: You said "{prompt[:DEMO_ECHO_LENGTH]}"'
    return DEMO_GREETING


class AIReplyBridge:
    """Opaque request/response collaborator for AI completions

    Without an API key the bridge runs in demo mode and answers locally
    without calling the provider.
    """

    def __init__(self, settings: Settings, client: AsyncOpenAI | None = None) -> None:
        self.settings = settings
        self._client = client

    @property
    def demo_mode(self) -> bool:
        return self._client is None and self.settings.openai_api_key is None

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            kwargs: dict[str, Any] = {"api_key": self.settings.openai_api_key.get_secret_value()}
            if self.settings.openai_base_url:
                kwargs["base_url"] = self.settings.openai_base_url
            self._client = AsyncOpenAI(**kwargs)
        return self._client

    async def reply(self, prompt: Any, history: Any = None) -> str:
        """Return completion text for a prompt

        Raises:
            ValidationError: for a missing or empty prompt
            UpstreamProviderError: if the provider call fails or returns no text
        """
        if self.demo_mode:
            return demo_reply(prompt)

        if not isinstance(prompt, str) or not prompt.strip():
            raise ValidationError("Invalid prompt")

        client = self.client
        messages = build_messages(prompt, history)

        try:
            response = await client.chat.completions.create(
                model=self.settings.openai_model,
                messages=messages
            )
        except OpenAIError as e:
            logger.error("AI API error: %s", e)
            raise UpstreamProviderError("AI provider error") from e

        reply_text = ""
        if response.choices:
            reply_text = (response.choices[0].message.content or "").strip()
        if not reply_text:
            logger.warning("AI provider returned an empty completion")
            raise UpstreamProviderError("AI provider returned empty response")
        return reply_text
