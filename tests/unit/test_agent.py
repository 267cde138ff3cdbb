"""Unit tests for AIReplyBridge"""
import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from openai import OpenAIError

from ai.agent import AIReplyBridge, build_messages, DEMO_GREETING, MAX_CONTENT_LENGTH, SYSTEM_PROMPT
from config import Settings
from domain.errors import UpstreamProviderError, ValidationError


def completion(content):
    """Shape of a chat.completions.create() response"""
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def fake_client(response=None, error=None):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response, side_effect=error)
    return client


@pytest.fixture
def settings():
    return Settings(OPENAI_API_KEY="sk-test", OPENAI_MODEL="test-model")


@pytest.mark.unit
class TestBuildMessages:
    """Test prompt assembly"""

    def test_system_then_user(self):
        messages = build_messages("hello")
        assert messages == [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": "hello"},
        ]

    def test_history_inserted_between(self):
        history = [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello there"},
        ]
        messages = build_messages("next", history)
        assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
        assert messages[-1]["content"] == "next"

    def test_incomplete_history_entries_skipped(self):
        history = [{"role": "user"}, {"content": "orphan"}, "junk", None, {"role": "user", "content": "kept"}]
        messages = build_messages("next", history)
        assert [m["content"] for m in messages[1:]] == ["kept", "next"]

    def test_non_list_history_ignored(self):
        assert len(build_messages("next", {"role": "user", "content": "x"})) == 2

    def test_contents_truncated(self):
        long_text = "x" * (MAX_CONTENT_LENGTH + 100)
        messages = build_messages(long_text, [{"role": "user", "content": long_text}])
        assert all(len(m["content"]) <= MAX_CONTENT_LENGTH for m in messages)


@pytest.mark.unit
@pytest.mark.asyncio
class TestReply:
    """Test provider calls and error mapping"""

    async def test_returns_completion_text(self, settings):
        client = fake_client(completion("  Paris.  "))
        bridge = AIReplyBridge(settings, client=client)

        reply = await bridge.reply("Capital of France?")

        assert reply == "Paris."
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["messages"][-1] == {"role": "user", "content": "Capital of France?"}

    @pytest.mark.parametrize("response", [completion(None), completion("   "), SimpleNamespace(choices=[])])
    async def test_empty_completion_is_upstream_error(self, settings, response):
        bridge = AIReplyBridge(settings, client=fake_client(response))
        with pytest.raises(UpstreamProviderError, match="empty response"):
            await bridge.reply("anything")

    async def test_provider_error_becomes_upstream_error(self, settings):
        bridge = AIReplyBridge(settings, client=fake_client(error=OpenAIError("rate limited")))
        with pytest.raises(UpstreamProviderError):
            await bridge.reply("anything")

    @pytest.mark.parametrize("prompt", [None, "", "   ", 42, ["hi"]])
    async def test_invalid_prompt_rejected_without_calling_provider(self, settings, prompt):
        client = fake_client(completion("unused"))
        bridge = AIReplyBridge(settings, client=client)

        with pytest.raises(ValidationError):
            await bridge.reply(prompt)
        client.chat.completions.create.assert_not_called()

    async def test_missing_api_key_answers_in_demo_mode(self):
        bridge = AIReplyBridge(Settings(OPENAI_API_KEY=None))

        assert bridge.demo_mode
        assert await bridge.reply("hello") == 'Demo AI: You said "hello"'
        assert bridge._client is None

    async def test_demo_reply_echo_is_truncated(self):
        bridge = AIReplyBridge(Settings(OPENAI_API_KEY=None))
        reply = await bridge.reply("z" * 500)
        assert reply == 'Demo AI: You said "' + "z" * 200 + '"'

    @pytest.mark.parametrize("prompt", [None, "", 42])
    async def test_demo_mode_without_usable_prompt_greets(self, prompt):
        bridge = AIReplyBridge(Settings(OPENAI_API_KEY=None))
        assert await bridge.reply(prompt) == DEMO_GREETING


@pytest.mark.unit
class TestClientConstruction:
    """Test lazy OpenAI client setup"""

    def test_client_built_lazily_from_settings(self, settings):
        bridge = AIReplyBridge(settings)
        assert not bridge.demo_mode
        assert bridge._client is None
        client = bridge.client
        assert client is bridge.client
        assert client.api_key == "sk-test"
