"""Tests for GroqCompletionClient."""

import asyncio
import json
from unittest.mock import AsyncMock, Mock

import httpx
import pytest
from groq import APIConnectionError, APITimeoutError

from cadence.completion import (
    DEFAULT_MODEL,
    CompletionError,
    CompletionTimeout,
    GroqCompletionClient,
)
from cadence.logging import JSONLLogger

REQUEST = httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions")


@pytest.fixture
def mock_client() -> AsyncMock:
    """Create a mock Groq client."""
    return AsyncMock()


@pytest.fixture
def client(mock_client: AsyncMock) -> GroqCompletionClient:
    return GroqCompletionClient(mock_client, timeout=1.0)


def make_response(content: str | None) -> Mock:
    """Create a mock LLM response."""
    response = Mock()
    response.choices = [Mock()]
    response.choices[0].message.content = content
    return response


def read_events(event_log: JSONLLogger) -> list[dict]:
    with open(event_log.log_path) as f:
        return [json.loads(line) for line in f]


class TestGroqCompletionClientInit:
    def test_default_model(self, mock_client: AsyncMock):
        assert GroqCompletionClient(mock_client).model == DEFAULT_MODEL

    def test_custom_model(self, mock_client: AsyncMock):
        assert GroqCompletionClient(mock_client, model="custom").model == "custom"


class TestGroqCompletionClientComplete:
    @pytest.mark.asyncio
    async def test_returns_content(self, client, mock_client):
        """The first choice's content is returned."""
        mock_client.chat.completions.create = AsyncMock(
            return_value=make_response('{"ok": true}')
        )
        assert await client.complete("system", "user") == '{"ok": true}'

    @pytest.mark.asyncio
    async def test_sends_system_and_user_messages(self, client, mock_client):
        mock_client.chat.completions.create = AsyncMock(return_value=make_response("x"))

        await client.complete("be terse", "hello", temperature=0.1, max_tokens=500)

        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"] == [
            {"role": "system", "content": "be terse"},
            {"role": "user", "content": "hello"},
        ]
        assert kwargs["temperature"] == 0.1
        assert kwargs["max_tokens"] == 500
        assert kwargs["model"] == DEFAULT_MODEL

    @pytest.mark.asyncio
    async def test_empty_system_prompt_omitted(self, client, mock_client):
        mock_client.chat.completions.create = AsyncMock(return_value=make_response("x"))
        await client.complete("", "hello")
        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"] == [{"role": "user", "content": "hello"}]

    @pytest.mark.asyncio
    async def test_none_content_is_empty_string(self, client, mock_client):
        mock_client.chat.completions.create = AsyncMock(return_value=make_response(None))
        assert await client.complete("s", "u") == ""

    @pytest.mark.asyncio
    async def test_no_choices_is_empty_string(self, client, mock_client):
        response = Mock()
        response.choices = []
        mock_client.chat.completions.create = AsyncMock(return_value=response)
        assert await client.complete("s", "u") == ""

    @pytest.mark.asyncio
    async def test_api_error_raises_completion_error(self, client, mock_client):
        mock_client.chat.completions.create = AsyncMock(
            side_effect=APIConnectionError(request=REQUEST)
        )
        with pytest.raises(CompletionError) as exc_info:
            await client.complete("s", "u")
        assert not isinstance(exc_info.value, CompletionTimeout)

    @pytest.mark.asyncio
    async def test_api_timeout_raises_completion_timeout(self, client, mock_client):
        mock_client.chat.completions.create = AsyncMock(
            side_effect=APITimeoutError(request=REQUEST)
        )
        with pytest.raises(CompletionTimeout):
            await client.complete("s", "u")

    @pytest.mark.asyncio
    async def test_slow_call_times_out(self, mock_client):
        """Calls longer than the timeout are abandoned."""

        async def slow(**kwargs):
            await asyncio.sleep(1)
            return make_response("late")

        mock_client.chat.completions.create = slow
        client = GroqCompletionClient(mock_client, timeout=0.01)

        with pytest.raises(CompletionTimeout):
            await client.complete("s", "u")


class TestCompletionEventLog:
    @pytest.mark.asyncio
    async def test_success_logged(self, client, mock_client, event_log):
        mock_client.chat.completions.create = AsyncMock(return_value=make_response("x"))

        await client.complete("s", "u", purpose="goal_extraction")

        entry = read_events(event_log)[-1]
        assert entry["event"] == "completion"
        assert entry["extra"]["purpose"] == "goal_extraction"
        assert entry["extra"]["success"] is True
        assert "duration_ms" in entry

    @pytest.mark.asyncio
    async def test_failure_logged_with_error(self, client, mock_client, event_log):
        mock_client.chat.completions.create = AsyncMock(
            side_effect=APIConnectionError(request=REQUEST)
        )

        with pytest.raises(CompletionError):
            await client.complete("s", "u")

        entry = read_events(event_log)[-1]
        assert entry["extra"]["success"] is False
        assert "error" in entry
