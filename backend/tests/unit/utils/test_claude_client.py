"""
Unit Tests for ClaudeClient
Tests for: text extraction, retry on transient errors, error mapping
"""
import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
from anthropic import APIConnectionError, BadRequestError, InternalServerError

from promptsite.core.exceptions import UpstreamServiceError
from promptsite.utils.claude_client import ClaudeClient


REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def make_response(*texts):
    return SimpleNamespace(
        id="msg_1",
        content=[SimpleNamespace(type="text", text=t) for t in texts],
        usage=SimpleNamespace(input_tokens=10, output_tokens=20),
        stop_reason="end_turn"
    )


def server_error():
    return InternalServerError(
        "overloaded",
        response=httpx.Response(500, request=REQUEST),
        body={"error": {"type": "api_error"}}
    )


@pytest.fixture
def anthropic_client():
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=make_response("hello ", "world"))
    return client


@pytest.fixture
def claude(anthropic_client):
    return ClaudeClient(client=anthropic_client, max_retries=2)


@pytest.fixture
def no_sleep():
    with patch("promptsite.utils.claude_client.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


class TestGenerate:
    @pytest.mark.asyncio
    async def test_joins_text_blocks(self, claude, anthropic_client):
        text = await claude.generate("build a todo app", system_prompt="be brief", temperature=0.0)

        assert text == "hello world"
        kwargs = anthropic_client.messages.create.call_args.kwargs
        assert kwargs["system"] == "be brief"
        assert kwargs["temperature"] == 0.0
        assert kwargs["messages"] == [{"role": "user", "content": "build a todo app"}]

    @pytest.mark.asyncio
    async def test_retries_transient_errors(self, claude, anthropic_client, no_sleep):
        anthropic_client.messages.create.side_effect = [
            APIConnectionError(request=REQUEST),
            server_error(),
            make_response("ok"),
        ]

        assert await claude.generate("prompt") == "ok"
        assert anthropic_client.messages.create.await_count == 3
        assert no_sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, claude, anthropic_client, no_sleep):
        anthropic_client.messages.create.side_effect = server_error()

        with pytest.raises(UpstreamServiceError) as exc:
            await claude.generate("prompt")

        assert exc.value.status_code == 500
        assert anthropic_client.messages.create.await_count == 3

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self, claude, anthropic_client, no_sleep):
        anthropic_client.messages.create.side_effect = BadRequestError(
            "bad request",
            response=httpx.Response(400, request=REQUEST),
            body={"error": {"type": "invalid_request_error"}}
        )

        with pytest.raises(UpstreamServiceError) as exc:
            await claude.generate("prompt")

        assert exc.value.status_code == 400
        assert exc.value.details["service"] == "claude"
        assert no_sleep.await_count == 0


class TestRetryPolicy:
    def test_delay_is_capped(self, claude):
        claude.base_delay = 2.0
        claude.max_delay = 5.0

        assert 2.0 <= claude._calculate_retry_delay(0) <= 2.5
        assert 5.0 <= claude._calculate_retry_delay(10) <= 6.25

    def test_missing_api_key(self):
        with patch("promptsite.utils.claude_client.settings") as fake_settings:
            fake_settings.ANTHROPIC_API_KEY = ""
            with pytest.raises(ValueError):
                ClaudeClient()
