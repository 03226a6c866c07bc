from unittest.mock import AsyncMock

import pytest

from streamloop.chunk import RawChunk
from streamloop.message import Message
from streamloop.provider import (
    OPENROUTER_BASE_URL,
    ModelProvider,
    OpenAIProvider,
    OpenRouter,
)

from tests.conftest import chunk


async def fake_stream(*items):
    for item in items:
        yield item


def test_openai_provider_reads_env(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-from-env")
    p = OpenAIProvider()
    assert p.client.api_key == "sk-from-env"


def test_openrouter_reads_env(monkeypatch):
    monkeypatch.setenv("OPENROUTER_API_KEY", "or-from-env")
    p = OpenRouter()
    assert p.client.api_key == "or-from-env"
    assert str(p.client.base_url).rstrip("/") == OPENROUTER_BASE_URL


def test_openrouter_attribution_headers():
    p = OpenRouter(api_key="k", site_url="https://example.com", site_name="Example")

    assert p.client.default_headers["HTTP-Referer"] == "https://example.com"
    assert p.client.default_headers["X-Title"] == "Example"


@pytest.mark.asyncio
async def test_base_provider_is_abstract():
    with pytest.raises(NotImplementedError):
        await ModelProvider().stream_complete("m", [])


class TestStreamComplete:
    @pytest.mark.asyncio
    async def test_forwards_tools_and_streams_dicts(self, monkeypatch):
        provider = OpenRouter(api_key="test-key")
        mock_create = AsyncMock(return_value=fake_stream(
            RawChunk.model_validate(chunk(content="hel")),
            chunk(content="lo"),
        ))
        monkeypatch.setattr(
            provider.client.chat.completions, "create", mock_create,
        )

        messages = [Message.user("hi")]
        tools = [{"type": "function", "function": {"name": "f"}}]
        payloads = [
            p async for p in provider.stream_complete("m", messages, tools=tools)
        ]

        mock_create.assert_called_once_with(
            model="m",
            messages=[{"role": "user", "content": "hi"}],
            stream=True,
            stream_options={"include_usage": True},
            tools=tools,
            tool_choice="auto",
        )
        assert [p["choices"][0]["delta"]["content"] for p in payloads] == ["hel", "lo"]

    @pytest.mark.asyncio
    async def test_omits_tools_when_none(self, monkeypatch):
        provider = OpenAIProvider(api_key="test-key")
        mock_create = AsyncMock(return_value=fake_stream())
        monkeypatch.setattr(
            provider.client.chat.completions, "create", mock_create,
        )

        [p async for p in provider.stream_complete("m", [{"role": "user", "content": "x"}])]

        kwargs = mock_create.call_args.kwargs
        assert "tools" not in kwargs
        assert "tool_choice" not in kwargs

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self, monkeypatch):
        provider = OpenAIProvider(api_key="test-key")
        monkeypatch.setattr(
            provider.client.chat.completions, "create",
            AsyncMock(side_effect=ConnectionError("down")),
        )

        with pytest.raises(ConnectionError):
            [p async for p in provider.stream_complete("m", [])]
