import logging
import os
from collections.abc import AsyncIterator

from openai import AsyncOpenAI
from pydantic import BaseModel

from streamloop.message import Message

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class ModelProvider:
    """Source of raw streaming payloads for one turn.

    ``stream_complete`` yields payloads the
    :class:`~streamloop.sequencer.EventSequencer` understands: SSE
    ``data:`` strings (including ``[DONE]``), chunk dicts, or
    :class:`~streamloop.chunk.RawChunk` objects.  Transport errors are
    raised from the iterator and end the tool loop.
    """

    async def stream_complete(
            self,
            model: str,
            messages: list[Message],
            tools: list[dict] | None = None,
    ) -> AsyncIterator:
        raise NotImplementedError


class OpenAICompatibleProvider(ModelProvider):
    """Streams chat completions through the ``openai`` SDK.

    Retries and timeouts are the SDK's; this class only shapes the
    request and forwards chunks.
    """

    def __init__(
            self,
            base_url: str | None = None,
            api_key: str | None = None,
            default_headers: dict[str, str] | None = None,
            max_retries: int = 5,
            timeout: float = 180.0,
    ):
        self.base_url = base_url
        self.client = AsyncOpenAI(
            base_url=base_url,
            api_key=api_key,
            default_headers=default_headers,
            max_retries=max_retries,
            timeout=timeout,
        )

    async def stream_complete(
            self,
            model: str,
            messages: list[Message],
            tools: list[dict] | None = None,
    ) -> AsyncIterator[dict]:
        message_dump = [
            m.to_openai() if isinstance(m, Message) else m
            for m in messages
        ]
        kwargs = {}
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"
        logger.debug(f"Streaming {model} with {len(message_dump)} messages")
        stream = await self.client.chat.completions.create(
            model=model,
            messages=message_dump,
            stream=True,
            stream_options={"include_usage": True},
            **kwargs,
        )
        async for chunk in stream:
            if isinstance(chunk, BaseModel):
                yield chunk.model_dump(exclude_none=True)
            else:
                yield chunk


class OpenAIProvider(OpenAICompatibleProvider):

    def __init__(self, api_key: str | None = None, **kwargs):
        if not api_key:
            api_key = os.getenv("OPENAI_API_KEY")
        super().__init__(api_key=api_key, **kwargs)


class OpenRouter(OpenAICompatibleProvider):
    """OpenRouter endpoint.

    Args:
        api_key: Falls back to ``OPENROUTER_API_KEY``.
        site_url: Sent as ``HTTP-Referer`` for OpenRouter attribution.
        site_name: Sent as ``X-Title``.
    """

    def __init__(
            self,
            api_key: str | None = None,
            site_url: str | None = None,
            site_name: str | None = None,
            base_url: str = OPENROUTER_BASE_URL,
            **kwargs,
    ):
        if not api_key:
            api_key = os.getenv("OPENROUTER_API_KEY")
        headers = {}
        if site_url:
            headers["HTTP-Referer"] = site_url
        if site_name:
            headers["X-Title"] = site_name
        super().__init__(
            base_url=base_url,
            api_key=api_key,
            default_headers=headers or None,
            **kwargs,
        )
