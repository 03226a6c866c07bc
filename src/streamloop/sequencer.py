"""Turn raw provider payloads into ordered, stamped stream events.

One raw chunk can expand into several events (text, artifact start,
content and completion, tool-call fragments).  The sequencer hands out a
strictly increasing ``chunk_index`` and a non-decreasing ``elapsed``
timestamp to each of them, in the order they must be observed:

* text and artifact events in input order,
* then tool-call fragments in the order the chunk listed them,
* and one :class:`CompletionEvent` per turn, after everything else the
  turn produced, including text the parser was still holding back.

``[DONE]`` ends the read loop; a ``finish_reason`` only marks the turn
as finished, since usage often arrives in a trailing chunk.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterable, AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from streamloop.artifacts import ArtifactParser, IncrementalParseResult
from streamloop.chunk import RawChunk, Usage
from streamloop.events import (
    ArtifactEvent,
    CompletionEvent,
    StreamEvent,
    TextDeltaEvent,
    ToolCallDeltaEvent,
)
from streamloop.streaming import ToolCallAccumulator, ToolCallFragment

logger = logging.getLogger(__name__)

END_OF_STREAM = "[DONE]"

Payload = str | bytes | dict | BaseModel

E = TypeVar("E", bound=StreamEvent)


def _payload_text(payload: str | bytes) -> str:
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")
    text = payload.strip()
    if text.startswith("data:"):
        text = text[len("data:"):].strip()
    return text


def is_end_marker(payload: Payload) -> bool:
    if isinstance(payload, (str, bytes)):
        return _payload_text(payload) == END_OF_STREAM
    return False


def decode_payload(payload: Payload) -> RawChunk | None:
    """Decode one payload, returning ``None`` for anything to skip.

    Accepts SSE ``data:`` lines, bare JSON text, dicts, already decoded
    chunks and other pydantic models such as the openai SDK chunk type.
    Blank lines, SSE comments, unsupported payload types and payloads
    that are not valid chunks are skipped.
    """
    if isinstance(payload, RawChunk):
        return payload
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(exclude_none=True)
    if not isinstance(payload, (str, bytes, dict)):
        logger.debug(f"Skipping unsupported payload type {type(payload).__name__}")
        return None
    try:
        if isinstance(payload, dict):
            return RawChunk.model_validate(payload)
        text = _payload_text(payload)
        if not text or text.startswith(":"):
            return None
        return RawChunk.model_validate_json(text)
    except (ValidationError, json.JSONDecodeError, UnicodeError) as e:
        logger.debug(f"Skipping malformed chunk: {e}")
        return None


@dataclass
class Turn:
    """Everything one streamed turn produced.

    ``content`` is the raw assistant text, artifact markup included, so
    the history shows the model exactly what it wrote.
    """

    content: str = ""
    tool_calls: ToolCallAccumulator = field(default_factory=ToolCallAccumulator)
    finish_reason: str | None = None
    usage: Usage | None = None
    model: str | None = None
    id: str | None = None


class EventSequencer:
    """Orders and stamps the events of one loop invocation.

    ``elapsed`` is measured from construction, so it keeps growing across
    turns and includes time spent executing tools in between.

    Args:
        clock: Monotonic time source in seconds.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._start = clock()
        self._next_index = 0
        self._elapsed = 0.0

    @property
    def next_index(self) -> int:
        return self._next_index

    def now(self) -> float:
        return self._clock()

    def elapsed(self) -> float:
        self._elapsed = max(self._elapsed, self._clock() - self._start)
        return self._elapsed

    def stamp(self, event: E) -> E:
        event.chunk_index = self._next_index
        event.elapsed = self.elapsed()
        self._next_index += 1
        return event

    async def stream_turn(
        self,
        source: AsyncIterable[Payload],
        parser: ArtifactParser,
        turn: Turn,
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Read one turn from *source*, yielding stamped events.

        Raises:
            asyncio.CancelledError: If *cancel* is set between chunks.
        """
        iterator = aiter(source)
        try:
            while True:
                if cancel is not None and cancel.is_set():
                    raise asyncio.CancelledError("stream cancelled")
                try:
                    payload = await anext(iterator)
                except StopAsyncIteration:
                    break
                if is_end_marker(payload):
                    break
                chunk = decode_payload(payload)
                if chunk is None:
                    continue
                for event in self.expand(chunk, parser, turn):
                    yield event
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

        for event in self.close_turn(parser, turn):
            yield event

    def expand(
        self, chunk: RawChunk, parser: ArtifactParser, turn: Turn,
    ) -> list[StreamEvent]:
        """Expand one chunk into stamped events, updating *turn*."""
        events: list[StreamEvent] = []
        turn.id = chunk.id or turn.id
        turn.model = chunk.model or turn.model
        if chunk.usage is not None:
            turn.usage = chunk.usage

        content = chunk.content
        if content:
            turn.content += content
            events.extend(_parse_events(parser.parse_incremental(content)))

        for delta in chunk.tool_calls:
            fragment = ToolCallFragment.from_delta(delta)
            turn.tool_calls.feed(fragment)
            events.append(ToolCallDeltaEvent(fragment=fragment))

        if chunk.finish_reason:
            turn.finish_reason = chunk.finish_reason
        return [self.stamp(e) for e in events]

    def close_turn(self, parser: ArtifactParser, turn: Turn) -> list[StreamEvent]:
        """Flush the parser and emit the turn's completion event."""
        events = _parse_events(parser.finish())
        events.append(CompletionEvent(
            finish_reason=turn.finish_reason,
            usage=turn.usage,
            model=turn.model,
            id=turn.id,
        ))
        return [self.stamp(e) for e in events]


def _parse_events(parsed: IncrementalParseResult) -> list[StreamEvent]:
    events: list[StreamEvent] = []
    for item in parsed.items:
        if isinstance(item, str):
            events.append(TextDeltaEvent(text=item))
        else:
            events.append(ArtifactEvent(artifact=item))
    return events
