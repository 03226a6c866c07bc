"""Streaming events emitted while a tool loop runs.

Every event carries ``chunk_index`` (strictly increasing within one loop
invocation) and ``elapsed`` (seconds since the loop started, never
decreasing).  Both are assigned by the
:class:`~streamloop.sequencer.EventSequencer`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from streamloop.artifacts import ArtifactUpdate
from streamloop.chunk import Usage
from streamloop.streaming import ToolCallFragment


class ToolCallState(Enum):
    EXECUTING = "executing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class StreamEvent:
    """Base for all streaming events."""

    chunk_index: int = 0
    elapsed: float = 0.0


@dataclass
class TextDeltaEvent(StreamEvent):
    """Narrative text with artifact markup removed."""

    text: str = ""


@dataclass
class ArtifactEvent(StreamEvent):
    """An artifact started, grew, or completed."""

    artifact: ArtifactUpdate | None = None


@dataclass
class ToolCallDeltaEvent(StreamEvent):
    """A raw tool-call fragment as it arrived from the provider."""

    fragment: ToolCallFragment | None = None


@dataclass
class ServerToolEvent(StreamEvent):
    """Lifecycle of a tool executed in this process.

    ``execution_time`` is in seconds and only set on completed and
    error events that followed an actual invocation.
    """

    tool_name: str = ""
    tool_id: str = ""
    arguments: str = ""
    state: ToolCallState = ToolCallState.EXECUTING
    result: str | None = None
    error: str | None = None
    execution_time: float | None = None


@dataclass
class ClientToolEvent(StreamEvent):
    """A tool call forwarded to the caller for execution."""

    tool_name: str = ""
    tool_id: str = ""
    arguments: str = ""


@dataclass
class CompletionEvent(StreamEvent):
    """End of one streamed turn."""

    finish_reason: str | None = None
    usage: Usage | None = None
    model: str | None = None
    id: str | None = None


AnyStreamEvent = (
    TextDeltaEvent
    | ArtifactEvent
    | ToolCallDeltaEvent
    | ServerToolEvent
    | ClientToolEvent
    | CompletionEvent
)
