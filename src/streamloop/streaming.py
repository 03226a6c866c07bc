"""Tool-call reassembly for streamed provider responses.

Providers stream tool calls as indexed fragments: the first fragment for
an index usually carries the call id and function name, later ones carry
pieces of the JSON argument string.  The :class:`ToolCallAccumulator`
merges them back into complete :class:`ToolCall` records.
"""

from __future__ import annotations

from dataclasses import dataclass

from streamloop.chunk import ToolCallDelta


@dataclass
class ToolCallFragment:
    """A fragment of a tool call from a streaming chunk."""

    index: int
    call_id: str | None = None
    type: str | None = None
    name: str | None = None
    arguments_delta: str | None = None

    @classmethod
    def from_delta(cls, delta: ToolCallDelta) -> ToolCallFragment:
        function = delta.function
        return cls(
            index=delta.index,
            call_id=delta.id,
            type=delta.type,
            name=function.name if function else None,
            arguments_delta=function.arguments if function else None,
        )


@dataclass
class ToolCall:
    """A resolved tool call ready for the transcript."""

    id: str = ""
    type: str = "function"
    name: str = ""
    arguments: str = ""
    index: int = 0

    def to_openai(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "function": {"name": self.name, "arguments": self.arguments},
        }


class ToolCallAccumulator:
    """Assembles complete tool calls from streaming fragments.

    Identity fields (``id``, ``type``, ``name``) are overwritten only by
    non-empty values.  Argument fragments are always appended, so the
    result for one index does not depend on how fragments for other
    indices were interleaved with it.
    """

    def __init__(self) -> None:
        self._pending: dict[int, ToolCall] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def feed(self, fragment: ToolCallFragment) -> ToolCall:
        if fragment.index not in self._pending:
            self._pending[fragment.index] = ToolCall(index=fragment.index)
        tc = self._pending[fragment.index]
        if fragment.call_id:
            tc.id = fragment.call_id
        if fragment.type:
            tc.type = fragment.type
        if fragment.name:
            tc.name = fragment.name
        if fragment.arguments_delta:
            tc.arguments += fragment.arguments_delta
        return tc

    def finalize(self) -> list[ToolCall]:
        """Return completed tool calls in index order."""
        return [self._pending[i] for i in sorted(self._pending)]
