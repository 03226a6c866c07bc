"""Wire model for raw ``chat.completion.chunk`` payloads.

These mirror the OpenAI streaming shape that OpenRouter also speaks.
Unknown fields are ignored so provider-specific extras never break
decoding.
"""

from pydantic import BaseModel, ConfigDict, Field


class FunctionDelta(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    arguments: str | None = None


class ToolCallDelta(BaseModel):
    """One indexed fragment of a streamed tool call."""

    model_config = ConfigDict(extra="ignore")

    index: int = 0
    id: str | None = None
    type: str | None = None
    function: FunctionDelta | None = None


class MessageDelta(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: str | None = None
    content: str | None = None
    tool_calls: list[ToolCallDelta] | None = None


class StreamingChoice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    index: int = 0
    delta: MessageDelta | None = None
    finish_reason: str | None = None


class Usage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


class RawChunk(BaseModel):
    """A single decoded provider chunk."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    model: str | None = None
    created: int | None = None
    choices: list[StreamingChoice] = Field(default_factory=list)
    usage: Usage | None = None

    @property
    def choice(self) -> StreamingChoice | None:
        return self.choices[0] if self.choices else None

    @property
    def content(self) -> str | None:
        choice = self.choice
        if choice is None or choice.delta is None:
            return None
        return choice.delta.content

    @property
    def tool_calls(self) -> list[ToolCallDelta]:
        choice = self.choice
        if choice is None or choice.delta is None:
            return []
        return choice.delta.tool_calls or []

    @property
    def finish_reason(self) -> str | None:
        choice = self.choice
        return choice.finish_reason if choice else None
