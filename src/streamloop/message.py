from enum import Enum

from pydantic import BaseModel, field_serializer

from streamloop.streaming import ToolCall


class MessageRole(Enum):
    SYSTEM = "system"
    ASSISTANT = "assistant"
    USER = "user"
    TOOL = "tool"


class Message(BaseModel):
    """One entry of the conversation history sent to the provider."""

    role: MessageRole
    content: str | None = ""
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None

    @field_serializer('role')
    def serialize_role(self, role: MessageRole, _info) -> str:
        return role.value

    @field_serializer("tool_calls")
    def serialize_tool_calls(self, tool_calls: list[ToolCall] | None) -> list[dict] | None:
        if tool_calls is None:
            return None
        return [t.to_openai() for t in tool_calls]

    def to_openai(self) -> dict:
        """Dump in the request shape, dropping unset optional fields."""
        return self.model_dump(exclude_none=True)

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(
        cls, content: str, tool_calls: list[ToolCall] | None = None,
    ) -> "Message":
        return cls(
            role=MessageRole.ASSISTANT, content=content,
            tool_calls=tool_calls or None,
        )

    @classmethod
    def tool(cls, content: str, tool_call_id: str) -> "Message":
        return cls(
            role=MessageRole.TOOL, content=content, tool_call_id=tool_call_id,
        )
