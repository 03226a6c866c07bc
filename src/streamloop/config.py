from pydantic import BaseModel, Field


class ToolLoopConfig(BaseModel):
    """Settings for :class:`~streamloop.runner.Runner`.

    Args:
        enabled: When false, a single turn is streamed and tool calls are
            surfaced as deltas without being executed.
        max_iterations: Maximum number of turns that may request tools.
        client_tool_ack: Placeholder tool result recorded for calls that
            were forwarded to the client.  Formatted with ``name`` and
            ``id``.
    """

    enabled: bool = True
    max_iterations: int = Field(default=5, ge=1)
    client_tool_ack: str = "Tool '{name}' was forwarded to the client for execution."

    def cap_message(self) -> str:
        return f"\n\n[Max tool iterations ({self.max_iterations}) reached]"
