from streamloop.artifacts import (
    Artifact,
    ArtifactCompleted,
    ArtifactContent,
    ArtifactParser,
    ArtifactStarted,
)
from streamloop.config import ToolLoopConfig
from streamloop.events import (
    ArtifactEvent,
    ClientToolEvent,
    CompletionEvent,
    ServerToolEvent,
    StreamEvent,
    TextDeltaEvent,
    ToolCallDeltaEvent,
    ToolCallState,
)
from streamloop.instructions import (
    ArtifactDefinition,
    artifact_instructions,
    enable_artifacts,
)
from streamloop.message import Message, MessageRole
from streamloop.provider import (
    ModelProvider,
    OpenAICompatibleProvider,
    OpenAIProvider,
    OpenRouter,
)
from streamloop.runner import Runner, RunResult
from streamloop.streaming import ToolCall, ToolCallAccumulator, ToolCallFragment
from streamloop.tools import Tool, ToolMode, ToolNotRegisteredError, ToolRegistry

__all__ = [
    "Artifact",
    "ArtifactCompleted",
    "ArtifactContent",
    "ArtifactDefinition",
    "ArtifactEvent",
    "ArtifactParser",
    "ArtifactStarted",
    "ClientToolEvent",
    "CompletionEvent",
    "Message",
    "MessageRole",
    "ModelProvider",
    "OpenAICompatibleProvider",
    "OpenAIProvider",
    "OpenRouter",
    "RunResult",
    "Runner",
    "ServerToolEvent",
    "StreamEvent",
    "TextDeltaEvent",
    "Tool",
    "ToolCall",
    "ToolCallAccumulator",
    "ToolCallDeltaEvent",
    "ToolCallFragment",
    "ToolCallState",
    "ToolLoopConfig",
    "ToolMode",
    "ToolNotRegisteredError",
    "ToolRegistry",
    "artifact_instructions",
    "enable_artifacts",
]
