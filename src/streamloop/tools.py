"""Tool registration and invocation.

Tools are registered explicitly with a name, a description and a JSON
schema for their parameters.  A tool either runs inside this process
(``ToolMode.AUTO_EXECUTE``) or is forwarded to the caller
(``ToolMode.CLIENT_SIDE``).  Auto-executed callables receive the raw
argument string the model produced, after :func:`normalize_arguments`.
"""

import inspect
import json
import logging
import threading
from collections.abc import Callable
from enum import Enum
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class ToolMode(Enum):
    AUTO_EXECUTE = "auto_execute"
    CLIENT_SIDE = "client_side"


class ToolNotRegisteredError(LookupError):
    """Raised when executing a tool name the registry does not know."""

    def __init__(self, name: str):
        super().__init__(f"Tool '{name}' is not registered")
        self.name = name


def normalize_arguments(arguments: str | None) -> str:
    """Coerce a model-produced argument string into parseable JSON.

    Empty input becomes ``{}``; bare ``"a": 1`` pairs get wrapped in
    braces; truncated objects get their missing closing braces.
    """
    if not arguments or not arguments.strip():
        return "{}"
    stripped = arguments.strip()
    if not stripped.startswith(("{", "[")):
        arguments = "{" + arguments + "}"
    try:
        json.loads(arguments)
    except json.JSONDecodeError:
        missing = arguments.count("{") - arguments.count("}")
        if missing > 0:
            arguments += "}" * missing
    return arguments


def stringify_result(result: Any) -> str:
    if isinstance(result, str):
        return result
    if isinstance(result, BaseModel):
        return result.model_dump_json()
    return json.dumps(result, default=str)


class Tool(BaseModel):
    name: str
    description: str = ""
    parameters: dict = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    func: Callable[[str], Any] | None = Field(default=None, exclude=True)
    mode: ToolMode = ToolMode.AUTO_EXECUTE
    model_config = ConfigDict(arbitrary_types_allowed=True)

    def tool_schema(self) -> dict:
        """Return an OpenAI-compatible function tool schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    async def invoke(self, arguments: str | None) -> Any:
        """Call the implementation with normalised arguments.

        Sync and async implementations are both supported.  Exceptions
        from the implementation propagate to the caller.
        """
        if self.func is None:
            raise RuntimeError(f"Tool '{self.name}' has no implementation")
        result = self.func(normalize_arguments(arguments))
        if inspect.isawaitable(result):
            result = await result
        return result


class ToolRegistry:
    """Name-to-tool mapping shared by independent streaming sessions.

    Writers serialize on a lock and publish a fresh read-only mapping,
    so :meth:`lookup` never sees a half-applied registration.
    """

    def __init__(self, tools: list[Tool] | None = None):
        self._lock = threading.Lock()
        self._tools: MappingProxyType[str, Tool] = MappingProxyType({})
        for t in tools or []:
            self.add(t)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def add(self, tool: Tool, *, overwrite: bool = False) -> "ToolRegistry":
        with self._lock:
            if tool.name in self._tools and not overwrite:
                raise ValueError(f"Tool already registered: {tool.name}")
            updated = dict(self._tools)
            updated[tool.name] = tool
            self._tools = MappingProxyType(updated)
        logger.debug(f"Registered tool {tool.name} ({tool.mode.value})")
        return self

    def register(
        self,
        name: str,
        func: Callable[[str], Any] | None,
        description: str = "",
        parameters: dict | None = None,
        mode: ToolMode = ToolMode.AUTO_EXECUTE,
        *,
        overwrite: bool = False,
    ) -> "ToolRegistry":
        """Register a tool and return the registry for chaining."""
        if func is None and mode is ToolMode.AUTO_EXECUTE:
            raise ValueError(f"Auto-executed tool '{name}' needs an implementation")
        kwargs = {} if parameters is None else {"parameters": parameters}
        return self.add(
            Tool(name=name, func=func, description=description, mode=mode, **kwargs),
            overwrite=overwrite,
        )

    def lookup(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def tools(self) -> list[Tool]:
        return sorted(self._tools.values(), key=lambda t: t.name)

    def schemas(self) -> list[dict]:
        return [t.tool_schema() for t in self.tools()]

    async def execute(self, name: str, arguments: str | None) -> Any:
        """Invoke an auto-executed tool directly, outside any loop."""
        tool_obj = self.lookup(name)
        if tool_obj is None or tool_obj.mode is not ToolMode.AUTO_EXECUTE:
            raise ToolNotRegisteredError(name)
        return await tool_obj.invoke(arguments)
