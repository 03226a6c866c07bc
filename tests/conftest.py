import json

import pytest

from streamloop.provider import ModelProvider
from streamloop.tools import ToolMode, ToolRegistry


# ---------------------------------------------------------------------------
# Chunk builders (mirror the OpenAI chat.completion.chunk shape)
# ---------------------------------------------------------------------------

def chunk(
    content: str | None = None,
    tool_calls: list[dict] | None = None,
    finish_reason: str | None = None,
    usage: dict | None = None,
    chunk_id: str = "gen-1",
    model: str = "mock-model",
) -> dict:
    delta = {}
    if content is not None:
        delta["content"] = content
    if tool_calls is not None:
        delta["tool_calls"] = tool_calls
    payload = {
        "id": chunk_id,
        "model": model,
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }
    if usage is not None:
        payload["usage"] = usage
    return payload


def sse(payload: dict) -> str:
    """Encode a chunk as an SSE ``data:`` line."""
    return f"data: {json.dumps(payload)}"


DONE = "data: [DONE]"


def tool_call_delta(
    index: int,
    call_id: str | None = None,
    name: str | None = None,
    arguments: str | None = None,
) -> dict:
    delta = {"index": index}
    if call_id is not None:
        delta["id"] = call_id
        delta["type"] = "function"
    function = {}
    if name is not None:
        function["name"] = name
    if arguments is not None:
        function["arguments"] = arguments
    if function:
        delta["function"] = function
    return delta


# ---------------------------------------------------------------------------
# Turn builders
# ---------------------------------------------------------------------------

def make_text_turn(*pieces: str) -> list:
    """A turn streaming *pieces* as separate content chunks."""
    return [
        *[sse(chunk(content=p)) for p in pieces],
        sse(chunk(finish_reason="stop")),
        DONE,
    ]


def make_tool_call_turn(
    name: str,
    args: dict,
    call_id: str = "call_1",
    content: str | None = None,
) -> list:
    """A turn requesting one tool, with arguments split in two fragments."""
    arguments = json.dumps(args)
    half = len(arguments) // 2
    payloads = []
    if content is not None:
        payloads.append(sse(chunk(content=content)))
    payloads += [
        sse(chunk(tool_calls=[tool_call_delta(0, call_id, name, "")])),
        sse(chunk(tool_calls=[tool_call_delta(0, arguments=arguments[:half])])),
        sse(chunk(tool_calls=[tool_call_delta(0, arguments=arguments[half:])])),
        sse(chunk(finish_reason="tool_calls")),
        DONE,
    ]
    return payloads


def make_multi_tool_call_turn(calls: list[tuple[str, dict, str]]) -> list:
    """A turn requesting several tools.

    Each item in *calls* is ``(func_name, args_dict, call_id)``.
    """
    deltas = [
        tool_call_delta(i, call_id, name, json.dumps(args))
        for i, (name, args, call_id) in enumerate(calls)
    ]
    return [
        sse(chunk(tool_calls=deltas)),
        sse(chunk(finish_reason="tool_calls")),
        DONE,
    ]


# ---------------------------------------------------------------------------
# Mock provider
# ---------------------------------------------------------------------------

class MockProvider(ModelProvider):
    """Provider that replays pre-queued turns. No network calls.

    Each turn is a list of payloads.  An exception instance in the list
    is raised when reached, like a transport failure mid-stream.
    """

    def __init__(self):
        self.turns: list[list] = []
        self.call_log: list[dict] = []

    async def stream_complete(self, model, messages, tools=None):
        self.call_log.append({
            "model": model,
            "messages": [m.to_openai() for m in messages],
            "tools": tools,
        })
        for payload in self.turns.pop(0):
            if isinstance(payload, BaseException):
                raise payload
            yield payload


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def mock_provider():
    return MockProvider()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def registry():
    def add(arguments: str):
        args = json.loads(arguments)
        return args["a"] + args["b"]

    def echo(arguments: str):
        return json.loads(arguments)["text"]

    def fail(arguments: str):
        raise ValueError("boom")

    return (
        ToolRegistry()
        .register("add", add, "Add two numbers.", {
            "type": "object",
            "properties": {
                "a": {"type": "number"},
                "b": {"type": "number"},
            },
            "required": ["a", "b"],
        })
        .register("echo", echo, "Echo text back.")
        .register("fail", fail, "Always fails.")
        .register(
            "confirm", None, "Ask the user to confirm.",
            mode=ToolMode.CLIENT_SIDE,
        )
    )
