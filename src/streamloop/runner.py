import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import assert_never

from streamloop.artifacts import Artifact, ArtifactCompleted, ArtifactParser
from streamloop.chunk import Usage
from streamloop.config import ToolLoopConfig
from streamloop.events import (
    AnyStreamEvent,
    ArtifactEvent,
    ClientToolEvent,
    CompletionEvent,
    ServerToolEvent,
    StreamEvent,
    TextDeltaEvent,
    ToolCallDeltaEvent,
    ToolCallState,
)
from streamloop.message import Message
from streamloop.provider import ModelProvider
from streamloop.sequencer import EventSequencer, Turn
from streamloop.streaming import ToolCall
from streamloop.tools import Tool, ToolMode, ToolRegistry, stringify_result

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Aggregate of everything a Runner.run() invocation emitted."""

    text: str = ""
    artifacts: list[Artifact] = field(default_factory=list)
    tool_events: list[ServerToolEvent | ClientToolEvent] = field(default_factory=list)
    finish_reason: str | None = None
    usage: Usage | None = None
    iterations: int = 0
    capped: bool = False
    last_message: Message | None = None

    def add(self, event: AnyStreamEvent) -> None:
        if isinstance(event, TextDeltaEvent):
            self.text += event.text
        elif isinstance(event, ArtifactEvent):
            if isinstance(event.artifact, ArtifactCompleted):
                self.artifacts.append(Artifact.from_completed(event.artifact))
        elif isinstance(event, ToolCallDeltaEvent):
            pass
        elif isinstance(event, ServerToolEvent):
            if event.state is not ToolCallState.EXECUTING:
                self.tool_events.append(event)
        elif isinstance(event, ClientToolEvent):
            self.tool_events.append(event)
        elif isinstance(event, CompletionEvent):
            self.finish_reason = event.finish_reason
            if event.usage is not None:
                self.usage = event.usage
        else:
            assert_never(event)


@dataclass
class _LoopStats:
    iterations: int = 0
    capped: bool = False


@dataclass
class _ToolOutcome:
    """Result of executing a single tool call."""

    output: str
    is_error: bool
    execution_time: float


class Runner:
    """Drives the streaming tool loop.

    Each turn is streamed from the provider and expanded into events.
    When the model asks for tools, they are executed (or forwarded to
    the caller) one after another in the order the model listed them,
    their results are appended to the history, and the next turn starts.
    The loop ends when a turn requests no tools or once
    ``config.max_iterations`` turns have requested tools.

    The ``messages`` list passed to ``iter()``/``run()`` is grown in
    place: one assistant message per turn and one tool message per tool
    call.

    ``run()`` drains ``iter()``.  ``iter()`` is the streaming entry point.

    Args:
        provider: Chunk source for each turn.
        model: Model name passed to the provider.
        registry: Tools the model may call.  Shared registries are safe.
        config: Loop settings, defaults to :class:`ToolLoopConfig`.
        clock: Monotonic time source used for event timestamps and tool
            timings.
    """

    def __init__(
        self,
        provider: ModelProvider,
        model: str,
        registry: ToolRegistry | None = None,
        config: ToolLoopConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.provider = provider
        self.model = model
        self.registry = registry if registry is not None else ToolRegistry()
        self.config = config or ToolLoopConfig()
        self.clock = clock

    async def run(
        self, messages: list[Message], cancel: asyncio.Event | None = None,
    ) -> RunResult:
        """Run the loop to the end and aggregate its events."""
        stats = _LoopStats()
        result = RunResult()
        async for event in self._loop(messages, stats, cancel):
            result.add(event)
        result.iterations = stats.iterations
        result.capped = stats.capped
        result.last_message = messages[-1] if messages else None
        return result

    async def iter(
        self, messages: list[Message], cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Run the loop, yielding events as execution proceeds.

        Raises:
            asyncio.CancelledError: When *cancel* is set; checked between
                chunks and before each tool call.
        """
        async for event in self._loop(messages, _LoopStats(), cancel):
            yield event

    async def _loop(
        self,
        messages: list[Message],
        stats: _LoopStats,
        cancel: asyncio.Event | None,
    ) -> AsyncIterator[StreamEvent]:
        sequencer = EventSequencer(self.clock)
        parser = ArtifactParser()
        execute_tools = self.config.enabled and len(self.registry) > 0
        tool_schemas = self.registry.schemas() or None

        iteration = 1
        while True:
            turn = Turn()
            source = self.provider.stream_complete(
                model=self.model, messages=messages, tools=tool_schemas,
            )
            async for event in sequencer.stream_turn(source, parser, turn, cancel):
                yield event

            completed_calls = turn.tool_calls.finalize()
            messages.append(Message.assistant(turn.content, completed_calls))
            stats.iterations = iteration

            if not execute_tools or not completed_calls:
                logger.info(
                    f"Tool loop finished after {iteration} turn(s) "
                    f"(finish_reason={turn.finish_reason})"
                )
                return

            for tc in completed_calls:
                if cancel is not None and cancel.is_set():
                    raise asyncio.CancelledError("stream cancelled")
                async for event in self._process_call(tc, messages, sequencer):
                    yield event

            if iteration >= self.config.max_iterations:
                logger.warning(
                    f"Max tool iterations ({self.config.max_iterations}) reached"
                )
                stats.capped = True
                yield sequencer.stamp(TextDeltaEvent(text=self.config.cap_message()))
                return
            iteration += 1

    # ------------------------------------------------------------------
    # Tool execution
    # ------------------------------------------------------------------

    async def _process_call(
        self, tc: ToolCall, messages: list[Message], sequencer: EventSequencer,
    ) -> AsyncIterator[StreamEvent]:
        tool_obj = self.registry.lookup(tc.name)
        if tool_obj is None:
            error = f"Tool '{tc.name}' is not registered"
            logger.warning(error)
            yield sequencer.stamp(ServerToolEvent(
                tool_name=tc.name, tool_id=tc.id, arguments=tc.arguments,
                state=ToolCallState.ERROR, error=error,
            ))
            messages.append(Message.tool(error, tc.id))
            return

        if tool_obj.mode is ToolMode.CLIENT_SIDE:
            logger.info(f"Forwarding {tc.name} to client")
            yield sequencer.stamp(ClientToolEvent(
                tool_name=tc.name, tool_id=tc.id, arguments=tc.arguments,
            ))
            ack = self.config.client_tool_ack.format(name=tc.name, id=tc.id)
            messages.append(Message.tool(ack, tc.id))
            return

        yield sequencer.stamp(ServerToolEvent(
            tool_name=tc.name, tool_id=tc.id, arguments=tc.arguments,
            state=ToolCallState.EXECUTING,
        ))
        outcome = await self._execute_one(tool_obj, tc, sequencer)
        if outcome.is_error:
            event = ServerToolEvent(
                tool_name=tc.name, tool_id=tc.id, arguments=tc.arguments,
                state=ToolCallState.ERROR, error=outcome.output,
                execution_time=outcome.execution_time,
            )
        else:
            event = ServerToolEvent(
                tool_name=tc.name, tool_id=tc.id, arguments=tc.arguments,
                state=ToolCallState.COMPLETED, result=outcome.output,
                execution_time=outcome.execution_time,
            )
        yield sequencer.stamp(event)
        messages.append(Message.tool(outcome.output, tc.id))

    async def _execute_one(
        self, tool_obj: Tool, tc: ToolCall, sequencer: EventSequencer,
    ) -> _ToolOutcome:
        logger.info(f"Calling {tc.name} with {tc.arguments}")
        started = sequencer.now()
        try:
            output = stringify_result(await tool_obj.invoke(tc.arguments))
        except Exception as e:
            logger.error(f"Tool {tc.name} raised: {e}")
            return _ToolOutcome(
                output=f"Error executing tool: {e}", is_error=True,
                execution_time=sequencer.now() - started,
            )
        return _ToolOutcome(
            output=output, is_error=False,
            execution_time=sequencer.now() - started,
        )
