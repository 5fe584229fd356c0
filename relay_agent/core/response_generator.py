"""
Response generator: drives one conversation's turn-taking with the model.

Each ``generate`` call runs one or more generation cycles. A cycle streams
from the backend, forwards text tokens as they arrive, assembles at most one
tool call from its fragments and, once the backend marks the call complete,
executes it and routes the result:

- conversational -> tool call/result pair recorded, follow-up cycle
- direct control -> payload sent to the control channel, turn ends
- context error  -> system entry recorded, turn ends

Cancellation is a flag checked before every stream event and again after a
tool returns. Text from an interrupted cycle is not committed to history.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union
import inspect
import uuid

import structlog

from relay_agent.core.conversation import ASSISTANT, SYSTEM, ConversationEntry, ConversationState
from relay_agent.core.messages import text_token
from relay_agent.errors import BackendError, ToolArgumentsError
from relay_agent.metrics import GENERATION_ERRORS
from relay_agent.providers.base import (
    ContentDelta,
    ResponseCompleted,
    StreamBackend,
    ToolCallDelta,
    ToolCallDone,
)
from relay_agent.tools.base import ToolResult, ToolResultKind, parse_arguments
from relay_agent.tools.context import ToolExecutionContext
from relay_agent.tools.registry import ToolRegistry

logger = structlog.get_logger(__name__)

Callback = Callable[[Any], Union[None, Awaitable[None]]]


@dataclass
class ToolCallAccumulator:
    """One tool call being rebuilt from streamed fragments."""
    call_id: Optional[str] = None
    name_parts: List[str] = field(default_factory=list)
    argument_parts: List[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return "".join(self.name_parts)

    @property
    def arguments(self) -> str:
        return "".join(self.argument_parts)

    def owns(self, call_id: Optional[str]) -> bool:
        return call_id is None or self.call_id is None or call_id == self.call_id

    def add(self, delta: ToolCallDelta) -> None:
        if delta.call_id and self.call_id is None:
            self.call_id = delta.call_id
        if delta.name:
            self.name_parts.append(delta.name)
        if delta.arguments:
            self.argument_parts.append(delta.arguments)


async def _invoke(callback: Optional[Callback], payload: Any) -> None:
    if callback is None:
        return
    result = callback(payload)
    if inspect.isawaitable(result):
        await result


class ResponseGenerator:
    """
    Streaming orchestrator for one session.

    Args:
        backend: Model backend producing stream events
        registry: Tools available to the model
        instructions: Instruction (system) text seeding the conversation
        on_content: Receives ``{type: "text", token, last}`` messages
        on_control: Receives direct-control messages
        on_error: Receives the BackendError before it is re-raised
        context_factory: Builds the ToolExecutionContext for each tool call
        max_follow_ups: Follow-up cycles allowed per turn after conversational
            tool results; None for no limit
    """

    def __init__(
        self,
        backend: StreamBackend,
        registry: ToolRegistry,
        instructions: str = "",
        *,
        on_content: Optional[Callback] = None,
        on_control: Optional[Callback] = None,
        on_error: Optional[Callback] = None,
        context_factory: Optional[Callable[[], ToolExecutionContext]] = None,
        max_follow_ups: Optional[int] = 8,
    ):
        self._backend = backend
        self._max_follow_ups = max_follow_ups
        self._registry = registry
        self._state = ConversationState(instructions)
        self._on_content = on_content
        self._on_control = on_control
        self._on_error = on_error
        self._context_factory = context_factory or ToolExecutionContext
        self._interrupted = False
        self._generating = False

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    def bind(
        self,
        *,
        on_content: Optional[Callback] = None,
        on_control: Optional[Callback] = None,
        on_error: Optional[Callback] = None,
        context_factory: Optional[Callable[[], ToolExecutionContext]] = None,
    ) -> None:
        """
        Fill callback slots left empty at construction.

        Raises:
            RuntimeError: If a slot is already set
        """
        slots = {
            "_on_content": on_content,
            "_on_control": on_control,
            "_on_error": on_error,
        }
        for attr, callback in slots.items():
            if callback is None:
                continue
            if getattr(self, attr) is not None:
                raise RuntimeError(f"Callback {attr.lstrip('_')} is already bound")
            setattr(self, attr, callback)
        if context_factory is not None:
            self._context_factory = context_factory

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def instructions(self) -> str:
        return self._state.instructions

    @property
    def messages(self) -> Tuple[ConversationEntry, ...]:
        return self._state.entries

    @property
    def interrupted(self) -> bool:
        return self._interrupted

    @property
    def is_generating(self) -> bool:
        return self._generating

    def interrupt(self) -> None:
        if self._generating and not self._interrupted:
            logger.info("Generation interrupt requested")
        self._interrupted = True

    def reset_interrupt(self) -> None:
        self._interrupted = False

    def insert_message(self, role: str, content: str) -> None:
        """Append a turn without generating. ``tool`` is stored as assistant text."""
        if role == "tool":
            role = ASSISTANT
        self._state.append(role, content)

    def clear_messages(self) -> None:
        self._state.clear_messages()

    def reconfigure(self, instructions: str, registry: ToolRegistry) -> None:
        """
        Swap in a new tool registry and instruction text, restarting the
        conversation from the new instructions.

        Raises:
            RuntimeError: If a generation is in progress
        """
        if self._generating:
            raise RuntimeError("Cannot reconfigure while a generation is in progress")
        self._registry = registry
        self._state.reset(instructions)
        logger.info("Response generator reconfigured", tools=registry.list_tools())

    async def generate(self, role: str, prompt: str) -> None:
        """
        Run a full turn for ``prompt``.

        Raises:
            BackendError: If the backend fails during any cycle
        """
        self.reset_interrupt()
        self._state.append(role, prompt)
        self._generating = True
        try:
            follow_ups = 0
            while await self._run_cycle() and not self._interrupted:
                if self._max_follow_ups is not None and follow_ups >= self._max_follow_ups:
                    logger.warning("Follow-up limit reached; turn ended", limit=self._max_follow_ups)
                    break
                follow_ups += 1
        except BackendError as e:
            GENERATION_ERRORS.inc()
            logger.error("Generation aborted by backend error", error=str(e), status=e.status)
            await _invoke(self._on_error, e)
            raise
        finally:
            self._generating = False

    # ------------------------------------------------------------------
    # Streaming loop
    # ------------------------------------------------------------------

    async def _run_cycle(self) -> bool:
        """One request/stream exchange. Returns True when a follow-up cycle is needed."""
        registry = self._registry
        tools = registry.to_openai_schema() or None
        buffer: List[str] = []
        accumulator: Optional[ToolCallAccumulator] = None

        stream = self._backend.stream(self._state.to_openai_messages(), tools)
        try:
            async for event in stream:
                if self._interrupted:
                    logger.info("Generation cycle cancelled", streamed_chars=len("".join(buffer)))
                    return False

                if isinstance(event, ContentDelta):
                    if not event.text:
                        continue
                    buffer.append(event.text)
                    await _invoke(self._on_content, text_token(event.text))

                elif isinstance(event, ToolCallDelta):
                    if accumulator is None:
                        accumulator = ToolCallAccumulator()
                    elif not accumulator.owns(event.call_id):
                        logger.warning(
                            "Dropping fragment of overlapping tool call",
                            open_call=accumulator.call_id,
                            dropped_call=event.call_id,
                        )
                        continue
                    accumulator.add(event)

                elif isinstance(event, ToolCallDone):
                    if accumulator is None or not accumulator.owns(event.call_id):
                        logger.warning("Completion for unknown tool call ignored", call_id=event.call_id)
                        continue
                    return await self._complete_tool_call(registry, accumulator, buffer)

                elif isinstance(event, ResponseCompleted):
                    break
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        if self._interrupted:
            logger.info("Generation cycle cancelled at end of stream")
            return False
        if accumulator is not None:
            logger.warning("Stream finished with an incomplete tool call; discarded", call_id=accumulator.call_id)

        text = "".join(buffer)
        self._state.append(ASSISTANT, text)
        await _invoke(self._on_content, text_token("", last=True))
        logger.debug("Assistant turn completed", chars=len(text))
        return False

    async def _complete_tool_call(
        self,
        registry: ToolRegistry,
        accumulator: ToolCallAccumulator,
        buffer: List[str],
    ) -> bool:
        spoken = "".join(buffer)
        if spoken:
            self._state.append(ASSISTANT, spoken)

        name = accumulator.name
        call_id = accumulator.call_id or f"call_{uuid.uuid4().hex[:24]}"
        raw_arguments = accumulator.arguments

        try:
            arguments = parse_arguments(raw_arguments)
        except ToolArgumentsError as e:
            logger.warning("Malformed tool arguments", tool=name, call_id=call_id, error=str(e))
            result = ToolResult.context_error(f"Tool {name} was called with invalid arguments: {e}")
        else:
            result = await registry.execute(name, arguments, self._build_context())

        if result.kind is ToolResultKind.CONVERSATIONAL:
            self._state.add_tool_exchange(call_id, name, raw_arguments or "{}", result.payload)
        elif result.kind is ToolResultKind.CONTEXT_ERROR:
            self._state.append(SYSTEM, str(result.payload))

        if self._interrupted:
            logger.info("Interrupted while tool was running; output suppressed", tool=name, kind=result.kind.value)
            return False

        if result.kind is ToolResultKind.CONVERSATIONAL:
            return True

        if spoken:
            await _invoke(self._on_content, text_token("", last=True))
        if result.kind is ToolResultKind.DIRECT_CONTROL:
            await _invoke(self._on_control, result.payload)
        return False

    def _build_context(self) -> ToolExecutionContext:
        context = self._context_factory()
        if context.control_emitter is None:
            context.control_emitter = self._emit_control
        return context

    async def _emit_control(self, payload: Dict[str, Any]) -> None:
        await _invoke(self._on_control, payload)
