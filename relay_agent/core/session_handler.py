"""
Conversation Relay session handler.

Owns one ResponseGenerator and one InactivityMonitor for the lifetime of a
transport connection. Routes inbound events after the one-time setup and
forwards generated text, control messages and silence prompts to the
transport through a single ``send`` callable.
"""

from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union
import asyncio
import inspect
import json

from pydantic import ValidationError
import structlog

from relay_agent.core.inactivity import InactivityMonitor
from relay_agent.core.messages import (
    QUALIFYING_EVENT_TYPES,
    DTMFEvent,
    ErrorEvent,
    InfoEvent,
    InterruptEvent,
    PromptEvent,
    SetupEvent,
    parse_inbound,
    validate_outbound_message,
)
from relay_agent.core.models import SessionContext
from relay_agent.core.response_generator import ResponseGenerator
from relay_agent.logging_config import set_correlation_id
from relay_agent.metrics import INTERRUPTS
from relay_agent.tools import ToolExecutionContext, ToolRegistry, builtin_tools

logger = structlog.get_logger(__name__)

SendFn = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]
ParameterLookup = Callable[[Optional[str]], Dict[str, Any]]

SETUP_CONTEXT_TEMPLATE = (
    "These are all the details of the call: {setup} and the parameter data needed to "
    "complete your objective: {parameters}. Use this to complete your objective"
)


class ConversationRelaySession:
    """
    Per-connection coordinator.

    Args:
        generator: The session's response generator (callbacks are bound here)
        monitor: The session's inactivity monitor (started at setup)
        send: Delivers one JSON-ready message to the transport
        session_id: Identifier used until setup supplies one
        parameter_lookup: call reference -> parameter data registered for it
        available_tools: Implementations a reconfigure may draw on
        tool_config: Per-tool settings handed to tools
        services: External API clients handed to tools
    """

    def __init__(
        self,
        generator: ResponseGenerator,
        monitor: InactivityMonitor,
        send: SendFn,
        *,
        session_id: Optional[str] = None,
        parameter_lookup: Optional[ParameterLookup] = None,
        available_tools: Optional[Mapping[str, Any]] = None,
        tool_config: Optional[Dict[str, Any]] = None,
        services: Optional[Dict[str, Any]] = None,
    ):
        self.generator = generator
        self.monitor = monitor
        self.context = SessionContext(session_id=session_id)
        self._send_fn = send
        self._parameter_lookup = parameter_lookup
        self._available_tools = available_tools if available_tools is not None else builtin_tools()
        self._tool_config = tool_config or {}
        self._services = services or {}
        self._lock = asyncio.Lock()
        self._utterance: List[str] = []

        generator.bind(
            on_content=self._on_content,
            on_control=self._on_control,
            context_factory=self._tool_context,
        )

    @property
    def call_sid(self) -> Optional[str]:
        return self.context.call_sid

    @property
    def initialized(self) -> bool:
        return self.context.initialized

    @property
    def closed(self) -> bool:
        return self.context.closed

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def handle_message(self, message: Dict[str, Any]) -> None:
        """
        Route one inbound event.

        Raises:
            BackendError: If generation for a prompt fails at the backend
        """
        if self.context.closed:
            logger.debug("Message after cleanup ignored", type=message.get("type") if isinstance(message, dict) else None)
            return
        try:
            event = parse_inbound(message)
        except ValidationError as e:
            logger.warning("Malformed inbound event ignored", errors=e.errors(include_url=False))
            return

        if isinstance(event, SetupEvent):
            await self._handle_setup(event, message)
            return
        if not self.context.initialized:
            logger.warning("Event before setup ignored", type=event.type)
            return

        if event.type in QUALIFYING_EVENT_TYPES:
            self.monitor.reset()

        if isinstance(event, PromptEvent):
            logger.info("Caller said", text=event.voicePrompt, lang=event.lang)
            await self._handle_prompt(event.voicePrompt)
        elif isinstance(event, InterruptEvent):
            logger.info("Caller interrupted", heard=event.utteranceUntilInterrupt)
            INTERRUPTS.inc()
            self.generator.interrupt()
        elif isinstance(event, DTMFEvent):
            logger.info("DTMF received", digit=event.digit)
        elif isinstance(event, InfoEvent):
            logger.debug("Info event", payload=message)
        elif isinstance(event, ErrorEvent):
            logger.warning("Transport reported an error", description=event.description)
        else:
            logger.warning("Unknown event type ignored", type=event.type)

    async def _handle_setup(self, event: SetupEvent, raw: Dict[str, Any]) -> None:
        if self.context.initialized:
            logger.warning("Repeated setup ignored", call_sid=self.context.call_sid)
            return

        self.context.call_sid = event.callSid
        self.context.session_id = event.sessionId or self.context.session_id
        self.context.setup_data = dict(raw)
        self.context.call_reference = event.customParameters.get("callReference")
        if self._parameter_lookup is not None and self.context.call_reference:
            self.context.parameter_data = self._parameter_lookup(self.context.call_reference) or {}
        if event.callSid:
            set_correlation_id(event.callSid)

        self.generator.insert_message("system", self._call_details())
        self.monitor.start(self._on_silence)
        self.context.initialized = True
        logger.info(
            "Session setup complete",
            call_sid=event.callSid,
            session_id=self.context.session_id,
            call_reference=self.context.call_reference,
            direction=event.direction,
        )

    def _call_details(self) -> str:
        return SETUP_CONTEXT_TEMPLATE.format(
            setup=json.dumps(self.context.setup_data, indent=4, default=str),
            parameters=json.dumps(self.context.parameter_data, indent=4, default=str),
        )

    async def _handle_prompt(self, text: str) -> None:
        if self._lock.locked():
            logger.info("Prompt arrived mid-response; interrupting current generation")
            self.generator.interrupt()
        async with self._lock:
            if self.context.closed:
                return
            await self.generator.generate("user", text)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def _send(self, message: Dict[str, Any]) -> None:
        if self.context.closed:
            logger.debug("Dropping outbound message after cleanup", type=message.get("type"))
            return
        result = self._send_fn(message)
        if inspect.isawaitable(result):
            await result

    async def _on_content(self, message: Dict[str, Any]) -> None:
        if message.get("last"):
            if self._utterance:
                logger.info("Agent said", text="".join(self._utterance))
            self._utterance = []
        else:
            self._utterance.append(message.get("token", ""))
        await self._send(message)

    async def _on_control(self, message: Dict[str, Any]) -> None:
        logger.info("Sending control message", type=message.get("type"))
        await self._send(message)

    async def _on_silence(self, message: Dict[str, Any]) -> None:
        if message.get("type") == "end":
            logger.info("Ending call after caller silence", call_sid=self.context.call_sid)
        await self._send(message)

    def _tool_context(self) -> ToolExecutionContext:
        return ToolExecutionContext(
            call_sid=self.context.call_sid,
            session_id=self.context.session_id,
            setup_data=self.context.setup_data,
            parameter_data=self.context.parameter_data,
            config=self._tool_config,
            services=self._services,
        )

    # ------------------------------------------------------------------
    # Out-of-band operations
    # ------------------------------------------------------------------

    def insert_message(self, role: str, content: str) -> None:
        """Append to the conversation without generating (e.g. a human agent's note)."""
        self.generator.insert_message(role, content)
        logger.info("Message inserted", role=role)

    async def reconfigure(self, instructions: str, catalog: List[Any]) -> None:
        """
        Replace instructions and tools. Waits for any running generation.

        Raises:
            ToolCatalogError: If the catalog cannot be resolved; nothing changes
        """
        registry = ToolRegistry.from_catalog(catalog, self._available_tools)
        async with self._lock:
            self.generator.reconfigure(instructions, registry)
            if self.context.initialized:
                self.generator.insert_message("system", self._call_details())
        logger.info("Session reconfigured", call_sid=self.context.call_sid, tools=registry.list_tools())

    async def outgoing_message(self, message: Any) -> Dict[str, Any]:
        """
        Send a structured message straight to the transport.

        Raises:
            ValueError: If the message is not a valid outbound message
        """
        payload = validate_outbound_message(message)
        logger.info("Outgoing structured message", type=payload["type"])
        await self._send(payload)
        return payload

    def cleanup(self) -> None:
        """Stop the monitor and any generation. Idempotent."""
        if self.context.closed:
            return
        self.monitor.cleanup()
        self.generator.interrupt()
        self.context.closed = True
        logger.info("Session cleaned up", call_sid=self.context.call_sid)
