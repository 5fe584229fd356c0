"""
Tool execution context - what a tool can see and reach while it runs.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Union
import inspect

import structlog

from relay_agent.core.messages import validate_control_message

logger = structlog.get_logger(__name__)

ControlEmitter = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]


@dataclass
class ToolExecutionContext:
    """
    Context provided to tools during execution.

    Carries call metadata from the session setup, the parameter data
    registered for the call reference, tool configuration, and a handle for
    emitting direct-control messages while the tool runs.
    """

    # Call information
    call_sid: Optional[str] = None
    session_id: Optional[str] = None
    setup_data: Dict[str, Any] = field(default_factory=dict)
    parameter_data: Dict[str, Any] = field(default_factory=dict)

    # System access
    config: Any = None  # AppConfig.tools dict, or a full config dict
    services: Dict[str, Any] = field(default_factory=dict)  # "twilio", "servicenow" clients
    control_emitter: Optional[ControlEmitter] = None

    async def emit_control(self, message: Any) -> Dict[str, Any]:
        """
        Send a direct-control message to the transport during execution.

        Raises:
            ValueError: If the message is not a recognised control message
            RuntimeError: If the context has no emitter wired
        """
        payload = validate_control_message(message)
        if self.control_emitter is None:
            raise RuntimeError("No control emitter available in context")
        logger.debug("Tool emitting control message", call_sid=self.call_sid, type=payload["type"])
        result = self.control_emitter(payload)
        if inspect.isawaitable(result):
            await result
        return payload

    def get_service(self, name: str) -> Any:
        return self.services.get(name)

    def get_config_value(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value.

        Args:
            key: Config key (supports dot notation, e.g., "end-call.reason")
            default: Default value if key not found

        Returns:
            Config value or default
        """
        if not self.config:
            return default

        # Support dot notation for nested keys
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value
