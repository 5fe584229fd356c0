"""
Tool calling: the tool contract, per-session registry and built-in tools.
"""

from typing import Dict

from relay_agent.tools.base import (
    FunctionTool,
    Tool,
    ToolCategory,
    ToolDefinition,
    ToolParameter,
    ToolResult,
    ToolResultKind,
    parse_arguments,
)
from relay_agent.tools.context import ToolExecutionContext
from relay_agent.tools.registry import ToolRegistry


def builtin_tools() -> Dict[str, Tool]:
    """Fresh instances of every built-in tool, keyed by tool name."""
    from relay_agent.tools.business import (
        CheckVerificationTool,
        CreateServiceNowTicketTool,
        GetServiceNowTicketTool,
        LookupCustomerTool,
        SendSMSTool,
        SendVerificationTool,
        UpdateServiceNowTicketTool,
    )
    from relay_agent.tools.telephony import (
        EndCallTool,
        LiveAgentHandoffTool,
        PlayMediaTool,
        SendDTMFTool,
        SwitchLanguageTool,
    )

    tools = [
        EndCallTool(),
        SendDTMFTool(),
        LiveAgentHandoffTool(),
        PlayMediaTool(),
        SwitchLanguageTool(),
        SendSMSTool(),
        SendVerificationTool(),
        CheckVerificationTool(),
        CreateServiceNowTicketTool(),
        GetServiceNowTicketTool(),
        UpdateServiceNowTicketTool(),
        LookupCustomerTool(),
    ]
    return {tool.definition.name: tool for tool in tools}


__all__ = [
    "FunctionTool",
    "Tool",
    "ToolCategory",
    "ToolDefinition",
    "ToolExecutionContext",
    "ToolParameter",
    "ToolRegistry",
    "ToolResult",
    "ToolResultKind",
    "builtin_tools",
    "parse_arguments",
]
