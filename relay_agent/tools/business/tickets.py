"""
ServiceNow incident tools: create, read and update tickets for the caller.
"""

from typing import Any, Dict, Optional

import structlog

from relay_agent.errors import ExternalServiceError
from relay_agent.tools.base import Tool, ToolCategory, ToolDefinition, ToolParameter
from relay_agent.tools.context import ToolExecutionContext

logger = structlog.get_logger(__name__)

CREDENTIALS_MISSING = "Missing required ServiceNow credentials"

STATE_LABELS = {
    "1": "New",
    "2": "In Progress",
    "3": "On Hold",
    "6": "Resolved",
    "7": "Closed",
    "8": "Canceled",
}

PRIORITY_LABELS = {
    "1": "Critical",
    "2": "High",
    "3": "Moderate",
    "4": "Low",
    "5": "Planning",
}

URGENCY_LABELS = {
    "1": "High",
    "2": "Medium",
    "3": "Low",
}

TICKET_FIELDS = (
    "short_description", "description", "category", "subcategory",
    "priority", "caller_id", "assignment_group",
)


def _servicenow(context: ToolExecutionContext):
    client = context.get_service("servicenow")
    if client is None or not client.configured:
        logger.error("ServiceNow is not configured", call_sid=context.call_sid)
        return None
    return client


def _display(record: Dict[str, Any], key: str, default: str = "") -> str:
    """Dot-walked reference fields come back either flattened or nested."""
    value = record.get(key)
    if value is None and "." in key:
        head, tail = key.split(".", 1)
        nested = record.get(head)
        if isinstance(nested, dict):
            value = nested.get(tail)
    return value if value not in (None, "") else default


def summarize_incident(record: Dict[str, Any]) -> Dict[str, Any]:
    """Turn a raw incident record into labels the model can read out."""
    ticket = {
        "number": record.get("number"),
        "short_description": record.get("short_description") or "",
        "description": record.get("description") or "",
        "state": STATE_LABELS.get(str(record.get("state")), record.get("state")),
        "priority": PRIORITY_LABELS.get(str(record.get("priority")), record.get("priority")),
        "urgency": URGENCY_LABELS.get(str(record.get("urgency")), record.get("urgency")),
        "category": record.get("category") or "",
        "subcategory": record.get("subcategory") or "",
        "assigned_to": _display(record, "assigned_to.name", "Unassigned"),
        "assignment_group": _display(record, "assignment_group.name", "Unassigned"),
        "opened_at": record.get("opened_at"),
        "updated_at": record.get("sys_updated_on"),
        "caller_id": _display(record, "caller_id.name"),
        "contact_type": record.get("contact_type") or "",
        "sys_id": record.get("sys_id"),
    }
    optional = {
        "resolved_at": record.get("resolved_at"),
        "closed_at": record.get("closed_at"),
        "work_notes": record.get("work_notes"),
        "resolution_notes": record.get("close_notes"),
    }
    ticket.update({k: v for k, v in optional.items() if v})
    return ticket


class CreateServiceNowTicketTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="create-servicenow-ticket",
            description="Open a new ServiceNow incident for the caller's issue.",
            category=ToolCategory.BUSINESS,
            parameters=[
                ToolParameter(name="short_description", type="string", description="One-line summary", required=True),
                ToolParameter(name="description", type="string", description="Full description of the issue"),
                ToolParameter(name="category", type="string", description="Incident category"),
                ToolParameter(name="subcategory", type="string", description="Incident subcategory"),
                ToolParameter(name="priority", type="string", description="1 (critical) to 5 (planning)"),
                ToolParameter(name="caller_id", type="string", description="sys_id of the caller's user record"),
                ToolParameter(name="assignment_group", type="string", description="Group to assign the incident to"),
            ]
        )

    async def execute(self, parameters: Dict[str, Any], context: ToolExecutionContext) -> Dict[str, Any]:
        if not parameters.get("short_description"):
            return {"success": False, "message": "A short description is required to create a ticket"}
        client = _servicenow(context)
        if client is None:
            return {"success": False, "message": CREDENTIALS_MISSING}

        data = {k: parameters[k] for k in TICKET_FIELDS if parameters.get(k) not in (None, "")}
        try:
            record = await client.create_incident(data)
        except ExternalServiceError as e:
            return {"success": False, "message": f"Ticket creation failed: {e}"}
        return {
            "success": True,
            "message": "Ticket created successfully",
            "ticket_number": record.get("number"),
            "ticket_id": record.get("sys_id"),
        }


class GetServiceNowTicketTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="get-servicenow-ticket",
            description="Look up the status of an existing ServiceNow incident.",
            category=ToolCategory.BUSINESS,
            parameters=[
                ToolParameter(
                    name="ticketNumber",
                    type="string",
                    description="Incident number such as INC0010001, or its sys_id",
                    required=True,
                ),
            ]
        )

    async def execute(self, parameters: Dict[str, Any], context: ToolExecutionContext) -> Dict[str, Any]:
        number: Optional[str] = parameters.get("ticketNumber")
        if not number:
            return {"success": False, "message": "A ticket number is required"}
        client = _servicenow(context)
        if client is None:
            return {"success": False, "message": CREDENTIALS_MISSING, "ticketNumber": number}

        try:
            record = await client.get_incident(number)
        except ExternalServiceError as e:
            return {"success": False, "message": f"ServiceNow API request failed: {e}", "ticketNumber": number}

        if record is None:
            return {
                "success": False,
                "message": f"Ticket {number} not found in ServiceNow",
                "ticketNumber": number,
            }
        return {
            "success": True,
            "message": f"Successfully retrieved ticket {number}",
            "ticket": summarize_incident(record),
            "ticketNumber": number,
        }


class UpdateServiceNowTicketTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="update-servicenow-ticket",
            description="Update fields or add work notes on an existing ServiceNow incident.",
            category=ToolCategory.BUSINESS,
            parameters=[
                ToolParameter(name="sys_id", type="string", description="sys_id of the incident", required=True),
                ToolParameter(name="short_description", type="string", description="New one-line summary"),
                ToolParameter(name="description", type="string", description="New description"),
                ToolParameter(name="category", type="string", description="Incident category"),
                ToolParameter(name="subcategory", type="string", description="Incident subcategory"),
                ToolParameter(name="priority", type="string", description="1 (critical) to 5 (planning)"),
                ToolParameter(name="state", type="string", description="Incident state code"),
                ToolParameter(name="assignment_group", type="string", description="Group to assign the incident to"),
                ToolParameter(name="work_notes", type="string", description="Note to append to the incident"),
            ]
        )

    async def execute(self, parameters: Dict[str, Any], context: ToolExecutionContext) -> Dict[str, Any]:
        sys_id = parameters.get("sys_id")
        if not sys_id:
            return {"success": False, "message": "The ticket sys_id is required"}
        client = _servicenow(context)
        if client is None:
            return {"success": False, "message": CREDENTIALS_MISSING}

        update = {k: v for k, v in parameters.items() if k != "sys_id" and v not in (None, "")}
        try:
            record = await client.update_incident(sys_id, update)
        except ExternalServiceError as e:
            return {"success": False, "message": f"Ticket update failed: {e}"}
        return {
            "success": True,
            "message": "Ticket updated successfully",
            "ticket_number": record.get("number"),
            "ticket_id": record.get("sys_id") or sys_id,
        }
