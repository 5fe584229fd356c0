"""
Lookup Customer Tool - find the caller's user record in ServiceNow.
"""

from typing import Any, Dict

import structlog

from relay_agent.errors import ExternalServiceError
from relay_agent.tools.base import Tool, ToolCategory, ToolDefinition, ToolParameter
from relay_agent.tools.context import ToolExecutionContext

logger = structlog.get_logger(__name__)

CUSTOMER_FIELDS = ("sys_id", "name", "email", "phone", "user_name", "active")


class LookupCustomerTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="lookup-customer",
            description="Find a customer by email, phone number, name or username.",
            category=ToolCategory.BUSINESS,
            parameters=[
                ToolParameter(name="search_term", type="string", description="Value to search for", required=True),
                ToolParameter(
                    name="search_type",
                    type="string",
                    description="Field to search",
                    enum=["email", "phone", "name", "username"],
                    default="email",
                ),
            ]
        )

    async def execute(self, parameters: Dict[str, Any], context: ToolExecutionContext) -> Dict[str, Any]:
        term = parameters.get("search_term")
        if not term:
            return {"success": False, "message": "A search term is required"}

        client = context.get_service("servicenow")
        if client is None or not client.configured:
            logger.error("ServiceNow is not configured", call_sid=context.call_sid)
            return {"success": False, "message": "Missing required ServiceNow credentials"}

        try:
            records = await client.lookup_users(term, parameters.get("search_type") or "email")
        except ExternalServiceError as e:
            return {"success": False, "message": f"Customer lookup failed: {e}"}

        if not records:
            return {"success": False, "message": f"No customers found for: {term}"}
        return {
            "success": True,
            "message": f"Found {len(records)} customer(s)",
            "customers": [{k: record.get(k) for k in CUSTOMER_FIELDS} for record in records],
        }
