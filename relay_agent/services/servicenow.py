"""
ServiceNow Table API client for incidents and user (customer) lookups.
"""

import re
from typing import Any, Callable, Dict, List, Optional

import aiohttp
import structlog

from relay_agent.config import ServiceNowConfig
from relay_agent.services.http import RestClient

logger = structlog.get_logger(__name__)

INCIDENT_NUMBER_RE = re.compile(r"^INC\d+$", re.IGNORECASE)

INCIDENT_FIELDS = (
    "number,short_description,description,state,priority,urgency,category,subcategory,"
    "assigned_to.name,assignment_group.name,opened_at,sys_updated_on,resolved_at,closed_at,"
    "caller_id.name,contact_type,work_notes,close_notes,sys_id"
)

# search_type -> sys_user column
USER_SEARCH_FIELDS = {
    "email": "email",
    "phone": "phone",
    "name": "name",
    "username": "user_name",
}


def normalize_instance_url(instance: Optional[str]) -> Optional[str]:
    """Accept either a full https URL or a bare instance name."""
    if not instance:
        return None
    instance = instance.strip().rstrip("/")
    if instance.startswith(("https://", "http://")):
        return instance
    return f"https://{instance}.service-now.com"


class ServiceNowClient(RestClient):
    service_name = "ServiceNow"

    def __init__(
        self,
        config: ServiceNowConfig,
        *,
        session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None,
    ):
        super().__init__(timeout_sec=config.timeout_sec, session_factory=session_factory)
        self.config = config
        self.base_url = normalize_instance_url(config.instance_url)

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.config.username and self.config.password)

    def _auth(self) -> aiohttp.BasicAuth:
        return aiohttp.BasicAuth(self.config.username or "", self.config.password or "")

    def _table_url(self, table: str, sys_id: Optional[str] = None) -> str:
        url = f"{self.base_url}/api/now/table/{table}"
        return f"{url}/{sys_id}" if sys_id else url

    async def create_incident(self, data: Dict[str, Any]) -> Dict[str, Any]:
        result = await self._request("POST", self._table_url("incident"), json_body=data)
        record = result.get("result") or {}
        logger.info("ServiceNow incident created", number=record.get("number"), sys_id=record.get("sys_id"))
        return record

    async def get_incident(self, identifier: str) -> Optional[Dict[str, Any]]:
        """
        Fetch one incident by number (INC...) or sys_id.

        Returns:
            The incident record, or None when nothing matches
        """
        column = "number" if INCIDENT_NUMBER_RE.match(identifier) else "sys_id"
        params = {"sysparm_query": f"{column}={identifier}", "sysparm_fields": INCIDENT_FIELDS}
        result = await self._request("GET", self._table_url("incident"), params=params)
        records = result.get("result") or []
        if not records:
            logger.info("ServiceNow incident not found", identifier=identifier)
            return None
        return records[0]

    async def update_incident(self, sys_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        result = await self._request("PUT", self._table_url("incident", sys_id), json_body=data)
        record = result.get("result") or {}
        logger.info("ServiceNow incident updated", number=record.get("number"), sys_id=sys_id)
        return record

    async def lookup_users(self, search_term: str, search_type: str = "email") -> List[Dict[str, Any]]:
        """Active sys_user records matching the term; unknown search types fall back to email."""
        column = USER_SEARCH_FIELDS.get((search_type or "email").lower(), "email")
        params = {column: search_term, "active": "true"}
        result = await self._request("GET", self._table_url("sys_user"), params=params)
        records = result.get("result") or []
        logger.info("ServiceNow user lookup", search_type=column, matches=len(records))
        return records

    async def open_incidents_for_phone(self, phone: str, limit: int = 5) -> List[Dict[str, Any]]:
        """Active incidents raised by the user with this phone number, newest first."""
        users = await self.lookup_users(phone, "phone")
        if not users:
            return []
        caller_sys_id = users[0].get("sys_id")
        params = {
            "sysparm_query": f"caller_id={caller_sys_id}^active=true^ORDERBYDESCsys_created_on",
            "sysparm_fields": INCIDENT_FIELDS,
            "sysparm_limit": str(limit),
        }
        result = await self._request("GET", self._table_url("incident"), params=params)
        records = result.get("result") or []
        logger.info("ServiceNow open incidents for caller", caller_sys_id=caller_sys_id, matches=len(records))
        return records

    async def add_work_notes(self, identifier: str, notes: str) -> Optional[Dict[str, Any]]:
        """
        Append work notes to an incident given by number or sys_id.

        Returns:
            The updated record, or None when the incident does not exist
        """
        incident = await self.get_incident(identifier)
        if incident is None:
            return None
        return await self.update_incident(incident["sys_id"], {"work_notes": notes})
