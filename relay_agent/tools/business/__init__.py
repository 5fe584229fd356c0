"""Tools backed by external business systems (Twilio, ServiceNow)."""

from relay_agent.tools.business.customer_lookup import LookupCustomerTool
from relay_agent.tools.business.sms import SendSMSTool
from relay_agent.tools.business.tickets import (
    CreateServiceNowTicketTool,
    GetServiceNowTicketTool,
    UpdateServiceNowTicketTool,
)
from relay_agent.tools.business.verification import CheckVerificationTool, SendVerificationTool

__all__ = [
    "CheckVerificationTool",
    "CreateServiceNowTicketTool",
    "GetServiceNowTicketTool",
    "LookupCustomerTool",
    "SendSMSTool",
    "SendVerificationTool",
    "UpdateServiceNowTicketTool",
]
