"""
Twilio REST client: Messages API for SMS and Verify v2 for one-time codes.
"""

from typing import Any, Callable, Dict, Optional

import aiohttp
import structlog

from relay_agent.config import TwilioConfig
from relay_agent.services.http import RestClient

logger = structlog.get_logger(__name__)


class TwilioClient(RestClient):
    service_name = "Twilio"

    def __init__(
        self,
        config: TwilioConfig,
        *,
        session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None,
    ):
        super().__init__(timeout_sec=config.timeout_sec, session_factory=session_factory)
        self.config = config

    @property
    def messaging_configured(self) -> bool:
        return bool(self.config.account_sid and self.config.auth_token and self.config.from_number)

    @property
    def verify_configured(self) -> bool:
        return bool(self.config.account_sid and self.config.auth_token and self.config.verify_service_sid)

    def _auth(self) -> aiohttp.BasicAuth:
        return aiohttp.BasicAuth(self.config.account_sid or "", self.config.auth_token or "")

    async def send_sms(self, to: str, body: str) -> Dict[str, Any]:
        """Send an SMS from the configured number. Returns the message resource."""
        url = f"{self.config.base_url.rstrip('/')}/Accounts/{self.config.account_sid}/Messages.json"
        result = await self._request("POST", url, form={"To": to, "From": self.config.from_number, "Body": body})
        logger.info("SMS sent", to=to, sid=result.get("sid"))
        return result

    async def start_verification(self, to: str, channel: str = "sms") -> Dict[str, Any]:
        """Start a Verify verification. Returns the verification resource."""
        url = f"{self.config.verify_base_url.rstrip('/')}/Services/{self.config.verify_service_sid}/Verifications"
        result = await self._request("POST", url, form={"To": to, "Channel": channel})
        logger.info("Verification started", to=to, channel=channel, status=result.get("status"))
        return result

    async def check_verification(self, to: str, code: str) -> Dict[str, Any]:
        url = f"{self.config.verify_base_url.rstrip('/')}/Services/{self.config.verify_service_sid}/VerificationCheck"
        result = await self._request("POST", url, form={"To": to, "Code": code})
        logger.info("Verification checked", to=to, status=result.get("status"))
        return result
