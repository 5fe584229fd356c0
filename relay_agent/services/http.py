"""
Shared aiohttp plumbing for the REST clients.
"""

from typing import Any, Callable, Dict, Optional

import aiohttp
import structlog

from relay_agent.errors import ExternalServiceError

logger = structlog.get_logger(__name__)


class RestClient:
    """Lazily opened aiohttp session with basic auth and JSON error mapping."""

    service_name = "rest"

    def __init__(
        self,
        *,
        timeout_sec: float = 10.0,
        session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None,
    ):
        self._timeout = aiohttp.ClientTimeout(total=timeout_sec)
        self._session_factory = session_factory
        self._session: Optional[aiohttp.ClientSession] = None

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session and not self._session.closed:
            return self._session
        factory = self._session_factory or aiohttp.ClientSession
        self._session = factory()
        return self._session

    def _auth(self) -> Optional[aiohttp.BasicAuth]:
        return None

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        form: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Perform one request and return the decoded JSON body.

        Raises:
            ExternalServiceError: On HTTP status >= 400 or a connection failure
        """
        session = await self._ensure_session()
        try:
            async with session.request(
                method,
                url,
                params=params,
                json=json_body,
                data=form,
                auth=self._auth(),
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            ) as response:
                if response.status >= 400:
                    body = await response.text()
                    logger.error(
                        "External API request failed",
                        service=self.service_name,
                        method=method,
                        status=response.status,
                        body_preview=body[:200],
                    )
                    raise ExternalServiceError(
                        f"{self.service_name} API error: {response.status} {response.reason}",
                        status=response.status,
                    )
                return await response.json(content_type=None)
        except aiohttp.ClientError as e:
            logger.error("External API connection error", service=self.service_name, method=method, error=str(e))
            raise ExternalServiceError(f"{self.service_name} connection error: {e}") from e
