"""
Infrastructure layer - HTTP client for configured API actions.
Following SOLID: Single Responsibility - only performs the outbound request.
"""
import httpx
from typing import Dict, Any, Optional
import logging

from domain.interfaces import IActionClient

logger = logging.getLogger(__name__)


class HttpActionClient(IActionClient):
    """httpx-based client; failures come back as an error entry, never raised."""

    def __init__(self, timeout: float = 15.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self.transport = transport

    async def call(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """Execute the request and return its status code and raw text."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(
                    method.upper(),
                    url,
                    params=params,
                    json=body,
                    headers=headers
                )
                logger.info(f"Action call {method.upper()} {url} -> {response.status_code}")
                return {
                    "status_code": response.status_code,
                    "text": response.text
                }
        except httpx.HTTPError as e:
            logger.error(f"Action call {method.upper()} {url} failed: {e}")
            return {"error": str(e)}
