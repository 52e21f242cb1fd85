"""
Real oracle HTTP dispatcher.

Used when the provider endpoint is configured (ORACLE_API_URL). Posts the
request and returns as soon as the provider accepted it; the result comes back
later through the fulfill endpoints of the API.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

import httpx

from delay_cover.core.models import OraclePhase
from delay_cover.integrations.contracts.interfaces import OracleDispatcher
from delay_cover.integrations.contracts.oracles import IntegrationResponseError

logger = logging.getLogger(__name__)

DEFAULT_PATHS = {
    OraclePhase.RATING: "/rating/requests",
    OraclePhase.STATUS: "/status/requests",
}


class HttpOracleDispatcher(OracleDispatcher):
    def __init__(
        self,
        phase: OraclePhase,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        path: Optional[str] = None,
        timeout_seconds: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.phase = OraclePhase(phase)
        self.base_url = (base_url or os.getenv("ORACLE_API_URL", "")).rstrip("/")
        self.api_key = api_key or os.getenv("ORACLE_API_KEY", "")
        self.path = path or DEFAULT_PATHS[self.phase]
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        if not self.base_url:
            logger.warning("Oracle API URL is not set.")

    def dispatch(self, request) -> str:
        if not self.base_url:
            raise ValueError("ORACLE_API_URL is not configured.")

        headers: Dict[str, str] = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        url = f"{self.base_url}{self.path}"
        try:
            logger.info(f"Dispatching {self.phase.value} request {request.request_id} to {url}")
            with httpx.Client(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = client.post(url, json=request.to_payload(), headers=headers)
                response.raise_for_status()
                data: Dict[str, Any] = response.json() if response.content else {}
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error from oracle provider: {e.response.status_code} {e.response.text}")
            raise
        except httpx.RequestError as e:
            logger.error(f"Request error connecting to oracle provider: {e}")
            raise

        acknowledged = str(data.get("request_id") or request.request_id)
        if acknowledged != request.request_id:
            raise IntegrationResponseError(
                f"Provider acknowledged {acknowledged} for request {request.request_id}.",
                payload=data,
            )
        return acknowledged
