"""
Oracle provider: MOCK dispatcher.

Does NOT make network calls. Every dispatched request is kept in `sent` so a
test or the demo script can play the provider and post the fulfillment back.
"""

import logging
from typing import Any, List, Optional

from delay_cover.integrations.contracts.interfaces import OracleDispatcher

logger = logging.getLogger(__name__)


class MockOracleDispatcher(OracleDispatcher):
    def __init__(self, name: str = "oracle", fail: bool = False):
        self.name = name
        self._fail = fail
        self.sent: List[Any] = []

    def dispatch(self, request) -> str:
        if self._fail:
            raise ConnectionError(f"[{self.name.upper()} MOCK] provider unreachable")
        self.sent.append(request)
        logger.info("[%s MOCK] Dispatched %s for risk %s", self.name.upper(), request.request_id, request.risk_id)
        return request.request_id

    def last_for(self, risk_id: str) -> Optional[Any]:
        for request in reversed(self.sent):
            if request.risk_id == risk_id:
                return request
        return None

    def count_for(self, risk_id: str) -> int:
        return sum(1 for r in self.sent if r.risk_id == risk_id)
