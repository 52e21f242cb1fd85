"""
Oracle request correlator.

Maps an outbound oracle request id to the risk (and phase) that must receive the
eventual fulfillment. Shared by the rating and status phases.

Rules:
- at most one pending correlation per request id
- at most one outstanding request per (risk, phase)
- resolve() removes the mapping, so every fulfillment applies at most once.
  Late, duplicate, spoofed or wrong-channel fulfillments get UnknownRequest.
"""

from __future__ import annotations

import logging
import threading
from typing import List, Optional

from delay_cover.core.models import OraclePhase, PendingRequest
from delay_cover.database.redis import InMemoryCorrelationStore
from delay_cover.errors import DuplicateRequest, NotSupportedError, UnknownRequest

logger = logging.getLogger(__name__)


class OracleRequestCorrelator:
    def __init__(self, store=None) -> None:
        self._store = store if store is not None else InMemoryCorrelationStore()
        self._lock = threading.Lock()

    @property
    def store(self):
        return self._store

    def register(self, request_id: str, risk_id: str, phase: OraclePhase) -> PendingRequest:
        pending = PendingRequest(request_id=request_id, risk_id=risk_id, phase=OraclePhase(phase))
        with self._lock:
            if self._store.get(request_id) is not None:
                raise DuplicateRequest(
                    f"Request {request_id} is already registered.",
                    context={"request_id": request_id},
                )
            outstanding = self._store.find(risk_id, pending.phase)
            if outstanding is not None:
                raise DuplicateRequest(
                    f"Risk {risk_id} already has an outstanding {pending.phase.value} request {outstanding}.",
                    context={"risk_id": risk_id, "phase": pending.phase.value, "request_id": outstanding},
                )
            if not self._store.add(pending):
                raise DuplicateRequest(
                    f"Request {request_id} conflicts with an existing registration.",
                    context={"request_id": request_id, "risk_id": risk_id},
                )
        logger.debug("Registered %s request %s for risk %s", pending.phase.value, request_id, risk_id)
        return pending

    def resolve(self, request_id: str, phase: Optional[OraclePhase] = None) -> PendingRequest:
        expected = OraclePhase(phase) if phase is not None else None
        with self._lock:
            pending = self._store.take(request_id, expected)
        if pending is None:
            logger.warning("Fulfillment for unknown request %s (phase=%s)", request_id, expected.value if expected else "any")
            raise UnknownRequest(
                f"No pending request {request_id}.",
                context={"request_id": request_id, "phase": expected.value if expected else None},
            )
        logger.debug("Resolved request %s to risk %s", request_id, pending.risk_id)
        return pending

    def restore(self, pending: PendingRequest) -> None:
        """Put back a correlation resolved by a fulfillment whose handling was aborted."""
        with self._lock:
            if not self._store.add(pending):
                raise DuplicateRequest(
                    f"Request {pending.request_id} cannot be restored; a conflicting registration exists.",
                    context={"request_id": pending.request_id, "risk_id": pending.risk_id},
                )
        logger.info("Restored %s request %s for risk %s", pending.phase.value, pending.request_id, pending.risk_id)

    def discard(self, request_id: str) -> Optional[PendingRequest]:
        """Drop a registration whose request never left the process."""
        with self._lock:
            return self._store.remove(request_id)

    def pending(self) -> List[PendingRequest]:
        return self._store.all()

    def outstanding_for(self, risk_id: str, phase: OraclePhase) -> Optional[str]:
        return self._store.find(risk_id, OraclePhase(phase))

    def cancel(self, request_id: str) -> None:
        raise NotSupportedError(
            "Cancelling an in-flight oracle request is not supported.",
            context={"request_id": request_id},
        )
