"""
Lightweight in-memory stores for the correlator and the scheduler.

These implement the storage interface used by `OracleRequestCorrelator` and
`DelayedExecutionScheduler` so the service runs without a real Redis instance.
`delay_cover.database.redis_real` provides the Redis-backed equivalents.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional, Set, Tuple

from delay_cover.core.models import OraclePhase, PendingRequest


class InMemoryCorrelationStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        # request_id -> pending request
        self._pending: Dict[str, PendingRequest] = {}
        # (risk_id, phase) -> request_id
        self._by_risk: Dict[Tuple[str, OraclePhase], str] = {}

    def add(self, pending: PendingRequest) -> bool:
        key = (pending.risk_id, pending.phase)
        with self._lock:
            if pending.request_id in self._pending or key in self._by_risk:
                return False
            self._pending[pending.request_id] = pending
            self._by_risk[key] = pending.request_id
            return True

    def get(self, request_id: str) -> Optional[PendingRequest]:
        return self._pending.get(request_id)

    def find(self, risk_id: str, phase: OraclePhase) -> Optional[str]:
        return self._by_risk.get((risk_id, phase))

    def take(self, request_id: str, phase: Optional[OraclePhase] = None) -> Optional[PendingRequest]:
        with self._lock:
            pending = self._pending.get(request_id)
            if pending is None:
                return None
            if phase is not None and pending.phase != phase:
                return None
            return self._drop(pending)

    def remove(self, request_id: str) -> Optional[PendingRequest]:
        with self._lock:
            pending = self._pending.get(request_id)
            return self._drop(pending) if pending else None

    def all(self) -> List[PendingRequest]:
        with self._lock:
            return sorted(self._pending.values(), key=lambda p: (p.created_at, p.request_id))

    def _drop(self, pending: PendingRequest) -> PendingRequest:
        del self._pending[pending.request_id]
        self._by_risk.pop((pending.risk_id, pending.phase), None)
        return pending


class InMemoryBucketStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        # bucket -> risk ids
        self._buckets: Dict[int, Set[str]] = {}
        # risk_id -> bucket
        self._index: Dict[str, int] = {}

    def add(self, bucket: int, risk_id: str) -> bool:
        with self._lock:
            if risk_id in self._index:
                return False
            self._buckets.setdefault(bucket, set()).add(risk_id)
            self._index[risk_id] = bucket
            return True

    def members(self, bucket: int) -> List[str]:
        with self._lock:
            return sorted(self._buckets.get(bucket, ()))

    def bucket_of(self, risk_id: str) -> Optional[int]:
        return self._index.get(risk_id)

    def pop_bucket(self, bucket: int) -> List[str]:
        with self._lock:
            ids = self._buckets.pop(bucket, set())
            for risk_id in ids:
                self._index.pop(risk_id, None)
            return sorted(ids)

    def buckets_before(self, bucket: int) -> List[int]:
        with self._lock:
            return sorted(b for b, ids in self._buckets.items() if b < bucket and ids)
