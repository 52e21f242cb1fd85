"""
Lightweight in-memory risk table for local development and tests.

Provides the subset of the data access interface the policy lifecycle needs:
risks, policies and the audit event log. `risk_store_sql.SqlRiskStore`
implements the same interface on top of SQLAlchemy.

Records are copied on the way in and out so that callers mutate a working copy
and only `save_*` makes a change visible.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Dict, List, Optional

from delay_cover.core.models import Policy, PolicyEvent, Risk


class InMemoryRiskStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._risks: Dict[str, Risk] = {}
        self._policies: Dict[str, Policy] = {}
        self._events: List[PolicyEvent] = []

    # ------------------------------------------------------------------ #
    # Schema / lifecycle
    # ------------------------------------------------------------------ #
    def create_tables(self) -> None:
        """No-op for the in-memory implementation."""
        return None

    # ------------------------------------------------------------------ #
    # Risks
    # ------------------------------------------------------------------ #
    def add_risk(self, risk: Risk) -> None:
        with self._lock:
            if risk.id in self._risks:
                raise KeyError(f"Risk {risk.id} already exists")
            self._risks[risk.id] = replace(risk)

    def get_risk(self, risk_id: str) -> Optional[Risk]:
        risk = self._risks.get(risk_id)
        return replace(risk) if risk else None

    def save_risk(self, risk: Risk) -> None:
        with self._lock:
            self._risks[risk.id] = replace(risk)

    def delete_risk(self, risk_id: str) -> None:
        with self._lock:
            self._risks.pop(risk_id, None)

    def list_risks(self) -> List[Risk]:
        with self._lock:
            return [replace(r) for r in self._risks.values()]

    # ------------------------------------------------------------------ #
    # Policies
    # ------------------------------------------------------------------ #
    def add_policy(self, policy: Policy) -> None:
        with self._lock:
            if policy.policy_id in self._policies:
                raise KeyError(f"Policy {policy.policy_id} already exists")
            self._policies[policy.policy_id] = replace(policy)

    def get_policy(self, policy_id: str) -> Optional[Policy]:
        policy = self._policies.get(policy_id)
        return replace(policy) if policy else None

    def save_policy(self, policy: Policy) -> None:
        with self._lock:
            self._policies[policy.policy_id] = replace(policy)

    def active_policy_ids(self) -> List[str]:
        with self._lock:
            return sorted(p.policy_id for p in self._policies.values() if p.active)

    # ------------------------------------------------------------------ #
    # Events
    # ------------------------------------------------------------------ #
    def append_event(self, event: PolicyEvent) -> None:
        with self._lock:
            self._events.append(replace(event, detail=dict(event.detail)))

    def events_for(self, risk_id: str) -> List[PolicyEvent]:
        with self._lock:
            return [e for e in self._events if e.risk_id == risk_id]

    def event_counts(self) -> Dict[str, int]:
        with self._lock:
            counts: Dict[str, int] = {}
            for e in self._events:
                counts[e.kind.value] = counts.get(e.kind.value, 0) + 1
            return counts
