"""
Policy lifecycle state machine.

Owns the Risk table, the Policy table and the audit event log. Every transition
checks its required predecessor state and raises InvalidTransition otherwise:

    APPLIED -> RATING_REQUESTED -> UNDERWRITTEN -> STATUS_REQUESTED
            -> SETTLED_PAID | SETTLED_EXPIRED

Settled states are terminal. Only the rating and status phase handlers call the
transition methods, each while holding `locked(risk_id)`.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional

from delay_cover.core.locks import KeyedLocks
from delay_cover.core.models import (
    CoverageTier,
    EventKind,
    Policy,
    PolicyEvent,
    Risk,
    RiskState,
    now_seconds,
)
from delay_cover.database.risk_store import InMemoryRiskStore
from delay_cover.errors import InvalidTransition, SetOnceViolation, UnknownRisk

logger = logging.getLogger(__name__)

_COUNTED_EVENTS = {
    "applied": EventKind.APPLICATION_SUBMITTED,
    "declined": EventKind.APPLICATION_DECLINED,
    "underwritten": EventKind.POLICY_UNDERWRITTEN,
    "paid": EventKind.PAYOUT_TRANSFERRED,
    "expired": EventKind.POLICY_EXPIRED,
    "aborted": EventKind.SETTLEMENT_ABORTED,
}


class PolicyLifecycle:
    def __init__(self, store=None, clock: Callable[[], int] = now_seconds) -> None:
        self._store = store if store is not None else InMemoryRiskStore()
        self._clock = clock
        self._locks = KeyedLocks()

    @property
    def store(self):
        return self._store

    @contextmanager
    def locked(self, risk_id: str) -> Iterator[None]:
        with self._locks.hold(("risk", risk_id)):
            yield

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #
    def find_risk(self, risk_id: str) -> Optional[Risk]:
        return self._store.get_risk(risk_id)

    def get_risk(self, risk_id: str) -> Risk:
        risk = self._store.get_risk(risk_id)
        if risk is None:
            raise UnknownRisk(f"Risk {risk_id} not found.", context={"risk_id": risk_id})
        return risk

    def get_policy(self, policy_id: str) -> Optional[Policy]:
        return self._store.get_policy(policy_id)

    def events(self, risk_id: str) -> List[PolicyEvent]:
        return self._store.events_for(risk_id)

    def active_policies(self) -> List[str]:
        return self._store.active_policy_ids()

    def counters(self) -> Dict[str, int]:
        """Outcome totals, read from the persisted event log so every worker sees the same numbers."""
        counts = self._store.event_counts()
        return {name: counts.get(kind.value, 0) for name, kind in _COUNTED_EVENTS.items()}

    # ------------------------------------------------------------------ #
    # Transitions
    # ------------------------------------------------------------------ #
    def create_risk(
        self,
        customer: str,
        coverage_tier: CoverageTier,
        journey_descriptor: str,
        scheduled_arrival_time: int,
        premium: int,
    ) -> Risk:
        now = self._clock()
        risk = Risk(
            id=str(uuid.uuid4()),
            customer=customer,
            coverage_tier=coverage_tier,
            journey_descriptor=journey_descriptor,
            scheduled_arrival_time=int(scheduled_arrival_time),
            premium=int(premium),
            created_at=now,
            updated_at=now,
        )
        self._store.add_risk(risk)
        self.record_event(
            risk.id,
            EventKind.APPLICATION_SUBMITTED,
            customer=customer,
            coverage_tier=coverage_tier.value,
            premium=risk.premium,
        )
        logger.info("Risk %s applied (customer=%s tier=%s)", risk.id, customer, coverage_tier.value)
        return risk

    def mark_rating_requested(self, risk_id: str, request_id: str) -> Risk:
        with self.locked(risk_id):
            risk = self.get_risk(risk_id)
            self._require(risk, RiskState.APPLIED, target=RiskState.RATING_REQUESTED)
            self._set_once(risk, "rating_request_id", request_id)
            self._move(risk, RiskState.RATING_REQUESTED)
            self.record_event(risk_id, EventKind.RATING_REQUESTED, request_id=request_id)
            return risk

    def discard_application(self, risk_id: str, reason: str, **detail: Any) -> None:
        """Drop an application that never became a policy. The event log keeps the trace."""
        with self.locked(risk_id):
            risk = self.get_risk(risk_id)
            self._require(risk, RiskState.APPLIED, RiskState.RATING_REQUESTED, target=None)
            self._store.delete_risk(risk_id)
            self.record_event(risk_id, EventKind.APPLICATION_DECLINED, reason=reason, **detail)
            logger.info("Risk %s application discarded: %s", risk_id, reason)

    def underwrite(self, risk_id: str, payout_amount: int, premium_paid: int) -> Policy:
        with self.locked(risk_id):
            risk = self.get_risk(risk_id)
            self._require(risk, RiskState.RATING_REQUESTED, target=RiskState.UNDERWRITTEN)
            self._set_once(risk, "payout_amount", int(payout_amount))

            policy = Policy(
                policy_id=str(uuid.uuid4()),
                risk_id=risk.id,
                customer=risk.customer,
                premium_paid=int(premium_paid),
                payout_amount=int(payout_amount),
                created_at=self._clock(),
            )
            self._set_once(risk, "policy_id", policy.policy_id)
            self._store.add_policy(policy)
            self._move(risk, RiskState.UNDERWRITTEN)
            self.record_event(
                risk_id,
                EventKind.POLICY_UNDERWRITTEN,
                policy_id=policy.policy_id,
                payout_amount=policy.payout_amount,
                premium_paid=policy.premium_paid,
            )
            logger.info("Risk %s underwritten as policy %s (payout=%s)", risk_id, policy.policy_id, payout_amount)
            return policy

    def mark_status_requested(self, risk_id: str, due_at: int) -> Risk:
        with self.locked(risk_id):
            risk = self.get_risk(risk_id)
            self._require(risk, RiskState.UNDERWRITTEN, target=RiskState.STATUS_REQUESTED)
            self._set_once(risk, "status_due_at", int(due_at))
            self._move(risk, RiskState.STATUS_REQUESTED)
            self.record_event(risk_id, EventKind.STATUS_SCHEDULED, due_at=int(due_at))
            return risk

    def record_status_dispatched(self, risk_id: str, request_id: str) -> Risk:
        """Takes the risk off the status queue; the state stays STATUS_REQUESTED."""
        with self.locked(risk_id):
            risk = self.get_risk(risk_id)
            self._require(risk, RiskState.STATUS_REQUESTED, target=None)
            self._set_once(risk, "status_request_id", request_id)
            risk.updated_at = self._clock()
            self._store.save_risk(risk)
            self.record_event(risk_id, EventKind.STATUS_REQUESTED, request_id=request_id)
            return risk

    def record_settlement_aborted(self, risk_id: str, reason: str, **detail: Any) -> None:
        with self.locked(risk_id):
            risk = self.get_risk(risk_id)
            self._require(risk, RiskState.STATUS_REQUESTED, target=None)
            self.record_event(risk_id, EventKind.SETTLEMENT_ABORTED, reason=reason, **detail)
            logger.warning("Risk %s settlement aborted: %s", risk_id, reason)

    def settle(
        self,
        risk_id: str,
        observed_delay_minutes: int,
        qualifies_for_payout: bool,
        claim_id: Optional[str] = None,
        payout_id: Optional[str] = None,
    ) -> Risk:
        target = RiskState.SETTLED_PAID if qualifies_for_payout else RiskState.SETTLED_EXPIRED
        with self.locked(risk_id):
            risk = self.get_risk(risk_id)
            self._require(risk, RiskState.STATUS_REQUESTED, target=target)
            if risk.status_request_id is None:
                raise InvalidTransition(
                    f"Risk {risk_id} cannot settle before its status request was dispatched.",
                    context={"risk_id": risk_id},
                )
            policy = self._store.get_policy(risk.policy_id) if risk.policy_id else None
            if policy is None or not policy.active:
                raise InvalidTransition(
                    f"Risk {risk_id} has no active policy to close.",
                    context={"risk_id": risk_id, "policy_id": risk.policy_id},
                )

            self._set_once(risk, "observed_delay_minutes", int(observed_delay_minutes))
            self._set_once(risk, "qualifies_for_payout", bool(qualifies_for_payout))
            if qualifies_for_payout:
                self._set_once(risk, "claim_id", claim_id)
                self._set_once(risk, "payout_id", payout_id)

            policy.active = False
            policy.outcome = "paid" if qualifies_for_payout else "expired"
            policy.closed_at = self._clock()
            self._store.save_policy(policy)
            self._move(risk, target)

            if qualifies_for_payout:
                self.record_event(
                    risk_id,
                    EventKind.PAYOUT_TRANSFERRED,
                    policy_id=policy.policy_id,
                    amount=risk.payout_amount,
                    claim_id=claim_id,
                    payout_id=payout_id,
                    delay_minutes=risk.observed_delay_minutes,
                )
            else:
                self.record_event(
                    risk_id,
                    EventKind.POLICY_EXPIRED,
                    policy_id=policy.policy_id,
                    delay_minutes=risk.observed_delay_minutes,
                )
            logger.info("Risk %s settled as %s (delay=%s min)", risk_id, target.value, observed_delay_minutes)
            return risk

    def record_event(self, risk_id: str, kind: EventKind, **detail: Any) -> PolicyEvent:
        event = PolicyEvent(risk_id=risk_id, kind=EventKind(kind), detail=detail, at=self._clock())
        self._store.append_event(event)
        return event

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _require(self, risk: Risk, *expected: RiskState, target: Optional[RiskState]) -> None:
        if risk.state in expected:
            return
        wanted = " or ".join(s.value for s in expected)
        action = f"move to {target.value}" if target else "perform this step"
        raise InvalidTransition(
            f"Risk {risk.id} is {risk.state.value}; must be {wanted} to {action}.",
            context={
                "risk_id": risk.id,
                "state": risk.state.value,
                "expected": [s.value for s in expected],
                "target": target.value if target else None,
            },
        )

    def _set_once(self, risk: Risk, field_name: str, value: Any) -> None:
        if getattr(risk, field_name) is not None:
            raise SetOnceViolation(
                f"Risk {risk.id} field '{field_name}' is already set.",
                context={"risk_id": risk.id, "field": field_name},
            )
        setattr(risk, field_name, value)

    def _move(self, risk: Risk, target: RiskState) -> None:
        risk.state = target
        risk.updated_at = self._clock()
        self._store.save_risk(risk)
