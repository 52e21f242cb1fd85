"""
Domain records owned by the policy lifecycle.

Records only ever reference each other by id (risk_id, policy_id); stores are
keyed maps, never object graphs.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class CoverageTier(str, Enum):
    BASIC = "BASIC"
    STANDARD = "STANDARD"
    PREMIUM = "PREMIUM"

    @classmethod
    def parse(cls, value: Any) -> Optional["CoverageTier"]:
        if isinstance(value, cls):
            return value
        normalized = str(value or "").strip().upper()
        try:
            return cls(normalized)
        except ValueError:
            return None


class RiskState(str, Enum):
    APPLIED = "APPLIED"
    RATING_REQUESTED = "RATING_REQUESTED"
    UNDERWRITTEN = "UNDERWRITTEN"
    STATUS_REQUESTED = "STATUS_REQUESTED"
    SETTLED_PAID = "SETTLED_PAID"
    SETTLED_EXPIRED = "SETTLED_EXPIRED"

    @property
    def is_settled(self) -> bool:
        return self in {RiskState.SETTLED_PAID, RiskState.SETTLED_EXPIRED}


class OraclePhase(str, Enum):
    RATING = "RATING"
    STATUS = "STATUS"


class EventKind(str, Enum):
    APPLICATION_SUBMITTED = "application_submitted"
    RATING_REQUESTED = "rating_requested"
    APPLICATION_DECLINED = "application_declined"
    PREMIUM_COLLECTION_FAILED = "premium_collection_failed"
    POLICY_UNDERWRITTEN = "policy_underwritten"
    STATUS_SCHEDULED = "status_scheduled"
    STATUS_REQUESTED = "status_requested"
    PAYOUT_TRANSFERRED = "payout_transferred"
    POLICY_EXPIRED = "policy_expired"
    SETTLEMENT_ABORTED = "settlement_aborted"
    PAYOUT_FAILED = "payout_failed"


def now_seconds() -> int:
    return int(time.time())


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass
class Risk:
    id: str
    customer: str
    coverage_tier: CoverageTier
    journey_descriptor: str              # forwarded verbatim to both providers
    scheduled_arrival_time: int          # unix seconds
    premium: int
    state: RiskState = RiskState.APPLIED
    payout_amount: Optional[int] = None
    observed_delay_minutes: Optional[int] = None
    qualifies_for_payout: Optional[bool] = None
    policy_id: Optional[str] = None
    rating_request_id: Optional[str] = None
    status_due_at: Optional[int] = None
    status_request_id: Optional[str] = None
    claim_id: Optional[str] = None
    payout_id: Optional[str] = None
    created_at: int = field(default_factory=now_seconds)
    updated_at: int = field(default_factory=now_seconds)

    @property
    def status_check_queued(self) -> bool:
        return (
            self.state == RiskState.STATUS_REQUESTED
            and self.status_due_at is not None
            and self.status_request_id is None
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "customer": self.customer,
            "coverage_tier": self.coverage_tier.value,
            "journey_descriptor": self.journey_descriptor,
            "scheduled_arrival_time": self.scheduled_arrival_time,
            "premium": self.premium,
            "state": self.state.value,
            "payout_amount": self.payout_amount,
            "observed_delay_minutes": self.observed_delay_minutes,
            "qualifies_for_payout": self.qualifies_for_payout,
            "policy_id": self.policy_id,
            "status_due_at": self.status_due_at,
            "claim_id": self.claim_id,
            "payout_id": self.payout_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class Policy:
    policy_id: str
    risk_id: str
    customer: str
    premium_paid: int
    payout_amount: int
    active: bool = True
    outcome: Optional[str] = None        # "paid" / "expired" once closed
    created_at: int = field(default_factory=now_seconds)
    closed_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "policy_id": self.policy_id,
            "risk_id": self.risk_id,
            "customer": self.customer,
            "premium_paid": self.premium_paid,
            "payout_amount": self.payout_amount,
            "active": self.active,
            "outcome": self.outcome,
            "created_at": self.created_at,
            "closed_at": self.closed_at,
        }


@dataclass
class PolicyEvent:
    risk_id: str
    kind: EventKind
    detail: Dict[str, Any] = field(default_factory=dict)
    at: int = field(default_factory=now_seconds)

    def to_dict(self) -> Dict[str, Any]:
        return {"risk_id": self.risk_id, "kind": self.kind.value, "detail": dict(self.detail), "at": self.at}


@dataclass(frozen=True)
class PendingRequest:
    request_id: str
    risk_id: str
    phase: OraclePhase
    created_at: int = field(default_factory=now_seconds)
