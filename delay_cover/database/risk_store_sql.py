"""
Real SQL-backed risk table for production when DATABASE_URL is set.
Implements the same interface as delay_cover.database.risk_store (in-memory).
"""

from __future__ import annotations

import re
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from sqlalchemy import create_engine, delete, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from delay_cover.core.models import CoverageTier, EventKind, Policy, PolicyEvent, Risk, RiskState
from delay_cover.database.models import Base, PolicyEventRecord, PolicyRecord, RiskRecord

_RISK_FIELDS = (
    "id",
    "customer",
    "journey_descriptor",
    "scheduled_arrival_time",
    "premium",
    "payout_amount",
    "observed_delay_minutes",
    "qualifies_for_payout",
    "policy_id",
    "rating_request_id",
    "status_due_at",
    "status_request_id",
    "claim_id",
    "payout_id",
    "created_at",
    "updated_at",
)

_POLICY_FIELDS = (
    "policy_id",
    "risk_id",
    "customer",
    "premium_paid",
    "payout_amount",
    "active",
    "outcome",
    "created_at",
    "closed_at",
)


def _normalize_connection_string(s: str) -> str:
    """Strip common mistakes: 'psql \'...\'', extra quotes, whitespace."""
    s = s.strip()
    if re.match(r"^psql\s+", s, re.IGNORECASE):
        s = re.sub(r"^psql\s+", "", s, flags=re.IGNORECASE).strip()
    if len(s) >= 2 and s[0] == s[-1] and s[0] in ("'", '"'):
        s = s[1:-1].strip()
    return s


def create_store_engine(connection_string: str):
    connection_string = _normalize_connection_string(connection_string)
    if connection_string.startswith("sqlite"):
        # In-memory SQLite must share one connection across threads.
        return create_engine(
            connection_string,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(connection_string, pool_pre_ping=True, pool_size=5, max_overflow=10)


class SqlRiskStore:
    """
    Risk table using SQLAlchemy. Use when DATABASE_URL is set.
    """

    def __init__(self, connection_string: str) -> None:
        self.engine = create_store_engine(connection_string)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine, expire_on_commit=False)

    def create_tables(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        s = self.SessionLocal()
        try:
            yield s
            s.commit()
        except Exception:
            s.rollback()
            raise
        finally:
            s.close()

    # ------------------------------------------------------------------ #
    # Risks
    # ------------------------------------------------------------------ #
    def add_risk(self, risk: Risk) -> None:
        with self._session() as s:
            if s.get(RiskRecord, risk.id) is not None:
                raise KeyError(f"Risk {risk.id} already exists")
            s.add(self._risk_to_record(risk))

    def get_risk(self, risk_id: str) -> Optional[Risk]:
        with self._session() as s:
            record = s.get(RiskRecord, risk_id)
            return self._record_to_risk(record) if record else None

    def save_risk(self, risk: Risk) -> None:
        with self._session() as s:
            s.merge(self._risk_to_record(risk))

    def delete_risk(self, risk_id: str) -> None:
        with self._session() as s:
            s.execute(delete(RiskRecord).where(RiskRecord.id == risk_id))

    def list_risks(self) -> List[Risk]:
        with self._session() as s:
            records = s.execute(select(RiskRecord).order_by(RiskRecord.created_at)).scalars().all()
            return [self._record_to_risk(r) for r in records]

    # ------------------------------------------------------------------ #
    # Policies
    # ------------------------------------------------------------------ #
    def add_policy(self, policy: Policy) -> None:
        with self._session() as s:
            if s.get(PolicyRecord, policy.policy_id) is not None:
                raise KeyError(f"Policy {policy.policy_id} already exists")
            s.add(PolicyRecord(**{f: getattr(policy, f) for f in _POLICY_FIELDS}))

    def get_policy(self, policy_id: str) -> Optional[Policy]:
        with self._session() as s:
            record = s.get(PolicyRecord, policy_id)
            if record is None:
                return None
            return Policy(**{f: getattr(record, f) for f in _POLICY_FIELDS})

    def save_policy(self, policy: Policy) -> None:
        with self._session() as s:
            s.merge(PolicyRecord(**{f: getattr(policy, f) for f in _POLICY_FIELDS}))

    def active_policy_ids(self) -> List[str]:
        with self._session() as s:
            stmt = select(PolicyRecord.policy_id).where(PolicyRecord.active.is_(True)).order_by(PolicyRecord.policy_id)
            return list(s.execute(stmt).scalars().all())

    # ------------------------------------------------------------------ #
    # Events
    # ------------------------------------------------------------------ #
    def append_event(self, event: PolicyEvent) -> None:
        with self._session() as s:
            s.add(
                PolicyEventRecord(
                    risk_id=event.risk_id,
                    kind=event.kind.value,
                    detail=dict(event.detail),
                    at=event.at,
                )
            )

    def events_for(self, risk_id: str) -> List[PolicyEvent]:
        with self._session() as s:
            stmt = select(PolicyEventRecord).where(PolicyEventRecord.risk_id == risk_id).order_by(PolicyEventRecord.id)
            return [
                PolicyEvent(risk_id=r.risk_id, kind=EventKind(r.kind), detail=dict(r.detail or {}), at=r.at)
                for r in s.execute(stmt).scalars().all()
            ]

    def event_counts(self) -> Dict[str, int]:
        with self._session() as s:
            stmt = select(PolicyEventRecord.kind, func.count()).group_by(PolicyEventRecord.kind)
            return {kind: int(n) for kind, n in s.execute(stmt).all()}

    # ------------------------------------------------------------------ #
    # Mapping
    # ------------------------------------------------------------------ #
    @staticmethod
    def _risk_to_record(risk: Risk) -> RiskRecord:
        values = {f: getattr(risk, f) for f in _RISK_FIELDS}
        values["coverage_tier"] = risk.coverage_tier.value
        values["state"] = risk.state.value
        return RiskRecord(**values)

    @staticmethod
    def _record_to_risk(record: RiskRecord) -> Risk:
        values = {f: getattr(record, f) for f in _RISK_FIELDS}
        values["coverage_tier"] = CoverageTier(record.coverage_tier)
        values["state"] = RiskState(record.state)
        return Risk(**values)
