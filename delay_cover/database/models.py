"""
SQLAlchemy models for risks, policies and the policy event log.
Used by risk_store_sql when DATABASE_URL is set.
"""
from __future__ import annotations
from typing import Any, Dict, Optional
from sqlalchemy import JSON, BigInteger, Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class RiskRecord(Base):
    __tablename__ = "risks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    customer: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    coverage_tier: Mapped[str] = mapped_column(String(16), nullable=False)
    journey_descriptor: Mapped[str] = mapped_column(Text, nullable=False)
    scheduled_arrival_time: Mapped[int] = mapped_column(BigInteger, nullable=False)
    premium: Mapped[int] = mapped_column(BigInteger, nullable=False)
    state: Mapped[str] = mapped_column(String(32), nullable=False, index=True)

    # Set-once fields
    payout_amount: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    observed_delay_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    qualifies_for_payout: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    policy_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    rating_request_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status_due_at: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True, index=True)
    status_request_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    claim_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    payout_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)


class PolicyRecord(Base):
    __tablename__ = "policies"

    policy_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    risk_id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True)
    customer: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    premium_paid: Mapped[int] = mapped_column(BigInteger, nullable=False)
    payout_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    outcome: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    closed_at: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)


class PolicyEventRecord(Base):
    __tablename__ = "policy_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    risk_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    detail: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    at: Mapped[int] = mapped_column(BigInteger, nullable=False)
