"""
Flight delay cover product.

Wires the lifecycle core to its collaborators. Mock vs real collaborators and
in-memory vs shared storage are selected here and nowhere else.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Callable, Dict, List, Optional

from delay_cover.core.correlator import OracleRequestCorrelator
from delay_cover.core.lifecycle import PolicyLifecycle
from delay_cover.core.models import OraclePhase, Risk, now_seconds
from delay_cover.core.rating import RatingOutcome, RatingPhaseHandler
from delay_cover.core.scheduler import DelayedExecutionScheduler, DueWork
from delay_cover.core.status import ExecutionReport, SettlementOutcome, StatusPhaseHandler
from delay_cover.errors import UnknownRisk
from delay_cover.integrations.clients.mocks import MockClaimsLedger, MockOracleDispatcher, MockTreasury
from delay_cover.integrations.contracts.oracles import normalize_rating_response, normalize_status_response
from delay_cover.utils.config_loader import ProductConfig, load_product_config

logger = logging.getLogger(__name__)


def _should_use_real_integrations() -> bool:
    mode = os.getenv("INTEGRATIONS_MODE", "").strip().lower()
    if mode in {"real", "live"}:
        return True
    if mode in {"mock", "test"}:
        return False
    return bool(os.getenv("ORACLE_API_URL"))


def _callback_url(phase: OraclePhase) -> Optional[str]:
    base = os.getenv("ORACLE_CALLBACK_URL", "").rstrip("/")
    if not base:
        return None
    return f"{base}/api/v1/oracle/{phase.value.lower()}/fulfill"


def _select_oracle(phase: OraclePhase):
    if _should_use_real_integrations() and os.getenv("ORACLE_API_URL"):
        from delay_cover.integrations.clients.real_http.oracle import HttpOracleDispatcher

        return HttpOracleDispatcher(phase=phase)
    return MockOracleDispatcher(name=phase.value.lower())


def _select_risk_store():
    if os.getenv("DATABASE_URL"):
        from delay_cover.database.risk_store_sql import SqlRiskStore

        store = SqlRiskStore(connection_string=os.environ["DATABASE_URL"])
        store.create_tables()
        return store
    return None


def _select_shared_stores():
    if os.getenv("REDIS_URL"):
        from delay_cover.database.redis_real import RedisBucketStore, RedisCorrelationStore

        url = os.environ["REDIS_URL"]
        return RedisCorrelationStore(url=url), RedisBucketStore(url=url)
    return None, None


class DelayCoverProduct:
    def __init__(
        self,
        config: ProductConfig,
        lifecycle: PolicyLifecycle,
        correlator: OracleRequestCorrelator,
        scheduler: DelayedExecutionScheduler,
        rating: RatingPhaseHandler,
        status: StatusPhaseHandler,
        clock: Callable[[], int] = now_seconds,
    ) -> None:
        self.config = config
        self.lifecycle = lifecycle
        self.correlator = correlator
        self.scheduler = scheduler
        self.rating = rating
        self.status = status
        self.clock = clock

    # -- Customer --

    def apply(self, customer: str, coverage_tier: Any, journey_descriptor: str, scheduled_arrival_time: int) -> Risk:
        return self.rating.apply(customer, coverage_tier, journey_descriptor, int(scheduled_arrival_time))

    def risk_view(self, risk_id: str) -> Dict[str, Any]:
        risk = self.lifecycle.find_risk(risk_id)
        events = [e.to_dict() for e in self.lifecycle.events(risk_id)]
        if risk is None and not events:
            raise UnknownRisk(f"Risk {risk_id} not found.", context={"risk_id": risk_id})
        policy = self.lifecycle.get_policy(risk.policy_id) if risk and risk.policy_id else None
        return {
            "risk": risk.to_dict() if risk else None,
            "policy": policy.to_dict() if policy else None,
            "events": events,
        }

    # -- Oracle fulfillment --

    def fulfill_rating(self, request_id: str, payload: Dict[str, Any]) -> RatingOutcome:
        return self.rating.on_rating_response(request_id, normalize_rating_response(payload))

    def fulfill_status(self, request_id: str, payload: Dict[str, Any]) -> SettlementOutcome:
        return self.status.on_status_response(request_id, normalize_status_response(payload))

    # -- Keeper --

    def due_now(self, now: Optional[int] = None) -> DueWork:
        return self.status.due_now(self.clock() if now is None else now)

    def backlog(self, now: Optional[int] = None) -> List[int]:
        return self.status.backlog(self.clock() if now is None else now)

    def execute_due(self, bucket: int, now: Optional[int] = None) -> ExecutionReport:
        return self.status.execute_due(int(bucket), self.clock() if now is None else now)

    # -- Operations --

    def stats(self) -> Dict[str, Any]:
        return {
            "counters": self.lifecycle.counters(),
            "active_policies": len(self.lifecycle.active_policies()),
            "pending_requests": len(self.correlator.pending()),
            "poll_interval_seconds": self.scheduler.interval,
        }


def build_product(
    config: Optional[ProductConfig] = None,
    *,
    treasury=None,
    claims=None,
    rating_oracle=None,
    status_oracle=None,
    risk_store=None,
    correlation_store=None,
    bucket_store=None,
    clock: Callable[[], int] = now_seconds,
) -> DelayCoverProduct:
    """Assemble the product. Anything not passed in is selected from the environment."""
    config = config or load_product_config()

    if correlation_store is None and bucket_store is None:
        correlation_store, bucket_store = _select_shared_stores()
    if risk_store is None:
        risk_store = _select_risk_store()

    if _should_use_real_integrations():
        for name, client in (("treasury", treasury), ("claims ledger", claims)):
            if client is None:
                logger.warning(
                    "INTEGRATIONS_MODE is real but no %s was provided; falling back to the MOCK %s. "
                    "Premiums and payouts will not move real funds.",
                    name,
                    name,
                )

    lifecycle = PolicyLifecycle(store=risk_store, clock=clock)
    correlator = OracleRequestCorrelator(store=correlation_store)
    scheduler = DelayedExecutionScheduler(config.scheduling.poll_interval_seconds, store=bucket_store)

    status = StatusPhaseHandler(
        lifecycle=lifecycle,
        correlator=correlator,
        scheduler=scheduler,
        dispatcher=status_oracle or _select_oracle(OraclePhase.STATUS),
        claims=claims or MockClaimsLedger(),
        monitoring_offset_seconds=config.scheduling.monitoring_offset_seconds,
        payout_threshold_minutes=config.settlement.payout_threshold_minutes,
        callback_url=_callback_url(OraclePhase.STATUS),
    )
    rating = RatingPhaseHandler(
        lifecycle=lifecycle,
        correlator=correlator,
        dispatcher=rating_oracle or _select_oracle(OraclePhase.RATING),
        treasury=treasury or MockTreasury(),
        status_phase=status,
        tier_premiums=config.tier_premiums(),
        callback_url=_callback_url(OraclePhase.RATING),
    )
    logger.info(
        "Delay cover product ready (poll_interval=%ss, offset=%ss, threshold=%smin)",
        config.scheduling.poll_interval_seconds,
        config.scheduling.monitoring_offset_seconds,
        config.settlement.payout_threshold_minutes,
    )
    return DelayCoverProduct(config, lifecycle, correlator, scheduler, rating, status, clock=clock)
