"""
Rating phase.

apply() validates the application, reserves the premium with the treasury and
sends a rating request to the rating provider. on_rating_response() is the
inbound callback: a rejection discards the application, an OK collects the
premium, underwrites the policy and hands it to the status phase.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from delay_cover.core.correlator import OracleRequestCorrelator
from delay_cover.core.lifecycle import PolicyLifecycle
from delay_cover.core.models import CoverageTier, EventKind, OraclePhase, Policy, Risk, RiskState
from delay_cover.errors import InvalidTier, InvalidTransition, OracleDispatchError, PremiumCollectionError
from delay_cover.integrations.contracts.interfaces import OracleDispatcher, RatingRequest, Treasury
from delay_cover.integrations.contracts.oracles import RATING_REJECTION_REASONS, RatingResponse, RatingStatus

logger = logging.getLogger(__name__)


@dataclass
class RatingOutcome:
    risk_id: str
    accepted: bool
    status: RatingStatus
    reason: Optional[str] = None
    policy: Optional[Policy] = None
    status_due_at: Optional[int] = None
    detail: Dict[str, Any] = field(default_factory=dict)


class RatingPhaseHandler:
    def __init__(
        self,
        lifecycle: PolicyLifecycle,
        correlator: OracleRequestCorrelator,
        dispatcher: OracleDispatcher,
        treasury: Treasury,
        status_phase,
        tier_premiums: Mapping[CoverageTier, int],
        callback_url: Optional[str] = None,
    ) -> None:
        self.lifecycle = lifecycle
        self.correlator = correlator
        self.dispatcher = dispatcher
        self.treasury = treasury
        self.status_phase = status_phase
        self.tier_premiums = dict(tier_premiums)
        self.callback_url = callback_url

    def premium_for(self, coverage_tier: Any) -> int:
        tier = CoverageTier.parse(coverage_tier)
        if tier is None or tier not in self.tier_premiums:
            raise InvalidTier(
                f"Unknown coverage tier {coverage_tier!r}. Expected one of: "
                f"{', '.join(t.value for t in self.tier_premiums)}.",
                context={"coverage_tier": str(coverage_tier)},
            )
        return self.tier_premiums[tier]

    def apply(
        self,
        customer: str,
        coverage_tier: Any,
        journey_descriptor: str,
        scheduled_arrival_time: int,
    ) -> Risk:
        premium = self.premium_for(coverage_tier)
        tier = CoverageTier.parse(coverage_tier)

        # Raises InsufficientFunds before anything is stored.
        self.treasury.reserve(customer, premium)

        risk = self.lifecycle.create_risk(customer, tier, journey_descriptor, scheduled_arrival_time, premium)
        with self.lifecycle.locked(risk.id):
            request = RatingRequest(
                request_id=str(uuid.uuid4()),
                risk_id=risk.id,
                journey_descriptor=risk.journey_descriptor,
                scheduled_arrival_time=risk.scheduled_arrival_time,
                coverage_tier=tier,
                premium=premium,
                callback_url=self.callback_url,
            )
            self.correlator.register(request.request_id, risk.id, OraclePhase.RATING)
            try:
                sent_id = self.dispatcher.dispatch(request)
            except Exception as exc:
                self.correlator.discard(request.request_id)
                self.lifecycle.discard_application(risk.id, "rating_dispatch_failed", error=str(exc))
                logger.error("Rating request for risk %s could not be dispatched: %s", risk.id, exc)
                raise OracleDispatchError(
                    f"Rating request for risk {risk.id} could not be dispatched.",
                    context={"risk_id": risk.id},
                ) from exc
            if sent_id != request.request_id:
                logger.warning("Rating provider echoed request id %s for %s", sent_id, request.request_id)

            risk = self.lifecycle.mark_rating_requested(risk.id, request.request_id)
        logger.info("Rating requested for risk %s (request=%s)", risk.id, request.request_id)
        return risk

    def on_rating_response(self, request_id: str, response: RatingResponse) -> RatingOutcome:
        pending = self.correlator.resolve(request_id, OraclePhase.RATING)
        risk_id = pending.risk_id

        with self.lifecycle.locked(risk_id):
            risk = self.lifecycle.get_risk(risk_id)
            if risk.state != RiskState.RATING_REQUESTED:
                raise InvalidTransition(
                    f"Rating response for risk {risk_id} arrived in state {risk.state.value}.",
                    context={"risk_id": risk_id, "state": risk.state.value, "request_id": request_id},
                )

            if response.status != RatingStatus.OK:
                reason = RATING_REJECTION_REASONS[response.status]
                self.lifecycle.discard_application(
                    risk_id,
                    response.status.value.lower(),
                    request_id=request_id,
                    message=reason,
                )
                return RatingOutcome(risk_id=risk_id, accepted=False, status=response.status, reason=reason)

            try:
                paid = self._collect_premium(risk)
            except PremiumCollectionError:
                # Nothing was written; the provider may re-deliver the same fulfillment.
                self.correlator.restore(pending)
                raise
            policy = self.lifecycle.underwrite(risk_id, response.payout_amount, paid)
            due_at = self.status_phase.schedule_status_check(risk_id)

        return RatingOutcome(
            risk_id=risk_id,
            accepted=True,
            status=response.status,
            policy=policy,
            status_due_at=due_at,
        )

    def _collect_premium(self, risk: Risk) -> int:
        try:
            paid = self.treasury.collect(risk.customer, risk.premium)
        except Exception as exc:
            self.lifecycle.record_event(risk.id, EventKind.PREMIUM_COLLECTION_FAILED, error=str(exc))
            raise PremiumCollectionError(
                f"Premium collection for risk {risk.id} failed.",
                context={"risk_id": risk.id, "premium": risk.premium},
            ) from exc

        if paid != risk.premium:
            self.lifecycle.record_event(
                risk.id,
                EventKind.PREMIUM_COLLECTION_FAILED,
                expected=risk.premium,
                collected=paid,
            )
            raise PremiumCollectionError(
                f"Collected {paid} for risk {risk.id}; premium is {risk.premium}.",
                context={"risk_id": risk.id, "premium": risk.premium, "collected": paid},
            )
        return paid
