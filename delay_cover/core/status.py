"""
Status phase.

An underwritten risk is parked in the scheduler until
round_up(arrival + monitoring_offset). The external keeper polls due_now() and
calls execute_due() with the bucket it was given; each queued risk then gets a
status request. on_status_response() settles the policy: paid when the observed
delay reaches the payout threshold, expired otherwise.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import List, Optional

from delay_cover.core.correlator import OracleRequestCorrelator
from delay_cover.core.lifecycle import PolicyLifecycle
from delay_cover.core.models import EventKind, OraclePhase, Risk, RiskState
from delay_cover.core.scheduler import DelayedExecutionScheduler, DueWork
from delay_cover.errors import (
    ClaimsLedgerError,
    InvalidTransition,
    NotQueued,
    NotSupportedError,
    NotYetDue,
    OracleDispatchError,
)
from delay_cover.integrations.contracts.interfaces import ClaimsLedger, OracleDispatcher, StatusRequest
from delay_cover.integrations.contracts.oracles import STATUS_ABORT_REASONS, StatusResponse, StatusResult

logger = logging.getLogger(__name__)

PAYOUT_THRESHOLD_MINUTES = 60


@dataclass
class ExecutionReport:
    bucket: int
    dispatched: List[str] = field(default_factory=list)     # risk ids
    skipped: List[str] = field(default_factory=list)        # no longer queued
    consumed: bool = False


@dataclass
class SettlementOutcome:
    risk_id: str
    settled: bool
    status: StatusResult
    qualifies_for_payout: Optional[bool] = None
    delay_minutes: Optional[int] = None
    claim_id: Optional[str] = None
    payout_id: Optional[str] = None
    reason: Optional[str] = None


class StatusPhaseHandler:
    def __init__(
        self,
        lifecycle: PolicyLifecycle,
        correlator: OracleRequestCorrelator,
        scheduler: DelayedExecutionScheduler,
        dispatcher: OracleDispatcher,
        claims: ClaimsLedger,
        monitoring_offset_seconds: int,
        payout_threshold_minutes: int = PAYOUT_THRESHOLD_MINUTES,
        callback_url: Optional[str] = None,
    ) -> None:
        self.lifecycle = lifecycle
        self.correlator = correlator
        self.scheduler = scheduler
        self.dispatcher = dispatcher
        self.claims = claims
        self.monitoring_offset_seconds = monitoring_offset_seconds
        self.payout_threshold_minutes = payout_threshold_minutes
        self.callback_url = callback_url

    # ------------------------------------------------------------------ #
    # Scheduling
    # ------------------------------------------------------------------ #
    def schedule_status_check(self, risk_id: str) -> int:
        with self.lifecycle.locked(risk_id):
            risk = self.lifecycle.get_risk(risk_id)
            if risk.state != RiskState.UNDERWRITTEN:
                raise InvalidTransition(
                    f"Risk {risk_id} is {risk.state.value}; only underwritten risks are monitored.",
                    context={"risk_id": risk_id, "state": risk.state.value},
                )
            target = risk.scheduled_arrival_time + self.monitoring_offset_seconds
            bucket = self.scheduler.schedule_at(target, risk_id)
            self.lifecycle.mark_status_requested(risk_id, bucket)
            return bucket

    def due_now(self, now: int) -> DueWork:
        return self.scheduler.due_now(now)

    def backlog(self, now: int) -> List[int]:
        return self.scheduler.backlog(now)

    # ------------------------------------------------------------------ #
    # Keeper execution
    # ------------------------------------------------------------------ #
    def execute_due(self, bucket: int, now: int) -> ExecutionReport:
        """
        Dispatch every queued risk in `bucket`, then consume the bucket.

        Concurrent calls for the same bucket are serialized; the second caller
        finds the ids already dispatched (or the bucket gone) and sends nothing.
        If a dispatch fails the bucket is left in place for the next tick.
        """
        current = self.scheduler.bucket_for_poll(now)
        if bucket > current:
            raise NotYetDue(
                f"Bucket {bucket} lies in the future; current bucket is {current}.",
                context={"bucket": bucket, "current_bucket": current},
            )

        report = ExecutionReport(bucket=bucket)
        with self.scheduler.bucket_lock(bucket):
            for risk_id in self.scheduler.ids_in(bucket):
                try:
                    self.dispatch_status_check(risk_id, now)
                except NotQueued:
                    logger.warning("Risk %s in bucket %s is no longer queued; skipping", risk_id, bucket)
                    report.skipped.append(risk_id)
                    continue
                report.dispatched.append(risk_id)
            self.scheduler.consume(bucket)
            report.consumed = True
        logger.info(
            "Executed bucket %s: dispatched=%d skipped=%d",
            bucket,
            len(report.dispatched),
            len(report.skipped),
        )
        return report

    def dispatch_status_check(self, risk_id: str, now: int) -> Risk:
        with self.lifecycle.locked(risk_id):
            risk = self.lifecycle.find_risk(risk_id)
            if risk is None or not risk.status_check_queued:
                raise NotQueued(
                    f"Risk {risk_id} has no queued status check.",
                    context={"risk_id": risk_id, "state": risk.state.value if risk else None},
                )
            if risk.status_due_at > now:
                raise NotYetDue(
                    f"Status check for risk {risk_id} is due at {risk.status_due_at}.",
                    context={"risk_id": risk_id, "due_at": risk.status_due_at, "now": now},
                )

            request = StatusRequest(
                request_id=str(uuid.uuid4()),
                risk_id=risk_id,
                journey_descriptor=risk.journey_descriptor,
                scheduled_arrival_time=risk.scheduled_arrival_time,
                callback_url=self.callback_url,
            )
            self.correlator.register(request.request_id, risk_id, OraclePhase.STATUS)
            try:
                self.dispatcher.dispatch(request)
            except Exception as exc:
                self.correlator.discard(request.request_id)
                raise OracleDispatchError(
                    f"Status request for risk {risk_id} could not be dispatched.",
                    context={"risk_id": risk_id},
                ) from exc

            risk = self.lifecycle.record_status_dispatched(risk_id, request.request_id)
        logger.info("Status requested for risk %s (request=%s)", risk_id, request.request_id)
        return risk

    # ------------------------------------------------------------------ #
    # Inbound fulfillment
    # ------------------------------------------------------------------ #
    def on_status_response(self, request_id: str, response: StatusResponse) -> SettlementOutcome:
        pending = self.correlator.resolve(request_id, OraclePhase.STATUS)
        risk_id = pending.risk_id

        with self.lifecycle.locked(risk_id):
            risk = self.lifecycle.get_risk(risk_id)
            if risk.state != RiskState.STATUS_REQUESTED or risk.status_request_id != request_id:
                raise InvalidTransition(
                    f"Status response {request_id} does not match risk {risk_id} in state {risk.state.value}.",
                    context={"risk_id": risk_id, "state": risk.state.value, "request_id": request_id},
                )

            if response.status != StatusResult.OK:
                reason = STATUS_ABORT_REASONS[response.status]
                self.lifecycle.record_settlement_aborted(
                    risk_id,
                    response.status.value.lower(),
                    request_id=request_id,
                    message=reason,
                )
                return SettlementOutcome(risk_id=risk_id, settled=False, status=response.status, reason=reason)

            delay = response.delay_minutes
            qualifies = delay >= self.payout_threshold_minutes
            claim_id = payout_id = None
            if qualifies:
                try:
                    claim_id, payout_id = self._pay_claim(risk)
                except ClaimsLedgerError as exc:
                    self.lifecycle.record_event(
                        risk_id,
                        EventKind.PAYOUT_FAILED,
                        request_id=request_id,
                        error=str(exc.__cause__),
                    )
                    # Nothing was settled; the provider may re-deliver the same fulfillment.
                    self.correlator.restore(pending)
                    raise

            risk = self.lifecycle.settle(risk_id, delay, qualifies, claim_id=claim_id, payout_id=payout_id)

        return SettlementOutcome(
            risk_id=risk_id,
            settled=True,
            status=response.status,
            qualifies_for_payout=qualifies,
            delay_minutes=delay,
            claim_id=claim_id,
            payout_id=payout_id,
        )

    def requeue_status_check(self, risk_id: str) -> None:
        raise NotSupportedError(
            "Re-queuing a status check after a provider failure is not supported.",
            context={"risk_id": risk_id},
        )

    def _pay_claim(self, risk: Risk):
        try:
            claim_id = self.claims.open_claim(risk.policy_id, risk.payout_amount)
            self.claims.confirm(risk.policy_id, claim_id, risk.payout_amount)
            payout_id = self.claims.pay(risk.policy_id, claim_id)
        except Exception as exc:
            raise ClaimsLedgerError(
                f"Payout for risk {risk.id} failed; policy {risk.policy_id} stays open.",
                context={"risk_id": risk.id, "policy_id": risk.policy_id},
            ) from exc
        return claim_id, payout_id
