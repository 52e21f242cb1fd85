import pytest

from delay_cover.core.models import EventKind, OraclePhase, RiskState
from delay_cover.errors import (
    ClaimsLedgerError,
    NotQueued,
    NotSupportedError,
    NotYetDue,
    OracleDispatchError,
    UnknownRequest,
)
from delay_cover.integrations.clients.mocks import MockClaimsLedger, MockOracleDispatcher, MockTreasury
from delay_cover.product import build_product

from conftest import ARRIVAL, HOUR, STATUS_BUCKET


def test_status_bucket_rounds_up_from_unaligned_arrival(product, underwritten):
    risk_id = underwritten(arrival=ARRIVAL + 1)
    assert product.lifecycle.get_risk(risk_id).status_due_at == STATUS_BUCKET + HOUR


def test_future_bucket_is_not_yet_due(product, underwritten, status_oracle, clock):
    underwritten()
    clock.now = STATUS_BUCKET - 1
    assert not product.due_now().is_due
    with pytest.raises(NotYetDue):
        product.execute_due(STATUS_BUCKET)
    assert status_oracle.sent == []


def test_execute_due_dispatches_and_consumes(product, underwritten, status_oracle, clock):
    first = underwritten(customer="alice")
    second = underwritten(customer="bob")
    clock.now = STATUS_BUCKET + 1

    due = product.due_now()
    assert due.bucket == STATUS_BUCKET
    assert sorted(due.risk_ids) == sorted([first, second])

    report = product.execute_due(due.bucket)
    assert sorted(report.dispatched) == sorted([first, second])
    assert report.consumed
    assert not product.due_now().is_due
    for risk_id in (first, second):
        risk = product.lifecycle.get_risk(risk_id)
        assert not risk.status_check_queued
        assert status_oracle.last_for(risk_id).request_id == risk.status_request_id


def test_repeated_execute_sends_nothing_new(product, status_dispatched, status_oracle):
    risk_id = status_dispatched()
    report = product.execute_due(STATUS_BUCKET)
    assert report.dispatched == []
    assert status_oracle.count_for(risk_id) == 1


def test_stale_id_in_bucket_is_skipped(product, underwritten, clock):
    risk_id = underwritten()
    product.scheduler.store.add(STATUS_BUCKET, "ghost")
    clock.now = STATUS_BUCKET + 1

    report = product.execute_due(STATUS_BUCKET)
    assert report.dispatched == [risk_id]
    assert report.skipped == ["ghost"]


def test_backlog_bucket_is_still_executed(product, underwritten, status_oracle, clock):
    risk_id = underwritten()
    clock.now = STATUS_BUCKET + 5 * HOUR

    assert product.backlog() == [STATUS_BUCKET]
    product.execute_due(STATUS_BUCKET)
    assert status_oracle.count_for(risk_id) == 1
    assert product.backlog() == []


def test_dispatch_failure_keeps_bucket_for_next_tick(product, underwritten, status_oracle, clock):
    risk_id = underwritten()
    clock.now = STATUS_BUCKET + 1
    status_oracle._fail = True

    with pytest.raises(OracleDispatchError):
        product.execute_due(STATUS_BUCKET)
    assert product.lifecycle.get_risk(risk_id).status_check_queued
    assert product.correlator.outstanding_for(risk_id, OraclePhase.STATUS) is None

    status_oracle._fail = False
    report = product.execute_due(STATUS_BUCKET)
    assert report.dispatched == [risk_id]


def test_dispatch_of_unqueued_risk_is_rejected(product, status_dispatched, clock):
    risk_id = status_dispatched()
    with pytest.raises(NotQueued):
        product.status.dispatch_status_check(risk_id, clock.now)


def test_delay_at_threshold_pays(product, status_dispatched, status_oracle, claims):
    risk_id = status_dispatched()
    request = status_oracle.last_for(risk_id)

    outcome = product.fulfill_status(request.request_id, {"status": "OK", "delay_minutes": 60})

    assert outcome.settled
    assert outcome.qualifies_for_payout
    risk = product.lifecycle.get_risk(risk_id)
    assert risk.state == RiskState.SETTLED_PAID
    assert risk.claim_id == outcome.claim_id
    assert claims.claims[outcome.claim_id].amount == 100
    assert claims.payouts == [outcome.payout_id]


def test_delay_below_threshold_expires(product, status_dispatched, status_oracle, claims):
    risk_id = status_dispatched()
    request = status_oracle.last_for(risk_id)

    outcome = product.fulfill_status(request.request_id, {"status": "OK", "delay_minutes": 59})

    assert outcome.settled
    assert outcome.qualifies_for_payout is False
    assert product.lifecycle.get_risk(risk_id).state == RiskState.SETTLED_EXPIRED
    assert claims.claims == {}


def test_negative_delay_counts_as_on_time(product, status_dispatched, status_oracle):
    risk_id = status_dispatched()
    request = status_oracle.last_for(risk_id)
    outcome = product.fulfill_status(request.request_id, {"status": "OK", "delay_minutes": -15})
    assert outcome.delay_minutes == 0
    assert product.lifecycle.get_risk(risk_id).state == RiskState.SETTLED_EXPIRED


def test_provider_failure_aborts_settlement_and_keeps_policy_open(product, status_dispatched, status_oracle):
    risk_id = status_dispatched()
    request = status_oracle.last_for(risk_id)

    outcome = product.fulfill_status(request.request_id, {"status": "MISSING_DELAY_DATA"})

    assert not outcome.settled
    risk = product.lifecycle.get_risk(risk_id)
    assert risk.state == RiskState.STATUS_REQUESTED
    assert product.lifecycle.get_policy(risk.policy_id).active
    assert product.lifecycle.events(risk_id)[-1].kind == EventKind.SETTLEMENT_ABORTED
    assert product.lifecycle.counters()["aborted"] == 1

    with pytest.raises(UnknownRequest):
        product.fulfill_status(request.request_id, {"status": "OK", "delay_minutes": 90})
    with pytest.raises(NotSupportedError):
        product.status.requeue_status_check(risk_id)


@pytest.mark.parametrize("step", ["open", "confirm", "pay"])
def test_claims_failure_aborts_attempt_and_redelivery_settles(config, clock, step):
    rating_oracle = MockOracleDispatcher(name="rating")
    status_oracle = MockOracleDispatcher(name="status")
    claims = MockClaimsLedger(fail_on=step)
    product = build_product(
        config,
        treasury=MockTreasury(),
        claims=claims,
        rating_oracle=rating_oracle,
        status_oracle=status_oracle,
        clock=clock,
    )
    risk = product.apply("alice", "standard", "LH/410/2023-11-14", ARRIVAL)
    product.fulfill_rating(rating_oracle.last_for(risk.id).request_id, {"status": "OK", "payout_amount": 100})
    clock.now = STATUS_BUCKET + 1
    product.execute_due(STATUS_BUCKET)
    request_id = status_oracle.last_for(risk.id).request_id
    fulfillment = {"status": "OK", "delay_minutes": 120}

    with pytest.raises(ClaimsLedgerError):
        product.fulfill_status(request_id, fulfillment)

    stored = product.lifecycle.get_risk(risk.id)
    assert stored.state == RiskState.STATUS_REQUESTED
    assert stored.qualifies_for_payout is None
    assert stored.payout_id is None
    assert product.lifecycle.get_policy(stored.policy_id).active
    assert product.lifecycle.events(risk.id)[-1].kind == EventKind.PAYOUT_FAILED
    assert product.correlator.outstanding_for(risk.id, OraclePhase.STATUS) == request_id

    # Ledger recovers; the provider re-delivers the same fulfillment.
    claims._fail_on = None
    outcome = product.fulfill_status(request_id, fulfillment)

    assert outcome.settled
    assert outcome.qualifies_for_payout
    settled = product.lifecycle.get_risk(risk.id)
    assert settled.state == RiskState.SETTLED_PAID
    assert settled.payout_id == outcome.payout_id
    assert claims.payouts == [outcome.payout_id]
    assert not product.lifecycle.get_policy(settled.policy_id).active
    with pytest.raises(UnknownRequest):
        product.fulfill_status(request_id, fulfillment)


def test_status_id_on_rating_channel_is_unknown(product, status_dispatched, status_oracle):
    risk_id = status_dispatched()
    request = status_oracle.last_for(risk_id)

    with pytest.raises(UnknownRequest):
        product.fulfill_rating(request.request_id, {"status": "OK", "payout_amount": 100})
    # Still resolvable on the right channel.
    outcome = product.fulfill_status(request.request_id, {"status": "OK", "delay_minutes": 5})
    assert outcome.settled
