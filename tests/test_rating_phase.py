import pytest

from delay_cover.core.models import EventKind, OraclePhase, RiskState
from delay_cover.errors import (
    InsufficientFunds,
    InvalidTier,
    OracleDispatchError,
    PremiumCollectionError,
    UnknownRequest,
)
from delay_cover.integrations.clients.mocks import MockOracleDispatcher, MockTreasury
from delay_cover.integrations.contracts.oracles import IntegrationResponseError
from delay_cover.product import build_product

from conftest import ARRIVAL, STATUS_BUCKET


def test_apply_registers_before_dispatch_and_sends_rating_request(product, rating_oracle):
    risk = product.apply("alice", "standard", "LH/410/2023-11-14", ARRIVAL)

    stored = product.lifecycle.get_risk(risk.id)
    assert stored.state == RiskState.RATING_REQUESTED
    assert stored.premium == 5

    request = rating_oracle.last_for(risk.id)
    assert request.request_id == stored.rating_request_id
    assert request.journey_descriptor == "LH/410/2023-11-14"
    assert product.correlator.outstanding_for(risk.id, OraclePhase.RATING) == request.request_id


@pytest.mark.parametrize("tier", ["gold", "", None])
def test_invalid_tier_is_rejected_without_state(product, rating_oracle, tier):
    with pytest.raises(InvalidTier):
        product.apply("alice", tier, "LH/410/2023-11-14", ARRIVAL)
    assert rating_oracle.sent == []
    assert product.lifecycle.counters()["applied"] == 0


def test_insufficient_funds_is_rejected_without_state(product, treasury, rating_oracle):
    treasury._balances["poor"] = 2
    with pytest.raises(InsufficientFunds):
        product.apply("poor", "basic", "LH/410/2023-11-14", ARRIVAL)
    assert rating_oracle.sent == []
    assert product.lifecycle.counters()["applied"] == 0


def test_ok_rating_underwrites_and_schedules_status(product, rating_oracle, treasury):
    risk = product.apply("alice", "standard", "LH/410/2023-11-14", ARRIVAL)
    request = rating_oracle.last_for(risk.id)

    outcome = product.fulfill_rating(request.request_id, {"status": "OK", "payout_amount": 100})

    assert outcome.accepted
    assert outcome.status_due_at == STATUS_BUCKET
    assert outcome.policy.premium_paid == 5
    assert outcome.policy.payout_amount == 100
    stored = product.lifecycle.get_risk(risk.id)
    assert stored.state == RiskState.STATUS_REQUESTED
    assert stored.status_check_queued
    assert treasury.collections == [("alice", 5)]
    assert product.scheduler.scheduled_bucket(risk.id) == STATUS_BUCKET


def test_rejected_rating_discards_application(product, rating_oracle, treasury):
    risk = product.apply("alice", "premium", "XX/1/2023-11-14", ARRIVAL)
    request = rating_oracle.last_for(risk.id)

    outcome = product.fulfill_rating(request.request_id, {"status": "PROBABILITY_TOO_HIGH"})

    assert not outcome.accepted
    assert "probability" in outcome.reason.lower()
    assert product.lifecycle.find_risk(risk.id) is None
    assert treasury.collections == []
    declined = [e for e in product.lifecycle.events(risk.id) if e.kind == EventKind.APPLICATION_DECLINED]
    assert declined[0].detail["reason"] == "probability_too_high"


def test_duplicate_rating_fulfillment_is_unknown(product, rating_oracle, treasury):
    risk = product.apply("alice", "standard", "LH/410/2023-11-14", ARRIVAL)
    request = rating_oracle.last_for(risk.id)
    product.fulfill_rating(request.request_id, {"status": "OK", "payout_amount": 100})

    with pytest.raises(UnknownRequest):
        product.fulfill_rating(request.request_id, {"status": "OK", "payout_amount": 999})
    assert product.lifecycle.get_risk(risk.id).payout_amount == 100
    assert len(treasury.collections) == 1


def test_malformed_rating_payload_leaves_request_pending(product, rating_oracle):
    risk = product.apply("alice", "standard", "LH/410/2023-11-14", ARRIVAL)
    request = rating_oracle.last_for(risk.id)

    with pytest.raises(IntegrationResponseError):
        product.fulfill_rating(request.request_id, {"status": "OK", "payout_amount": 0})
    assert product.correlator.outstanding_for(risk.id, OraclePhase.RATING) == request.request_id


def test_dispatch_failure_discards_application_and_registration(config, clock):
    product = build_product(
        config,
        treasury=MockTreasury(),
        rating_oracle=MockOracleDispatcher(name="rating", fail=True),
        status_oracle=MockOracleDispatcher(name="status"),
        clock=clock,
    )
    with pytest.raises(OracleDispatchError):
        product.apply("alice", "basic", "LH/410/2023-11-14", ARRIVAL)
    assert product.correlator.pending() == []
    assert product.lifecycle.counters()["declined"] == 1


def test_premium_shortfall_aborts_and_redelivery_underwrites(product, rating_oracle, treasury):
    treasury._shortfall = 1
    risk = product.apply("alice", "standard", "LH/410/2023-11-14", ARRIVAL)
    request = rating_oracle.last_for(risk.id)
    fulfillment = {"status": "OK", "payout_amount": 100}

    with pytest.raises(PremiumCollectionError):
        product.fulfill_rating(request.request_id, fulfillment)

    stored = product.lifecycle.get_risk(risk.id)
    assert stored.state == RiskState.RATING_REQUESTED
    assert stored.policy_id is None
    kinds = [e.kind for e in product.lifecycle.events(risk.id)]
    assert EventKind.PREMIUM_COLLECTION_FAILED in kinds
    # The aborted handling left the correlation in place.
    assert product.correlator.outstanding_for(risk.id, OraclePhase.RATING) == request.request_id

    treasury._shortfall = 0
    outcome = product.fulfill_rating(request.request_id, fulfillment)

    assert outcome.accepted
    assert outcome.policy.premium_paid == 5
    assert product.lifecycle.get_risk(risk.id).state == RiskState.STATUS_REQUESTED
    assert product.correlator.outstanding_for(risk.id, OraclePhase.RATING) is None


def test_failed_collection_can_be_retried_once(product, rating_oracle, treasury):
    treasury._fail_collection = True
    risk = product.apply("alice", "basic", "LH/410/2023-11-14", ARRIVAL)
    request = rating_oracle.last_for(risk.id)
    fulfillment = {"status": "OK", "payout_amount": 50}

    with pytest.raises(PremiumCollectionError):
        product.fulfill_rating(request.request_id, fulfillment)
    assert treasury.collections == []

    treasury._fail_collection = False
    product.fulfill_rating(request.request_id, fulfillment)
    with pytest.raises(UnknownRequest):
        product.fulfill_rating(request.request_id, fulfillment)
    assert treasury.collections == [("alice", 3)]
    assert product.lifecycle.counters()["underwritten"] == 1
