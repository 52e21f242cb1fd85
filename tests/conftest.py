"""Pytest fixtures for the delay cover lifecycle, phase handlers and API."""

import pytest

from delay_cover.database.redis import InMemoryBucketStore, InMemoryCorrelationStore
from delay_cover.database.risk_store import InMemoryRiskStore
from delay_cover.integrations.clients.mocks import MockClaimsLedger, MockOracleDispatcher, MockTreasury
from delay_cover.product import build_product
from delay_cover.utils.config_loader import ProductConfig

T0 = 1_700_000_000
HOUR = 3600
# Aligned to the hourly bucket grid, so arrival + 12h is a bucket boundary too.
ARRIVAL = 1_700_020_800
STATUS_BUCKET = ARRIVAL + 12 * HOUR


class FixedClock:
    def __init__(self, now: int = T0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now


@pytest.fixture(autouse=True)
def _no_external_backends(monkeypatch):
    """Keep tests on in-memory stores and mock integrations regardless of the shell env."""
    for name in (
        "DATABASE_URL",
        "REDIS_URL",
        "ORACLE_API_URL",
        "ORACLE_CALLBACK_URL",
        "INTEGRATIONS_MODE",
        "DELAY_COVER_CONFIG",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def config():
    return ProductConfig()


@pytest.fixture
def treasury():
    return MockTreasury()


@pytest.fixture
def claims():
    return MockClaimsLedger()


@pytest.fixture
def rating_oracle():
    return MockOracleDispatcher(name="rating")


@pytest.fixture
def status_oracle():
    return MockOracleDispatcher(name="status")


@pytest.fixture
def product(config, treasury, claims, rating_oracle, status_oracle, clock):
    return build_product(
        config,
        treasury=treasury,
        claims=claims,
        rating_oracle=rating_oracle,
        status_oracle=status_oracle,
        risk_store=InMemoryRiskStore(),
        correlation_store=InMemoryCorrelationStore(),
        bucket_store=InMemoryBucketStore(),
        clock=clock,
    )


@pytest.fixture
def underwritten(product, rating_oracle):
    """Factory: apply and accept a rating; returns the risk id."""

    def _make(customer="alice", tier="standard", arrival=ARRIVAL, payout=100):
        risk = product.apply(customer, tier, "LH/410/2023-11-14", arrival)
        request = rating_oracle.last_for(risk.id)
        product.fulfill_rating(request.request_id, {"status": "OK", "payout_amount": payout})
        return risk.id

    return _make


@pytest.fixture
def status_dispatched(product, underwritten, clock):
    """Factory: underwrite and run the keeper past the status bucket; returns the risk id."""

    def _make(**kwargs):
        risk_id = underwritten(**kwargs)
        risk = product.lifecycle.get_risk(risk_id)
        clock.now = max(clock.now, risk.status_due_at + 1)
        product.execute_due(risk.status_due_at)
        return risk_id

    return _make
