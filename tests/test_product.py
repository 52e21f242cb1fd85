import logging

from delay_cover.integrations.clients.mocks import MockClaimsLedger, MockTreasury
from delay_cover.integrations.clients.real_http.oracle import HttpOracleDispatcher
from delay_cover.product import build_product


def test_real_mode_warns_about_mock_money_collaborators(monkeypatch, caplog, config):
    monkeypatch.setenv("INTEGRATIONS_MODE", "real")
    monkeypatch.setenv("ORACLE_API_URL", "https://oracle.example")

    with caplog.at_level(logging.WARNING, logger="delay_cover.product"):
        product = build_product(config)

    messages = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
    assert any("treasury" in m for m in messages)
    assert any("claims ledger" in m for m in messages)
    assert isinstance(product.status.dispatcher, HttpOracleDispatcher)


def test_real_mode_with_injected_collaborators_is_quiet(monkeypatch, caplog, config):
    monkeypatch.setenv("INTEGRATIONS_MODE", "real")
    monkeypatch.setenv("ORACLE_API_URL", "https://oracle.example")

    with caplog.at_level(logging.WARNING, logger="delay_cover.product"):
        build_product(config, treasury=MockTreasury(), claims=MockClaimsLedger())

    assert not [r for r in caplog.records if r.name == "delay_cover.product" and r.levelno >= logging.WARNING]


def test_mock_mode_is_quiet(caplog, config):
    with caplog.at_level(logging.WARNING, logger="delay_cover.product"):
        build_product(config)
    assert not [r for r in caplog.records if r.name == "delay_cover.product" and r.levelno >= logging.WARNING]
