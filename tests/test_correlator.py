import pytest

from delay_cover.core.correlator import OracleRequestCorrelator
from delay_cover.core.models import OraclePhase
from delay_cover.errors import DuplicateRequest, NotSupportedError, UnknownRequest


def test_resolve_returns_risk_and_removes_mapping():
    correlator = OracleRequestCorrelator()
    correlator.register("req-1", "risk-1", OraclePhase.RATING)

    pending = correlator.resolve("req-1", OraclePhase.RATING)
    assert pending.risk_id == "risk-1"
    assert correlator.pending() == []

    with pytest.raises(UnknownRequest):
        correlator.resolve("req-1", OraclePhase.RATING)


def test_unknown_request_is_rejected():
    correlator = OracleRequestCorrelator()
    with pytest.raises(UnknownRequest):
        correlator.resolve("never-sent")


def test_duplicate_request_id_is_an_invariant_violation():
    correlator = OracleRequestCorrelator()
    correlator.register("req-1", "risk-1", OraclePhase.RATING)
    with pytest.raises(DuplicateRequest):
        correlator.register("req-1", "risk-2", OraclePhase.RATING)


def test_one_outstanding_request_per_risk_and_phase():
    correlator = OracleRequestCorrelator()
    correlator.register("req-1", "risk-1", OraclePhase.RATING)
    with pytest.raises(DuplicateRequest):
        correlator.register("req-2", "risk-1", OraclePhase.RATING)

    # A different phase for the same risk is fine.
    correlator.register("req-3", "risk-1", OraclePhase.STATUS)
    assert correlator.outstanding_for("risk-1", OraclePhase.STATUS) == "req-3"


def test_wrong_phase_does_not_consume_the_mapping():
    correlator = OracleRequestCorrelator()
    correlator.register("req-1", "risk-1", OraclePhase.RATING)

    with pytest.raises(UnknownRequest):
        correlator.resolve("req-1", OraclePhase.STATUS)
    assert correlator.resolve("req-1", OraclePhase.RATING).risk_id == "risk-1"


def test_discard_frees_the_risk_for_a_new_request():
    correlator = OracleRequestCorrelator()
    correlator.register("req-1", "risk-1", OraclePhase.STATUS)
    correlator.discard("req-1")
    assert correlator.outstanding_for("risk-1", OraclePhase.STATUS) is None
    correlator.register("req-2", "risk-1", OraclePhase.STATUS)


def test_cancel_is_not_supported():
    correlator = OracleRequestCorrelator()
    with pytest.raises(NotSupportedError):
        correlator.cancel("req-1")


def test_restore_makes_a_resolved_request_resolvable_again():
    correlator = OracleRequestCorrelator()
    correlator.register("req-1", "risk-1", OraclePhase.STATUS)
    pending = correlator.resolve("req-1", OraclePhase.STATUS)

    correlator.restore(pending)
    assert correlator.outstanding_for("risk-1", OraclePhase.STATUS) == "req-1"
    assert correlator.resolve("req-1", OraclePhase.STATUS) == pending


def test_restore_refuses_to_overwrite_a_newer_registration():
    correlator = OracleRequestCorrelator()
    correlator.register("req-1", "risk-1", OraclePhase.STATUS)
    pending = correlator.resolve("req-1")
    correlator.register("req-2", "risk-1", OraclePhase.STATUS)

    with pytest.raises(DuplicateRequest):
        correlator.restore(pending)
