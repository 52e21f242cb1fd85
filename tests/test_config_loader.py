import pytest
from pydantic import ValidationError

from delay_cover.core.models import CoverageTier
from delay_cover.utils.config_loader import ProductConfig, load_product_config


def test_repository_config_loads_with_defaults():
    cfg = load_product_config()
    assert cfg.currency == "DAI"
    assert cfg.scheduling.poll_interval_seconds == 3600
    assert cfg.scheduling.monitoring_offset_seconds == 43200
    assert cfg.settlement.payout_threshold_minutes == 60
    assert cfg.tier_premiums() == {CoverageTier.BASIC: 3, CoverageTier.STANDARD: 5, CoverageTier.PREMIUM: 10}


def test_env_override_points_at_another_file(tmp_path, monkeypatch):
    path = tmp_path / "cover.yml"
    path.write_text("scheduling:\n  poll_interval_seconds: 900\ntiers:\n  basic: 7\n", encoding="utf-8")
    monkeypatch.setenv("DELAY_COVER_CONFIG", str(path))

    cfg = load_product_config()
    assert cfg.scheduling.poll_interval_seconds == 900
    assert cfg.scheduling.monitoring_offset_seconds == 43200
    assert cfg.tier_premiums() == {CoverageTier.BASIC: 7}


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_product_config(tmp_path / "nope.yml")


@pytest.mark.parametrize(
    "data",
    [
        {"tiers": {"gold": 5}},
        {"tiers": {"basic": 0}},
        {"scheduling": {"poll_interval_seconds": 0}},
        {"settlement": {"payout_threshold_minutes": 0}},
    ],
)
def test_invalid_config_is_rejected(data):
    with pytest.raises(ValidationError):
        ProductConfig(**data)
