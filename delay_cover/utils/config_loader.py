"""
Product configuration loader (scheduling, settlement thresholds, tier premiums).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from delay_cover.core.models import CoverageTier

logger = logging.getLogger(__name__)


class SchedulingConfig(BaseModel):
    poll_interval_seconds: int = Field(default=3600, gt=0)
    monitoring_offset_seconds: int = Field(default=12 * 3600, ge=0)


class SettlementConfig(BaseModel):
    payout_threshold_minutes: int = Field(default=60, ge=1)


class ProductConfig(BaseModel):
    currency: str = "DAI"
    scheduling: SchedulingConfig = Field(default_factory=SchedulingConfig)
    settlement: SettlementConfig = Field(default_factory=SettlementConfig)
    tiers: Dict[str, int] = Field(default_factory=lambda: {"basic": 3, "standard": 5, "premium": 10})

    @field_validator("tiers")
    @classmethod
    def _known_tiers_with_positive_premiums(cls, value: Dict[str, int]) -> Dict[str, int]:
        for name, premium in value.items():
            if CoverageTier.parse(name) is None:
                raise ValueError(f"unknown coverage tier '{name}'")
            if premium <= 0:
                raise ValueError(f"premium for tier '{name}' must be > 0")
        return value

    def tier_premiums(self) -> Dict[CoverageTier, int]:
        return {CoverageTier.parse(name): int(premium) for name, premium in self.tiers.items()}


def default_config_path() -> Path:
    override = os.getenv("DELAY_COVER_CONFIG")
    if override:
        return Path(override)
    return Path(__file__).parent.parent.parent / "config" / "delay_cover_config.yml"


def load_product_config(config_path: Optional[Path] = None) -> ProductConfig:
    """
    Load and validate product configuration from a YAML file

    Args:
        config_path: Path to config file. Defaults to $DELAY_COVER_CONFIG or
            config/delay_cover_config.yml

    Returns:
        Validated ProductConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValidationError: If config doesn't match schema
    """
    if config_path is None:
        config_path = default_config_path()

    if not config_path.exists():
        raise FileNotFoundError(f"Product config file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    try:
        cfg = ProductConfig(**data)
        logger.info("Successfully loaded product config from %s", config_path)
        return cfg
    except ValidationError as e:
        logger.error("Product config validation failed: %s", e)
        raise
