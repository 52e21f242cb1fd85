"""
Oracle response contracts.

Defines the fulfillment payloads for both oracle phases:
- rating: (status, payout_amount)
- status: (status, delay_minutes)

Providers are not consistent about field names or casing, so raw payloads go
through normalize_rating_response / normalize_status_response before the phase
handlers see them.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError


class IntegrationResponseError(ValueError):
    def __init__(self, message: str, *, payload: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.payload = payload or {}


class RatingStatus(str, Enum):
    OK = "OK"
    EXCLUDED_SERVICE = "EXCLUDED_SERVICE"
    OUT_OF_TIMEFRAME = "OUT_OF_TIMEFRAME"
    PROBABILITY_TOO_HIGH = "PROBABILITY_TOO_HIGH"
    PROVIDER_ERROR = "PROVIDER_ERROR"


class StatusResult(str, Enum):
    OK = "OK"
    MISSING_DELAY_DATA = "MISSING_DELAY_DATA"
    PROVIDER_ERROR = "PROVIDER_ERROR"


RATING_REJECTION_REASONS = {
    RatingStatus.EXCLUDED_SERVICE: "Route or carrier is excluded from cover.",
    RatingStatus.OUT_OF_TIMEFRAME: "Departure is outside the bookable timeframe.",
    RatingStatus.PROBABILITY_TOO_HIGH: "Delay probability is too high to underwrite.",
    RatingStatus.PROVIDER_ERROR: "Rating provider reported an error.",
}

STATUS_ABORT_REASONS = {
    StatusResult.MISSING_DELAY_DATA: "Status provider has no delay data for the journey.",
    StatusResult.PROVIDER_ERROR: "Status provider reported an error.",
}


class RatingResponse(BaseModel):
    status: RatingStatus
    payout_amount: int = Field(default=0, ge=0)
    raw: Dict[str, Any] = Field(default_factory=dict)


class StatusResponse(BaseModel):
    status: StatusResult
    delay_minutes: int = Field(default=0, ge=0)
    raw: Dict[str, Any] = Field(default_factory=dict)


def normalize_rating_response(raw: Dict[str, Any]) -> RatingResponse:
    status = _map_status(
        _first_non_empty(raw, "status", "rating_status", "result", "error"),
        RatingStatus,
        {
            "SUCCESS": RatingStatus.OK,
            "EXCLUDED": RatingStatus.EXCLUDED_SERVICE,
            "OUT_OF_TIME": RatingStatus.OUT_OF_TIMEFRAME,
            "ERROR": RatingStatus.PROVIDER_ERROR,
        },
        raw,
    )
    if status != RatingStatus.OK:
        return _build_model(RatingResponse, {"status": status, "payout_amount": 0, "raw": raw}, raw)

    payout = _coerce_positive_int(
        _first_non_empty(raw, "payout_amount", "payoutAmount", "payout", "value"),
        "rating payout amount",
        raw,
    )
    return _build_model(RatingResponse, {"status": status, "payout_amount": payout, "raw": raw}, raw)


def normalize_status_response(raw: Dict[str, Any]) -> StatusResponse:
    status = _map_status(
        _first_non_empty(raw, "status", "status_result", "result", "error"),
        StatusResult,
        {
            "SUCCESS": StatusResult.OK,
            "MISSING_DATA": StatusResult.MISSING_DELAY_DATA,
            "NO_DATA": StatusResult.MISSING_DELAY_DATA,
            "ERROR": StatusResult.PROVIDER_ERROR,
        },
        raw,
    )
    if status != StatusResult.OK:
        return _build_model(StatusResponse, {"status": status, "delay_minutes": 0, "raw": raw}, raw)

    delay = _first_non_empty(raw, "delay_minutes", "delayMinutes", "delay", "value")
    try:
        delay_minutes = int(delay)
    except (TypeError, ValueError) as exc:
        raise IntegrationResponseError(f"Invalid delay minutes: {delay!r}", payload=raw) from exc
    if delay_minutes < 0:
        # Early arrivals are reported as negative delays.
        delay_minutes = 0
    return _build_model(StatusResponse, {"status": status, "delay_minutes": delay_minutes, "raw": raw}, raw)


def _first_non_empty(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    if default is not None:
        return default
    raise IntegrationResponseError(f"Missing required field. Checked keys: {', '.join(keys)}", payload=data)


def _map_status(raw_status: Any, enum_type, aliases: Dict[str, Any], raw: Dict[str, Any]):
    value = str(raw_status or "").strip().upper().replace("-", "_").replace(" ", "_")
    if value in aliases:
        return aliases[value]
    try:
        return enum_type(value)
    except ValueError as exc:
        raise IntegrationResponseError(f"Unsupported oracle status '{value}'.", payload=raw) from exc


def _coerce_positive_int(value: Any, label: str, raw: Dict[str, Any]) -> int:
    try:
        amount = int(value)
    except (TypeError, ValueError) as exc:
        raise IntegrationResponseError(f"Invalid {label}: {value!r}", payload=raw) from exc
    if amount <= 0:
        raise IntegrationResponseError(f"{label.capitalize()} must be > 0; got {amount}.", payload=raw)
    return amount


def _build_model(model_type, payload: Dict[str, Any], raw: Dict[str, Any]):
    try:
        return model_type(**payload)
    except ValidationError as exc:
        raise IntegrationResponseError(f"Response validation failed: {exc}", payload=raw) from exc
