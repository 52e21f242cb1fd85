from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from delay_cover.api.dependencies import get_product, require_role
from delay_cover.product import DelayCoverProduct

router = APIRouter(prefix="/oracle", dependencies=[Depends(require_role("oracle"))])


class FulfillRequest(BaseModel):
    request_id: str = Field(..., min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict, description="Raw provider result")


@router.post("/rating/fulfill", tags=["Oracle"])
def fulfill_rating(body: FulfillRequest, product: DelayCoverProduct = Depends(get_product)) -> Dict[str, Any]:
    outcome = product.fulfill_rating(body.request_id, body.payload)
    return {
        "success": True,
        "risk_id": outcome.risk_id,
        "accepted": outcome.accepted,
        "status": outcome.status.value,
        "reason": outcome.reason,
        "policy": outcome.policy.to_dict() if outcome.policy else None,
        "status_due_at": outcome.status_due_at,
    }


@router.post("/status/fulfill", tags=["Oracle"])
def fulfill_status(body: FulfillRequest, product: DelayCoverProduct = Depends(get_product)) -> Dict[str, Any]:
    outcome = product.fulfill_status(body.request_id, body.payload)
    return {
        "success": True,
        "risk_id": outcome.risk_id,
        "settled": outcome.settled,
        "status": outcome.status.value,
        "qualifies_for_payout": outcome.qualifies_for_payout,
        "delay_minutes": outcome.delay_minutes,
        "claim_id": outcome.claim_id,
        "payout_id": outcome.payout_id,
        "reason": outcome.reason,
    }
