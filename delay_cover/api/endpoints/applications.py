from datetime import datetime
from typing import Any, Dict, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from delay_cover.api.dependencies import get_product, require_role
from delay_cover.product import DelayCoverProduct

router = APIRouter(dependencies=[Depends(require_role("customer"))])


class ApplicationRequest(BaseModel):
    customer: str = Field(..., min_length=1, description="Applicant identity")
    coverage_tier: str = Field(..., description="basic, standard or premium")
    journey_descriptor: str = Field(..., min_length=1, description="Carrier/flight and departure date, forwarded as-is")
    scheduled_arrival_time: Union[int, datetime] = Field(..., description="Unix seconds or ISO timestamp")

    def arrival_seconds(self) -> int:
        value = self.scheduled_arrival_time
        if isinstance(value, datetime):
            return int(value.timestamp())
        return int(value)


@router.post("/applications", tags=["Applications"], status_code=201)
def submit_application(body: ApplicationRequest, product: DelayCoverProduct = Depends(get_product)) -> Dict[str, Any]:
    risk = product.apply(
        customer=body.customer,
        coverage_tier=body.coverage_tier,
        journey_descriptor=body.journey_descriptor,
        scheduled_arrival_time=body.arrival_seconds(),
    )
    return {"success": True, "risk": risk.to_dict()}


@router.get("/risks/{risk_id}", tags=["Applications"])
def get_risk(risk_id: str, product: DelayCoverProduct = Depends(get_product)) -> Dict[str, Any]:
    return {"success": True, **product.risk_view(risk_id)}
