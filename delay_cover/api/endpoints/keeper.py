from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from delay_cover.api.dependencies import get_product, require_role
from delay_cover.product import DelayCoverProduct

# The server clock decides what is due; callers cannot supply the current time.
router = APIRouter(prefix="/keeper", dependencies=[Depends(require_role("keeper"))])
stats_router = APIRouter(dependencies=[Depends(require_role("keeper"))])


class ExecuteRequest(BaseModel):
    bucket: int


@router.get("/due", tags=["Keeper"])
def due(product: DelayCoverProduct = Depends(get_product)) -> Dict[str, Any]:
    work = product.due_now()
    return {"due": work.is_due, "bucket": work.bucket, "risk_ids": work.risk_ids}


@router.get("/backlog", tags=["Keeper"])
def backlog(product: DelayCoverProduct = Depends(get_product)) -> Dict[str, Any]:
    return {"buckets": product.backlog()}


@router.post("/execute", tags=["Keeper"])
def execute(body: ExecuteRequest, product: DelayCoverProduct = Depends(get_product)) -> Dict[str, Any]:
    report = product.execute_due(body.bucket)
    return {
        "bucket": report.bucket,
        "dispatched": report.dispatched,
        "skipped": report.skipped,
        "consumed": report.consumed,
    }


@stats_router.get("/stats", tags=["Operations"])
def stats(product: DelayCoverProduct = Depends(get_product)) -> Dict[str, Any]:
    return product.stats()
