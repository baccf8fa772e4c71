"""
ERA Import API Endpoints.

Remittance batches are posted as JSON; each record is reconciled on its
own and failures come back in the batch summary.
"""

from fastapi import APIRouter, Depends, Query, status

from claim_engine.api.config import settings
from claim_engine.api.deps import RequestContext, get_era_reconciler, get_request_context
from claim_engine.schemas.era import EraBatchResponse, EraImportRequest, EraImportResponse
from claim_engine.services.era_reconciler import EraReconciler

router = APIRouter(
    prefix=f"{settings.API_PREFIX}/era",
    tags=["era"],
)


@router.post("/import", response_model=EraImportResponse, status_code=status.HTTP_201_CREATED)
async def import_era(
    data: EraImportRequest,
    ctx: RequestContext = Depends(get_request_context),
    reconciler: EraReconciler = Depends(get_era_reconciler),
) -> EraImportResponse:
    return await reconciler.import_batch(ctx.tenant_id, ctx.user_id, data)


@router.get("/batches", response_model=list[EraBatchResponse])
async def list_batches(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ctx: RequestContext = Depends(get_request_context),
    reconciler: EraReconciler = Depends(get_era_reconciler),
) -> list[EraBatchResponse]:
    batches = await reconciler.list_batches(ctx.tenant_id, limit=limit, offset=offset)
    return [EraBatchResponse.model_validate(b) for b in batches]


@router.get("/batches/{batch_id}", response_model=EraBatchResponse)
async def get_batch(
    batch_id: str,
    ctx: RequestContext = Depends(get_request_context),
    reconciler: EraReconciler = Depends(get_era_reconciler),
) -> EraBatchResponse:
    batch = await reconciler.get_batch(ctx.tenant_id, batch_id)
    return EraBatchResponse.model_validate(batch)
