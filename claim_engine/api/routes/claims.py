"""
Claims API Endpoints.

Provides:
- Claim creation, lookup and filtered listing
- Line item management
- Scrubbing, passed checks and modifier suggestions
- Submission, bulk submission and status transitions
- Payments and status history
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from claim_engine.api.config import settings
from claim_engine.api.deps import RequestContext, get_claims_service, get_request_context
from claim_engine.core.enums import ClaimStatus, ScrubStatus
from claim_engine.schemas.claim import (
    BulkSubmitFailure,
    BulkSubmitRequest,
    BulkSubmitResponse,
    ClaimCreate,
    ClaimListResponse,
    ClaimResponse,
    DenyRequest,
    LineItemIn,
    LineItemsReplace,
    ModifierSuggestionsResponse,
    PassedChecksResponse,
    PaymentCreate,
    PaymentResponse,
    ScrubCheckOut,
    ScrubRequest,
    ScrubResponse,
    StatusHistoryResponse,
    StatusUpdate,
)
from claim_engine.services.claim_scrubber import SCRUB_CHECKS
from claim_engine.services.claims_service import ClaimFilters, ClaimsService
from claim_engine.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(
    prefix=f"{settings.API_PREFIX}/claims",
    tags=["claims"],
)


# =============================================================================
# CRUD
# =============================================================================


@router.post("", response_model=ClaimResponse, status_code=status.HTTP_201_CREATED)
async def create_claim(
    data: ClaimCreate,
    ctx: RequestContext = Depends(get_request_context),
    service: ClaimsService = Depends(get_claims_service),
) -> ClaimResponse:
    claim = await service.create_claim(ctx.tenant_id, ctx.user_id, data)
    return ClaimResponse.from_claim(claim)


@router.get("", response_model=ClaimListResponse)
async def list_claims(
    status_filter: Optional[list[ClaimStatus]] = Query(None, alias="status"),
    patient_id: Optional[str] = Query(None, alias="patientId"),
    payer_id: Optional[str] = Query(None, alias="payerId"),
    scrub_status: Optional[ScrubStatus] = Query(None, alias="scrubStatus"),
    claim_number: Optional[str] = Query(None, alias="claimNumber"),
    service_date_from: Optional[date] = Query(None, alias="serviceDateFrom"),
    service_date_to: Optional[date] = Query(None, alias="serviceDateTo"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ctx: RequestContext = Depends(get_request_context),
    service: ClaimsService = Depends(get_claims_service),
) -> ClaimListResponse:
    filters = ClaimFilters(
        statuses=status_filter,
        patient_id=patient_id,
        payer_id=payer_id,
        scrub_status=scrub_status,
        claim_number=claim_number,
        service_date_from=service_date_from,
        service_date_to=service_date_to,
        limit=limit,
        offset=offset,
    )
    claims, total = await service.list_claims(ctx.tenant_id, filters)
    return ClaimListResponse(
        items=[ClaimResponse.from_claim(c) for c in claims],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{claim_id}", response_model=ClaimResponse)
async def get_claim(
    claim_id: str,
    ctx: RequestContext = Depends(get_request_context),
    service: ClaimsService = Depends(get_claims_service),
) -> ClaimResponse:
    claim = await service.get_claim(ctx.tenant_id, claim_id)
    return ClaimResponse.from_claim(claim)


# =============================================================================
# Line Items
# =============================================================================


@router.put("/{claim_id}/line-items", response_model=ClaimResponse)
async def replace_line_items(
    claim_id: str,
    data: LineItemsReplace,
    ctx: RequestContext = Depends(get_request_context),
    service: ClaimsService = Depends(get_claims_service),
) -> ClaimResponse:
    claim = await service.replace_line_items(
        ctx.tenant_id, claim_id, ctx.user_id, [item.to_line_item() for item in data.line_items]
    )
    return ClaimResponse.from_claim(claim)


@router.post("/{claim_id}/line-items", response_model=ClaimResponse, status_code=status.HTTP_201_CREATED)
async def add_line_item(
    claim_id: str,
    data: LineItemIn,
    ctx: RequestContext = Depends(get_request_context),
    service: ClaimsService = Depends(get_claims_service),
) -> ClaimResponse:
    claim = await service.add_line_item(ctx.tenant_id, claim_id, ctx.user_id, data.to_line_item())
    return ClaimResponse.from_claim(claim)


@router.delete("/{claim_id}/line-items/{line_index}", response_model=ClaimResponse)
async def remove_line_item(
    claim_id: str,
    line_index: int,
    ctx: RequestContext = Depends(get_request_context),
    service: ClaimsService = Depends(get_claims_service),
) -> ClaimResponse:
    claim = await service.remove_line_item(ctx.tenant_id, claim_id, ctx.user_id, line_index)
    return ClaimResponse.from_claim(claim)


# =============================================================================
# Scrubbing
# =============================================================================


@router.post("/{claim_id}/scrub", response_model=ScrubResponse)
async def scrub_claim(
    claim_id: str,
    data: Optional[ScrubRequest] = None,
    ctx: RequestContext = Depends(get_request_context),
    service: ClaimsService = Depends(get_claims_service),
) -> ScrubResponse:
    auto_fix = data.auto_fix if data else False
    outcome = await service.scrub_claim(ctx.tenant_id, claim_id, ctx.user_id, auto_fix=auto_fix)
    result = outcome.result
    return ScrubResponse(
        claim_id=outcome.claim.id,
        claim_status=outcome.claim.status,
        status=result.status,
        errors=[issue.to_dict() for issue in result.errors],
        warnings=[issue.to_dict() for issue in result.warnings],
        info=[issue.to_dict() for issue in result.info],
        auto_fixed=[issue.to_dict() for issue in outcome.applied],
        fix_passes=outcome.passes,
    )


@router.get("/{claim_id}/passed-checks", response_model=PassedChecksResponse)
async def get_passed_checks(
    claim_id: str,
    ctx: RequestContext = Depends(get_request_context),
    service: ClaimsService = Depends(get_claims_service),
) -> PassedChecksResponse:
    claim, checks = await service.get_passed_checks(ctx.tenant_id, claim_id)
    return PassedChecksResponse(
        claim_id=claim.id,
        scrub_status=claim.scrub_status,
        passed=[ScrubCheckOut(**check.to_dict()) for check in checks],
        total_checks=len(SCRUB_CHECKS),
    )


@router.get("/{claim_id}/modifier-suggestions", response_model=ModifierSuggestionsResponse)
async def suggest_modifiers(
    claim_id: str,
    ctx: RequestContext = Depends(get_request_context),
    service: ClaimsService = Depends(get_claims_service),
) -> ModifierSuggestionsResponse:
    suggestions = await service.suggest_modifiers(ctx.tenant_id, claim_id)
    return ModifierSuggestionsResponse(
        claim_id=claim_id,
        suggestions=[s.to_dict() for s in suggestions],
    )


# =============================================================================
# Submission & Status
# =============================================================================


@router.post("/bulk-submit", response_model=BulkSubmitResponse)
async def bulk_submit(
    data: BulkSubmitRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: ClaimsService = Depends(get_claims_service),
) -> BulkSubmitResponse:
    result = await service.bulk_submit(ctx.tenant_id, data.claim_ids, ctx.user_id)
    return BulkSubmitResponse(
        total=result.total,
        submitted=result.successes,
        failed=[
            BulkSubmitFailure(claim_id=failure.item, error=failure.error.message)
            for failure in result.failures
        ],
    )


@router.post("/{claim_id}/submit", response_model=ClaimResponse)
async def submit_claim(
    claim_id: str,
    ctx: RequestContext = Depends(get_request_context),
    service: ClaimsService = Depends(get_claims_service),
) -> ClaimResponse:
    claim = await service.submit_claim(ctx.tenant_id, claim_id, ctx.user_id)
    return ClaimResponse.from_claim(claim)


@router.patch("/{claim_id}/status", response_model=ClaimResponse)
async def update_status(
    claim_id: str,
    data: StatusUpdate,
    ctx: RequestContext = Depends(get_request_context),
    service: ClaimsService = Depends(get_claims_service),
) -> ClaimResponse:
    claim = await service.update_status(ctx.tenant_id, claim_id, ctx.user_id, data.status, data.notes)
    return ClaimResponse.from_claim(claim)


@router.post("/{claim_id}/deny", response_model=ClaimResponse)
async def deny_claim(
    claim_id: str,
    data: DenyRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: ClaimsService = Depends(get_claims_service),
) -> ClaimResponse:
    claim = await service.deny_claim(
        ctx.tenant_id,
        claim_id,
        ctx.user_id,
        denial_reason=data.denial_reason,
        denial_code=data.denial_code,
        denial_date=data.denial_date,
    )
    return ClaimResponse.from_claim(claim)


# =============================================================================
# Payments & History
# =============================================================================


@router.post("/{claim_id}/payments", response_model=ClaimResponse, status_code=status.HTTP_201_CREATED)
async def post_payment(
    claim_id: str,
    data: PaymentCreate,
    ctx: RequestContext = Depends(get_request_context),
    service: ClaimsService = Depends(get_claims_service),
) -> ClaimResponse:
    _, claim = await service.post_payment(ctx.tenant_id, claim_id, ctx.user_id, data)
    return ClaimResponse.from_claim(claim)


@router.get("/{claim_id}/payments", response_model=list[PaymentResponse])
async def list_payments(
    claim_id: str,
    ctx: RequestContext = Depends(get_request_context),
    service: ClaimsService = Depends(get_claims_service),
) -> list[PaymentResponse]:
    payments = await service.list_payments(ctx.tenant_id, claim_id)
    return [PaymentResponse.model_validate(p) for p in payments]


@router.get("/{claim_id}/history", response_model=list[StatusHistoryResponse])
async def get_status_history(
    claim_id: str,
    ctx: RequestContext = Depends(get_request_context),
    service: ClaimsService = Depends(get_claims_service),
) -> list[StatusHistoryResponse]:
    history = await service.get_status_history(ctx.tenant_id, claim_id)
    return [StatusHistoryResponse.model_validate(h) for h in history]
