"""
Denial & Appeal API Endpoints.

Provides:
- Denial assessment (category, recovery likelihood, priority, deadline)
- Appeal submission with template letters
- Appeal outcomes and the payments they post
"""

from fastapi import APIRouter, Depends, status

from claim_engine.api.config import settings
from claim_engine.api.deps import RequestContext, get_appeal_tracker, get_request_context
from claim_engine.schemas.appeal import (
    AppealOutcomeRequest,
    AppealOutcomeResponse,
    AppealResponse,
    AppealSubmit,
    DenialAssessmentResponse,
)
from claim_engine.services.appeal_tracker import APPEAL_TEMPLATES, AppealTracker

router = APIRouter(
    prefix=f"{settings.API_PREFIX}",
    tags=["appeals"],
)


@router.get("/appeal-templates")
async def list_appeal_templates() -> dict[str, str]:
    return dict(APPEAL_TEMPLATES)


@router.get("/claims/{claim_id}/denial-assessment", response_model=DenialAssessmentResponse)
async def assess_denial(
    claim_id: str,
    ctx: RequestContext = Depends(get_request_context),
    tracker: AppealTracker = Depends(get_appeal_tracker),
) -> DenialAssessmentResponse:
    assessment = await tracker.assess_denial(ctx.tenant_id, claim_id)
    return DenialAssessmentResponse(
        claim_id=assessment.claim.id,
        denial_code=assessment.claim.denial_code,
        denial_reason=assessment.claim.denial_reason,
        category=assessment.category,
        recovery_likelihood=assessment.recovery_likelihood,
        priority=assessment.priority,
        amount_at_stake_cents=assessment.amount_at_stake_cents,
        appeal_deadline=assessment.appeal_deadline,
        days_until_deadline=assessment.days_until_deadline,
    )


@router.get("/claims/{claim_id}/appeals", response_model=list[AppealResponse])
async def list_appeals(
    claim_id: str,
    ctx: RequestContext = Depends(get_request_context),
    tracker: AppealTracker = Depends(get_appeal_tracker),
) -> list[AppealResponse]:
    appeals = await tracker.list_appeals(ctx.tenant_id, claim_id)
    return [AppealResponse.model_validate(a) for a in appeals]


@router.post(
    "/claims/{claim_id}/appeals",
    response_model=AppealResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_appeal(
    claim_id: str,
    data: AppealSubmit,
    ctx: RequestContext = Depends(get_request_context),
    tracker: AppealTracker = Depends(get_appeal_tracker),
) -> AppealResponse:
    appeal = await tracker.submit_appeal(ctx.tenant_id, claim_id, ctx.user_id, data)
    return AppealResponse.model_validate(appeal)


@router.post("/claims/{claim_id}/appeal-outcome", response_model=AppealOutcomeResponse)
async def record_appeal_outcome(
    claim_id: str,
    data: AppealOutcomeRequest,
    ctx: RequestContext = Depends(get_request_context),
    tracker: AppealTracker = Depends(get_appeal_tracker),
) -> AppealOutcomeResponse:
    result = await tracker.record_outcome(ctx.tenant_id, claim_id, ctx.user_id, data)
    return AppealOutcomeResponse(
        appeal=AppealResponse.model_validate(result.appeal),
        claim_status=result.claim.status,
        payment_posted_cents=result.payment_posted_cents,
    )
