"""
Underpayment API Endpoints.

Provides:
- Per-claim expected vs paid analysis
- Ranked underpayment report
- Follow-up flags
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from claim_engine.api.config import settings
from claim_engine.api.deps import RequestContext, get_request_context, get_underpayment_analyzer
from claim_engine.core.enums import UnderpaymentFlagStatus
from claim_engine.schemas.underpayment import (
    FlagCreate,
    FlagResolve,
    LineVarianceOut,
    UnderpaymentAnalysisResponse,
    UnderpaymentFlagResponse,
    UnderpaymentListResponse,
    UnderpaymentSummary,
)
from claim_engine.services.underpayment_analyzer import ClaimVarianceReport, UnderpaymentAnalyzer

router = APIRouter(
    prefix=f"{settings.API_PREFIX}",
    tags=["underpayments"],
)


def _analysis_response(report: ClaimVarianceReport) -> UnderpaymentAnalysisResponse:
    variance = report.variance
    return UnderpaymentAnalysisResponse(
        claim_id=report.claim.id,
        claim_number=report.claim.claim_number,
        payer_name=report.claim.payer_name,
        expected_cents=variance.expected_cents,
        paid_cents=variance.paid_cents,
        variance_cents=variance.variance_cents,
        variance_percent=variance.variance_percent,
        contract_percent=variance.contract_percent,
        threshold_percent=variance.threshold_percent,
        is_underpaid=variance.is_underpaid,
        lines=[
            LineVarianceOut(
                line_index=line.line_index,
                cpt=line.cpt,
                units=line.units,
                basis=line.basis,
                expected_cents=line.expected_cents,
                estimated_paid_cents=line.estimated_paid_cents,
                variance_cents=line.variance_cents,
            )
            for line in variance.lines
        ],
    )


@router.get("/underpayments", response_model=UnderpaymentListResponse)
async def list_underpayments(
    limit: Optional[int] = Query(None, ge=1, le=1000),
    ctx: RequestContext = Depends(get_request_context),
    analyzer: UnderpaymentAnalyzer = Depends(get_underpayment_analyzer),
) -> UnderpaymentListResponse:
    report = await analyzer.list_underpayments(ctx.tenant_id, limit=limit)
    return UnderpaymentListResponse(
        items=[_analysis_response(item) for item in report.items],
        summary=UnderpaymentSummary(
            count=report.count,
            total_underpayment_cents=report.total_underpayment_cents,
            average_variance_percent=report.average_variance_percent,
        ),
    )


@router.get("/claims/{claim_id}/underpayment", response_model=UnderpaymentAnalysisResponse)
async def analyze_claim(
    claim_id: str,
    ctx: RequestContext = Depends(get_request_context),
    analyzer: UnderpaymentAnalyzer = Depends(get_underpayment_analyzer),
) -> UnderpaymentAnalysisResponse:
    report = await analyzer.analyze_claim(ctx.tenant_id, claim_id)
    return _analysis_response(report)


@router.post(
    "/claims/{claim_id}/underpayment-flag",
    response_model=UnderpaymentFlagResponse,
    status_code=status.HTTP_201_CREATED,
)
async def flag_underpayment(
    claim_id: str,
    data: Optional[FlagCreate] = None,
    ctx: RequestContext = Depends(get_request_context),
    analyzer: UnderpaymentAnalyzer = Depends(get_underpayment_analyzer),
) -> UnderpaymentFlagResponse:
    flag = await analyzer.flag_underpayment(
        ctx.tenant_id, claim_id, ctx.user_id, notes=data.notes if data else None
    )
    return UnderpaymentFlagResponse.model_validate(flag)


@router.get("/underpayments/flags", response_model=list[UnderpaymentFlagResponse])
async def list_flags(
    status_filter: Optional[UnderpaymentFlagStatus] = Query(None, alias="status"),
    ctx: RequestContext = Depends(get_request_context),
    analyzer: UnderpaymentAnalyzer = Depends(get_underpayment_analyzer),
) -> list[UnderpaymentFlagResponse]:
    flags = await analyzer.list_flags(ctx.tenant_id, status=status_filter)
    return [UnderpaymentFlagResponse.model_validate(f) for f in flags]


@router.patch("/underpayments/flags/{flag_id}", response_model=UnderpaymentFlagResponse)
async def resolve_flag(
    flag_id: str,
    data: FlagResolve,
    ctx: RequestContext = Depends(get_request_context),
    analyzer: UnderpaymentAnalyzer = Depends(get_underpayment_analyzer),
) -> UnderpaymentFlagResponse:
    flag = await analyzer.resolve_flag(ctx.tenant_id, flag_id, ctx.user_id, data.status, data.notes)
    return UnderpaymentFlagResponse.model_validate(flag)
