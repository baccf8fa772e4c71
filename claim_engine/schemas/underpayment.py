"""
Pydantic Schemas for Underpayment Analysis.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from claim_engine.core.enums import ExpectedAmountBasis, UnderpaymentFlagStatus
from claim_engine.schemas.common import CamelModel, CamelORMModel, Percent


class LineVarianceOut(CamelModel):
    line_index: int
    cpt: str
    units: int
    basis: ExpectedAmountBasis
    expected_cents: int
    estimated_paid_cents: int
    variance_cents: int


class UnderpaymentAnalysisResponse(CamelModel):
    claim_id: str
    claim_number: str
    payer_name: Optional[str] = None
    expected_cents: int
    paid_cents: int
    variance_cents: int
    variance_percent: Percent
    contract_percent: Optional[Percent] = None
    threshold_percent: Percent
    is_underpaid: bool
    lines: list[LineVarianceOut]


class UnderpaymentSummary(CamelModel):
    count: int
    total_underpayment_cents: int
    average_variance_percent: Percent


class UnderpaymentListResponse(CamelModel):
    items: list[UnderpaymentAnalysisResponse]
    summary: UnderpaymentSummary


class FlagCreate(CamelModel):
    notes: Optional[str] = Field(None, max_length=2000)


class FlagResolve(CamelModel):
    status: Literal[UnderpaymentFlagStatus.RESOLVED, UnderpaymentFlagStatus.DISMISSED]
    notes: Optional[str] = Field(None, max_length=2000)


class UnderpaymentFlagResponse(CamelORMModel):
    id: str
    claim_id: str
    expected_amount_cents: int
    actual_paid_cents: int
    variance_percent: Percent
    status: UnderpaymentFlagStatus
    notes: Optional[str] = None
    flagged_by: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime
