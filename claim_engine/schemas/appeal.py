"""
Pydantic Schemas for Appeals and Denial Assessment.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import Field

from claim_engine.core.enums import (
    AppealLevel,
    AppealOutcome,
    AppealStatus,
    ClaimStatus,
    DenialCategory,
    RecoveryLikelihood,
    WorkPriority,
)
from claim_engine.schemas.common import CamelModel, CamelORMModel


class AppealSubmit(CamelModel):
    """Schema for submitting an appeal on a denied claim."""

    appeal_level: Optional[AppealLevel] = Field(None, description="Defaults to the next level")
    appeal_deadline: Optional[date] = Field(None, description="Defaults to denial date + filing window")
    template_used: Optional[str] = Field(None, max_length=100, description="Built-in letter template name")
    template_text: Optional[str] = Field(None, max_length=20000, description="Custom letter with [PLACEHOLDER] tokens")
    template_values: dict[str, str] = Field(default_factory=dict)
    appeal_letter: Optional[str] = Field(None, max_length=20000)
    notes: Optional[str] = Field(None, max_length=2000)


class AppealOutcomeRequest(CamelModel):
    outcome: AppealOutcome
    approved_amount_cents: Optional[int] = Field(None, gt=0)
    decision_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=2000)


class AppealResponse(CamelORMModel):
    id: str
    claim_id: str
    appeal_level: AppealLevel
    appeal_status: AppealStatus
    template_used: Optional[str] = None
    appeal_letter: Optional[str] = None
    appeal_deadline: date
    outcome: Optional[str] = None
    approved_amount_cents: Optional[int] = None
    decision_date: Optional[date] = None
    notes: Optional[str] = None
    submitted_by: Optional[str] = None
    created_at: datetime


class AppealOutcomeResponse(CamelModel):
    appeal: AppealResponse
    claim_status: ClaimStatus
    payment_posted_cents: Optional[int] = None


class DenialAssessmentResponse(CamelModel):
    claim_id: str
    denial_code: Optional[str] = None
    denial_reason: Optional[str] = None
    category: DenialCategory
    recovery_likelihood: RecoveryLikelihood
    priority: WorkPriority
    amount_at_stake_cents: int
    appeal_deadline: date
    days_until_deadline: int
