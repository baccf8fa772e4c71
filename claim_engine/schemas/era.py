"""
Pydantic Schemas for ERA (electronic remittance advice) import.

The import request carries raw record dicts; each record is validated on
its own by the reconciler so one malformed record cannot reject the batch.
"""

from datetime import date, datetime
from typing import Any, Optional

from pydantic import Field, field_validator, model_validator

from claim_engine.core.enums import EraBatchStatus
from claim_engine.schemas.common import CamelModel, CamelORMModel, Money


class EraAdjustment(CamelModel):
    code: str = Field(..., min_length=1, max_length=20, description="CARC group/reason code, e.g. CO-45")
    reason: Optional[str] = Field(None, max_length=500)
    amount_cents: int


class EraClaimRecord(CamelModel):
    """One remittance line for one claim."""

    claim_number: Optional[str] = Field(None, max_length=50)
    claim_id: Optional[str] = Field(None, max_length=36)
    patient_name: Optional[str] = Field(None, max_length=200)
    service_date: Optional[date] = None
    paid_amount_cents: int = Field(..., ge=0)
    payment_date: Optional[date] = None
    payer_name: Optional[str] = Field(None, max_length=200)
    check_number: Optional[str] = Field(None, max_length=50)
    denial_code: Optional[str] = Field(None, max_length=20)
    denial_reason: Optional[str] = Field(None, max_length=2000)
    patient_responsibility_cents: Optional[int] = Field(None, ge=0)
    adjustments: list[EraAdjustment] = Field(default_factory=list)

    @field_validator("claim_number", "claim_id", "patient_name", "denial_code")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @model_validator(mode="after")
    def require_identifier(self) -> "EraClaimRecord":
        if not (self.claim_id or self.claim_number or self.patient_name):
            raise ValueError("claimId, claimNumber or patientName is required")
        return self

    @property
    def adjustment_cents(self) -> int:
        return sum(adj.amount_cents for adj in self.adjustments)


class EraImportRequest(CamelModel):
    filename: Optional[str] = Field(None, max_length=255)
    claims: list[dict[str, Any]] = Field(default_factory=list)


class EraSummary(CamelModel):
    total_claims: int = 0
    matched: int = 0
    auto_posted: int = 0
    unmatched: int = 0
    denied: int = 0
    partial_payments: int = 0
    total_paid: Money
    total_adjustments: Money


class EraImportResponse(CamelModel):
    era_id: str
    filename: str
    summary: EraSummary
    matched_claims: list[dict[str, Any]]
    unmatched_claims: list[dict[str, Any]]
    errors: Optional[list[dict[str, Any]]] = None


class EraBatchResponse(CamelORMModel):
    id: str
    filename: Optional[str] = None
    claim_count: int
    status: EraBatchStatus
    matched: int
    auto_posted: int
    unmatched: int
    denied: int
    partial_payments: int
    errored: int
    total_paid_cents: int
    total_adjustment_cents: int
    imported_by: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
