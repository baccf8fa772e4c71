"""
Pydantic Schemas for Claims.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import Field, field_validator

from claim_engine.core.enums import (
    AppealStatus,
    ClaimStatus,
    DenialCategory,
    HistorySource,
    PaymentMethod,
    ScrubStatus,
)
from claim_engine.models.claim import Claim
from claim_engine.schemas.common import CamelModel, CamelORMModel, Money
from claim_engine.services.claim_records import LineItem, line_items_from_claim


def _normalize_codes(values: list[str]) -> list[str]:
    return [v.strip().upper() for v in values if v and v.strip()]


# =============================================================================
# Line Item Schemas
# =============================================================================


class LineItemIn(CamelModel):
    """Billed service line as submitted by a caller."""

    cpt: str = Field(..., min_length=1, max_length=10, description="CPT/HCPCS code")
    modifiers: list[str] = Field(default_factory=list, description="Modifiers, e.g. 25, 59, RT")
    dx: list[str] = Field(default_factory=list, description="ICD-10 diagnosis pointers")
    units: int = Field(default=1, gt=0, description="Service units")
    charge: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2, description="Charge per unit")
    description: Optional[str] = Field(None, max_length=500)

    @field_validator("cpt")
    @classmethod
    def strip_cpt(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("modifiers", "dx")
    @classmethod
    def normalize_codes(cls, v: list[str]) -> list[str]:
        return _normalize_codes(v)

    def to_line_item(self) -> LineItem:
        return LineItem(
            cpt=self.cpt,
            units=self.units,
            charge=self.charge,
            modifiers=tuple(self.modifiers),
            dx=tuple(self.dx),
            description=self.description,
        )


class LineItemOut(CamelModel):
    cpt: str
    modifiers: list[str]
    dx: list[str]
    units: int
    charge: Money
    description: Optional[str] = None

    @classmethod
    def from_line_item(cls, item: LineItem) -> "LineItemOut":
        return cls(
            cpt=item.cpt,
            modifiers=list(item.modifiers),
            dx=list(item.dx),
            units=item.units,
            charge=item.charge,
            description=item.description,
        )


class LineItemsReplace(CamelModel):
    line_items: list[LineItemIn] = Field(..., max_length=100)


# =============================================================================
# Claim Request Schemas
# =============================================================================


class ClaimCreate(CamelModel):
    """Schema for creating a claim from encounter charges."""

    patient_id: str = Field(..., min_length=1, max_length=36)
    encounter_id: Optional[str] = Field(None, max_length=36)
    payer_id: Optional[str] = Field(None, max_length=50)
    payer_name: Optional[str] = Field(None, max_length=200)
    service_date: date
    diagnoses: list[str] = Field(default_factory=list, description="Claim ICD-10 codes; first is primary")
    line_items: list[LineItemIn] = Field(default_factory=list, max_length=100)
    is_cosmetic: bool = False
    cosmetic_reason: Optional[str] = Field(None, max_length=1000)

    @field_validator("diagnoses")
    @classmethod
    def normalize_diagnoses(cls, v: list[str]) -> list[str]:
        return _normalize_codes(v)


class ScrubRequest(CamelModel):
    auto_fix: bool = False


class StatusUpdate(CamelModel):
    status: ClaimStatus
    notes: Optional[str] = Field(None, max_length=2000)


class DenyRequest(CamelModel):
    denial_reason: str = Field(..., min_length=1, max_length=2000)
    denial_code: Optional[str] = Field(None, max_length=20)
    denial_date: Optional[date] = None


class PaymentCreate(CamelModel):
    amount_cents: int = Field(..., gt=0)
    payment_date: Optional[date] = None
    payment_method: str = Field(default=PaymentMethod.MANUAL.value, max_length=50)
    payer: Optional[str] = Field(None, max_length=200)
    check_number: Optional[str] = Field(None, max_length=50)


class BulkSubmitRequest(CamelModel):
    claim_ids: list[str] = Field(..., min_length=1, max_length=500)


# =============================================================================
# Claim Response Schemas
# =============================================================================


class ClaimResponse(CamelModel):
    """Claim as returned by the API."""

    id: str
    claim_number: str
    encounter_id: Optional[str] = None
    patient_id: str
    total_charges: Money
    paid_amount: Money
    patient_responsibility: Optional[Money] = None
    status: ClaimStatus
    payer: Optional[str] = None
    payer_id: Optional[str] = None
    payer_name: Optional[str] = None
    service_date: Optional[date] = None
    diagnoses: list[str] = Field(default_factory=list)
    line_items: list[LineItemOut] = Field(default_factory=list)
    scrub_status: Optional[ScrubStatus] = None
    scrub_errors: list[dict[str, Any]] = Field(default_factory=list)
    scrub_warnings: list[dict[str, Any]] = Field(default_factory=list)
    scrub_info: list[dict[str, Any]] = Field(default_factory=list)
    last_scrubbed_at: Optional[datetime] = None
    is_cosmetic: bool = False
    cosmetic_reason: Optional[str] = None
    denial_reason: Optional[str] = None
    denial_code: Optional[str] = None
    denial_date: Optional[date] = None
    denial_category: Optional[DenialCategory] = None
    appeal_status: Optional[AppealStatus] = None
    appeal_notes: Optional[str] = None
    appeal_submitted_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_claim(cls, claim: Claim) -> "ClaimResponse":
        return cls(
            id=claim.id,
            claim_number=claim.claim_number,
            encounter_id=claim.encounter_id,
            patient_id=claim.patient_id,
            total_charges=claim.total_charges,
            paid_amount=claim.paid_amount,
            patient_responsibility=claim.patient_responsibility,
            status=claim.status,
            payer=claim.payer_name,
            payer_id=claim.payer_id,
            payer_name=claim.payer_name,
            service_date=claim.service_date,
            diagnoses=list(claim.diagnoses or []),
            line_items=[LineItemOut.from_line_item(item) for item in line_items_from_claim(claim)],
            scrub_status=claim.scrub_status,
            scrub_errors=list(claim.scrub_errors or []),
            scrub_warnings=list(claim.scrub_warnings or []),
            scrub_info=list(claim.scrub_info or []),
            last_scrubbed_at=claim.last_scrubbed_at,
            is_cosmetic=claim.is_cosmetic,
            cosmetic_reason=claim.cosmetic_reason,
            denial_reason=claim.denial_reason,
            denial_code=claim.denial_code,
            denial_date=claim.denial_date,
            denial_category=claim.denial_category,
            appeal_status=claim.appeal_status,
            appeal_notes=claim.appeal_notes,
            appeal_submitted_at=claim.appeal_submitted_at,
            submitted_at=claim.submitted_at,
            created_at=claim.created_at,
            updated_at=claim.updated_at,
        )


class ClaimListResponse(CamelModel):
    items: list[ClaimResponse]
    total: int
    limit: int
    offset: int


class ScrubResponse(CamelModel):
    claim_id: str
    claim_status: ClaimStatus
    status: ScrubStatus
    errors: list[dict[str, Any]]
    warnings: list[dict[str, Any]]
    info: list[dict[str, Any]]
    auto_fixed: list[dict[str, Any]] = Field(default_factory=list)
    fix_passes: int = 0


class ScrubCheckOut(CamelModel):
    name: str
    description: str
    codes: list[str]


class PassedChecksResponse(CamelModel):
    claim_id: str
    scrub_status: Optional[ScrubStatus] = None
    passed: list[ScrubCheckOut]
    total_checks: int


class ModifierSuggestionsResponse(CamelModel):
    claim_id: str
    suggestions: list[dict[str, Any]]


class PaymentResponse(CamelORMModel):
    id: str
    claim_id: str
    amount_cents: int
    payment_date: date
    payment_method: Optional[str] = None
    payer: Optional[str] = None
    check_number: Optional[str] = None
    era_batch_id: Optional[str] = None
    posted_by: Optional[str] = None
    created_at: datetime


class StatusHistoryResponse(CamelORMModel):
    id: str
    claim_id: str
    sequence: int
    previous_status: Optional[ClaimStatus] = None
    status: ClaimStatus
    notes: Optional[str] = None
    source: HistorySource
    changed_by: Optional[str] = None
    changed_at: datetime


class BulkSubmitFailure(CamelModel):
    claim_id: str
    error: str


class BulkSubmitResponse(CamelModel):
    total: int
    submitted: list[str]
    failed: list[BulkSubmitFailure]
