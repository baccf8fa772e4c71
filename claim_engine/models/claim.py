"""
Claim aggregate models.

Claim is the aggregate root. Payments, adjustments, status history and
appeals are owned by exactly one claim and are append-only (appeals are
updated in place only when their outcome is recorded).
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from claim_engine.core.enums import (
    AppealLevel,
    AppealStatus,
    ClaimStatus,
    DenialCategory,
    HistorySource,
    ScrubStatus,
)
from claim_engine.models.base import Base, JSONType, StringIDModel, TimeStampedModel, utcnow


class Claim(Base, StringIDModel, TimeStampedModel):
    """
    Professional claim built from encounter charges.

    Line items and claim-level diagnoses are stored as JSON and mapped to
    typed records by claim_engine.services.claim_records. Money columns are 2dp
    decimals; all arithmetic on them goes through claim_engine.utils.money.
    """

    __tablename__ = "claims"

    tenant_id: Mapped[str] = mapped_column(
        String(36),
        nullable=False,
        index=True,
        comment="Owning tenant ID",
    )
    claim_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Human-readable claim number (e.g., CLM-20250101-1A2B3C)",
    )

    # Clinical linkage
    patient_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    encounter_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    payer_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    service_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Content
    diagnoses: Mapped[list] = mapped_column(
        JSONType,
        default=list,
        nullable=False,
        comment="Ordered claim-level ICD-10 codes; first is primary",
    )
    line_items: Mapped[list] = mapped_column(
        JSONType,
        default=list,
        nullable=False,
        comment="Line items: cpt, modifiers, dx, units, charge, description",
    )

    # Financial
    total_charges: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False,
    )
    paid_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False,
        comment="Sum of posted payments",
    )
    patient_responsibility: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
    )

    # Lifecycle
    status: Mapped[ClaimStatus] = mapped_column(
        Enum(ClaimStatus),
        default=ClaimStatus.DRAFT,
        nullable=False,
        index=True,
    )
    is_cosmetic: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    cosmetic_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Cached scrub result
    scrub_status: Mapped[Optional[ScrubStatus]] = mapped_column(Enum(ScrubStatus), nullable=True)
    scrub_errors: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    scrub_warnings: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    scrub_info: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    last_scrubbed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Denial / appeal
    denial_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    denial_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    denial_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    denial_category: Mapped[Optional[DenialCategory]] = mapped_column(Enum(DenialCategory), nullable=True)
    appeal_status: Mapped[Optional[AppealStatus]] = mapped_column(Enum(AppealStatus), nullable=True)
    appeal_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    appeal_submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    # Relationships (never lazy-loaded in async code; query explicitly)
    payments: Mapped[list["ClaimPayment"]] = relationship(
        back_populates="claim",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="raise",
    )
    adjustments: Mapped[list["ClaimAdjustment"]] = relationship(
        back_populates="claim",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="raise",
    )
    status_history: Mapped[list["ClaimStatusHistory"]] = relationship(
        back_populates="claim",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="raise",
    )
    appeals: Mapped[list["ClaimAppeal"]] = relationship(
        back_populates="claim",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="raise",
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "claim_number", name="uq_claims_tenant_claim_number"),
        Index("ix_claims_tenant_status", "tenant_id", "status"),
        Index("ix_claims_tenant_service_date", "tenant_id", "service_date"),
    )

    def __repr__(self) -> str:
        return f"<Claim(id={self.id}, claim_number={self.claim_number}, status={self.status})>"


class ClaimPayment(Base, StringIDModel):
    """Posted payment. Append-only; a claim's paid total is the sum of these."""

    __tablename__ = "claim_payments"

    claim_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("claims.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payer: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    check_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    era_batch_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    posted_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    claim: Mapped["Claim"] = relationship(back_populates="payments", lazy="raise")


class ClaimAdjustment(Base, StringIDModel):
    """Itemized adjustment (CARC group/reason) posted from a remittance."""

    __tablename__ = "claim_adjustments"

    claim_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("claims.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    code: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    era_batch_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    claim: Mapped["Claim"] = relationship(back_populates="adjustments", lazy="raise")


class ClaimStatusHistory(Base, StringIDModel):
    """
    Status change history for a claim.

    One row per transition, written in the same transaction as the change.
    """

    __tablename__ = "claim_status_history"

    claim_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("claims.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Per-claim ordinal, 1 for the creation entry",
    )
    previous_status: Mapped[Optional[ClaimStatus]] = mapped_column(Enum(ClaimStatus), nullable=True)
    status: Mapped[ClaimStatus] = mapped_column(Enum(ClaimStatus), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source: Mapped[HistorySource] = mapped_column(
        Enum(HistorySource),
        default=HistorySource.API,
        nullable=False,
    )
    changed_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )

    claim: Mapped["Claim"] = relationship(back_populates="status_history", lazy="raise")


class ClaimAppeal(Base, StringIDModel):
    """
    Appeal of a denied claim.

    A claim may collect several appeals; the active one is the most recent
    with appeal_status = submitted.
    """

    __tablename__ = "claim_appeals"

    claim_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("claims.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    appeal_level: Mapped[AppealLevel] = mapped_column(Enum(AppealLevel), nullable=False)
    appeal_status: Mapped[AppealStatus] = mapped_column(
        Enum(AppealStatus),
        default=AppealStatus.SUBMITTED,
        nullable=False,
    )
    template_used: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    appeal_letter: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    appeal_deadline: Mapped[date] = mapped_column(Date, nullable=False)
    outcome: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    approved_amount_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    decision_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    submitted_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    claim: Mapped["Claim"] = relationship(back_populates="appeals", lazy="raise")
