"""
Reference catalog models.

Diagnosis codes, fee schedules, payer contracts and patient names are owned
by other modules of the practice system. The claim engine only reads them,
through claim_engine.catalogs.repository.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, Date, Enum, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from claim_engine.core.enums import ContractBasis
from claim_engine.models.base import Base, StringIDModel, TimeStampedModel


class DiagnosisCode(Base):
    """ICD-10-CM code."""

    __tablename__ = "diagnosis_codes"

    icd10_code: Mapped[str] = mapped_column(String(10), primary_key=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    billable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class FeeScheduleItem(Base, StringIDModel):
    """Tenant fee schedule entry keyed by CPT."""

    __tablename__ = "fee_schedule_items"

    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False)
    cpt_code: Mapped[str] = mapped_column(String(10), nullable=False)
    fee_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    medicare_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("ix_fee_schedule_tenant_cpt", "tenant_id", "cpt_code", unique=True),
    )


class PayerContract(Base, StringIDModel, TimeStampedModel):
    """Reimbursement agreement with a payer."""

    __tablename__ = "payer_contracts"

    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    payer_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    reimbursement_percent: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)
    basis: Mapped[ContractBasis] = mapped_column(
        Enum(ContractBasis),
        default=ContractBasis.FEE_SCHEDULE,
        nullable=False,
    )
    appeal_filing_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    timely_filing_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    effective_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    expiration_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)


class Patient(Base, StringIDModel):
    """Patient name record used for remittance name matching."""

    __tablename__ = "patients"

    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
