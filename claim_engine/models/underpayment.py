"""Underpayment flag model."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from claim_engine.core.enums import UnderpaymentFlagStatus
from claim_engine.models.base import Base, StringIDModel, TimeStampedModel


class UnderpaymentFlag(Base, StringIDModel, TimeStampedModel):
    """A claim queued for underpayment follow-up."""

    __tablename__ = "underpayment_flags"

    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    claim_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("claims.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    expected_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    actual_paid_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    variance_percent: Mapped[Decimal] = mapped_column(Numeric(7, 2), nullable=False)
    status: Mapped[UnderpaymentFlagStatus] = mapped_column(
        Enum(UnderpaymentFlagStatus),
        default=UnderpaymentFlagStatus.PENDING,
        nullable=False,
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    flagged_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
