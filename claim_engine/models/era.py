"""
ERA import batch model.

A batch references claims only by id inside its summary; it never owns them.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from claim_engine.core.enums import EraBatchStatus
from claim_engine.models.base import Base, StringIDModel, TimeStampedModel


class EraImportBatch(Base, StringIDModel, TimeStampedModel):
    """One remittance file import and its summary counts."""

    __tablename__ = "era_import_batches"

    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    filename: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    claim_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[EraBatchStatus] = mapped_column(
        Enum(EraBatchStatus),
        default=EraBatchStatus.PROCESSING,
        nullable=False,
    )

    # Summary
    matched: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    auto_posted: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    unmatched: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    denied: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    partial_payments: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    errored: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_paid_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_adjustment_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    imported_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<EraImportBatch(id={self.id}, status={self.status}, claims={self.claim_count})>"
