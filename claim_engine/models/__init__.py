"""
SQLAlchemy models for the claim engine.
"""

from claim_engine.models.base import Base, StringIDModel, TimeStampedModel
from claim_engine.models.catalog import DiagnosisCode, FeeScheduleItem, Patient, PayerContract
from claim_engine.models.claim import (
    Claim,
    ClaimAdjustment,
    ClaimAppeal,
    ClaimPayment,
    ClaimStatusHistory,
)
from claim_engine.models.era import EraImportBatch
from claim_engine.models.underpayment import UnderpaymentFlag

__all__ = [
    "Base",
    "StringIDModel",
    "TimeStampedModel",
    "Claim",
    "ClaimAdjustment",
    "ClaimAppeal",
    "ClaimPayment",
    "ClaimStatusHistory",
    "DiagnosisCode",
    "EraImportBatch",
    "FeeScheduleItem",
    "Patient",
    "PayerContract",
    "UnderpaymentFlag",
]
