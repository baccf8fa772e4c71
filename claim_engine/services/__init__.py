"""
Services layer for the claim engine.

Exports the claim, ERA, appeal and underpayment services.
"""

from claim_engine.services.appeal_tracker import AppealTracker
from claim_engine.services.claim_scrubber import ClaimScrubber
from claim_engine.services.claim_state_machine import (
    ClaimStateMachine,
    TransitionEvent,
    get_claim_state_machine,
)
from claim_engine.services.claims_service import ClaimFilters, ClaimsService
from claim_engine.services.era_reconciler import EraReconciler
from claim_engine.services.modifier_advisor import suggest_modifiers
from claim_engine.services.payment_posting import ClaimLedger
from claim_engine.services.underpayment_analyzer import UnderpaymentAnalyzer, compute_claim_variance

__all__ = [
    "AppealTracker",
    "ClaimFilters",
    "ClaimLedger",
    "ClaimScrubber",
    "ClaimStateMachine",
    "ClaimsService",
    "EraReconciler",
    "TransitionEvent",
    "UnderpaymentAnalyzer",
    "compute_claim_variance",
    "get_claim_state_machine",
    "suggest_modifiers",
]
