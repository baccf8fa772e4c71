"""
Core Enumerations for the Claim Reconciliation Engine.

Source: Claim lifecycle, scrub, remittance and appeal workflows
"""

from enum import Enum


# =============================================================================
# Claim Lifecycle Enums
# =============================================================================


class ClaimStatus(str, Enum):
    """Claim lifecycle status.

    State Machine Transitions:
    DRAFT -> SCRUBBED | READY
    SCRUBBED -> READY | DRAFT
    READY -> SUBMITTED | SCRUBBED | DRAFT
    SUBMITTED -> ACCEPTED | DENIED
    ACCEPTED -> DENIED
    DENIED -> APPEALED
    APPEALED -> ACCEPTED | DENIED | APPEALED
    any non-paid -> PAID (automatic, on payment in full)
    """

    DRAFT = "draft"
    SCRUBBED = "scrubbed"
    READY = "ready"
    SUBMITTED = "submitted"
    ACCEPTED = "accepted"
    DENIED = "denied"
    APPEALED = "appealed"
    PAID = "paid"


class ScrubStatus(str, Enum):
    """Cached outcome of the most recent scrub."""

    CLEAN = "clean"
    WARNINGS = "warnings"
    ERRORS = "errors"


class IssueSeverity(str, Enum):
    """Scrub issue severity levels."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class HistorySource(str, Enum):
    """Origin of a status history entry."""

    API = "api"
    ERA = "era"
    APPEAL = "appeal"
    SYSTEM = "system"


# =============================================================================
# Payment & Remittance Enums
# =============================================================================


class PaymentMethod(str, Enum):
    """Payment method tags recorded on posted payments."""

    ERA = "ERA"
    APPEAL_PAYMENT = "Appeal Payment"
    CHECK = "Check"
    EFT = "EFT"
    MANUAL = "Manual"


class EraBatchStatus(str, Enum):
    """ERA import batch lifecycle."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class MatchStrategy(str, Enum):
    """How a remittance record was matched to a claim."""

    CLAIM_ID = "claim_id"
    CLAIM_NUMBER = "claim_number"
    PATIENT_NAME = "patient_name"


# =============================================================================
# Denial & Appeal Enums
# =============================================================================


class DenialCategory(str, Enum):
    """Root-cause category assigned to a denial."""

    ELIGIBILITY = "ELIGIBILITY"
    AUTHORIZATION = "AUTHORIZATION"
    CODING = "CODING"
    DOCUMENTATION = "DOCUMENTATION"
    DUPLICATE = "DUPLICATE"
    TIMELY_FILING = "TIMELY_FILING"


class AppealLevel(str, Enum):
    """Appeal escalation levels, in order."""

    FIRST = "first"
    SECOND = "second"
    EXTERNAL = "external"


class AppealStatus(str, Enum):
    """Appeal record status."""

    SUBMITTED = "submitted"
    APPROVED = "approved"
    DENIED = "denied"
    PARTIAL = "partial"


class AppealOutcome(str, Enum):
    """Outcome a payer can return for an appeal."""

    APPROVED = "approved"
    PARTIAL = "partial"
    DENIED = "denied"


class RecoveryLikelihood(str, Enum):
    """Estimated chance of recovering a denied amount."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class WorkPriority(str, Enum):
    """Work queue priority derived from the amount at stake."""

    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


# =============================================================================
# Underpayment & Contract Enums
# =============================================================================


class UnderpaymentFlagStatus(str, Enum):
    """Review status of a flagged underpayment."""

    PENDING = "pending"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class ContractBasis(str, Enum):
    """What a payer contract's reimbursement percentage is applied to."""

    FEE_SCHEDULE = "fee_schedule"
    MEDICARE = "medicare"


class ExpectedAmountBasis(str, Enum):
    """Where a line's expected reimbursement came from."""

    FEE_SCHEDULE = "fee_schedule"
    MEDICARE = "medicare"
    BILLED_CHARGE = "billed_charge"


# =============================================================================
# Modifier Advisor Enums
# =============================================================================


class ModifierContext(str, Enum):
    """Coding context a modifier suggestion applies to."""

    DISTINCT_PROCEDURE = "distinct_procedure"
    MUTUALLY_EXCLUSIVE = "mutually_exclusive"
    SAME_DAY_EM = "same_day_em"
    BILATERAL = "bilateral"
    MULTIPLE_PROCEDURE = "multiple_procedure"


class SuggestionConfidence(str, Enum):
    """Confidence attached to a modifier suggestion."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
