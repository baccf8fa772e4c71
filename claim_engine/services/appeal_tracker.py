"""
Appeal Tracker.

Provides:
- Denial categorization, recovery likelihood and work priority
- Appeal submission with default deadline, level and letter
- Appeal outcome recording with the resulting payment and transition
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from claim_engine.catalogs.repository import CatalogRepository
from claim_engine.core.config import ClaimsSettings, get_claims_settings
from claim_engine.core.enums import (
    AppealLevel,
    AppealOutcome,
    AppealStatus,
    ClaimStatus,
    DenialCategory,
    HistorySource,
    PaymentMethod,
    RecoveryLikelihood,
    WorkPriority,
)
from claim_engine.models.catalog import Patient
from claim_engine.models.claim import Claim, ClaimAppeal
from claim_engine.schemas.appeal import AppealOutcomeRequest, AppealSubmit
from claim_engine.services.claim_state_machine import TransitionEvent
from claim_engine.services.collaborators import (
    AuditSink,
    ClaimEvent,
    EventEmitter,
    IdGenerator,
    LoggingAuditSink,
    LoggingEventEmitter,
    UuidIdGenerator,
    publish_claim_change,
)
from claim_engine.services.payment_posting import ClaimLedger
from claim_engine.utils.errors import StateConflictError, ValidationError
from claim_engine.utils.logging import get_logger
from claim_engine.utils.money import to_cents

logger = get_logger(__name__)


# =============================================================================
# Denial Analysis
# =============================================================================


# CARC codes per category, checked in this order
_DENIAL_CODE_RULES: tuple[tuple[DenialCategory, frozenset[str], tuple[str, ...]], ...] = (
    (
        DenialCategory.ELIGIBILITY,
        frozenset(str(n) for n in range(1, 28)),
        ("ELIGIBILITY", "NOT COVERED", "INACTIVE", "TERMINATED"),
    ),
    (
        DenialCategory.AUTHORIZATION,
        frozenset({"55", "56", "58", "196", "197", "198", "199"}),
        ("AUTHORIZATION", "PRIOR AUTH", "PRE-CERT"),
    ),
    (
        DenialCategory.CODING,
        frozenset({"49", "50", "51", "52", "53", "54", "146", "147", "148", "149"}),
        ("CODING", "INVALID CODE", "MODIFIER", "BUNDLED"),
    ),
    (
        DenialCategory.DOCUMENTATION,
        frozenset(str(n) for n in range(32, 49)),
        ("DOCUMENTATION", "MEDICAL NECESSITY", "RECORDS"),
    ),
    (
        DenialCategory.DUPLICATE,
        frozenset({"18", "19"}),
        ("DUPLICATE",),
    ),
    (
        DenialCategory.TIMELY_FILING,
        frozenset({"29", "30"}),
        ("TIMELY", "FILING LIMIT"),
    ),
)

_GROUP_PREFIX = re.compile(r"^(CO|PR|OA|PI|CR)[-\s]?", re.IGNORECASE)


def normalize_denial_code(code: Optional[str]) -> str:
    """'CO-45' -> '45'. Group codes are dropped; the reason code decides."""
    return _GROUP_PREFIX.sub("", (code or "").strip()).upper()


def categorize_denial(code: Optional[str], reason: Optional[str]) -> DenialCategory:
    """Root-cause category from the CARC code and reason text, DOCUMENTATION when unclear."""
    normalized = normalize_denial_code(code)
    upper_reason = (reason or "").upper()
    for category, codes, phrases in _DENIAL_CODE_RULES:
        if normalized in codes or any(phrase in upper_reason for phrase in phrases):
            return category
    return DenialCategory.DOCUMENTATION


def assess_recovery_likelihood(category: DenialCategory) -> RecoveryLikelihood:
    if category in (DenialCategory.ELIGIBILITY, DenialCategory.TIMELY_FILING):
        return RecoveryLikelihood.LOW
    if category in (DenialCategory.CODING, DenialCategory.DOCUMENTATION):
        return RecoveryLikelihood.HIGH
    return RecoveryLikelihood.MEDIUM


def priority_from_amount(amount_cents: int) -> WorkPriority:
    if amount_cents >= 100000:
        return WorkPriority.URGENT
    if amount_cents >= 50000:
        return WorkPriority.HIGH
    if amount_cents >= 10000:
        return WorkPriority.NORMAL
    return WorkPriority.LOW


# =============================================================================
# Appeal Letters
# =============================================================================


APPEAL_TEMPLATES: Mapping[str, str] = {
    "medical_necessity": (
        "To: [PAYER_NAME]\n"
        "Re: Claim [CLAIM_NUMBER], patient [PATIENT_NAME], date of service [SERVICE_DATE]\n\n"
        "We request reconsideration of the denial ([DENIAL_CODE]: [DENIAL_REASON]). "
        "The enclosed records document the medical necessity of the services billed "
        "for a total of $[TOTAL_CHARGES].\n"
    ),
    "coding_correction": (
        "To: [PAYER_NAME]\n"
        "Re: Claim [CLAIM_NUMBER], date of service [SERVICE_DATE]\n\n"
        "The claim was denied for [DENIAL_REASON]. The procedures were coded in accordance "
        "with CPT guidelines; modifiers identify distinct services. Please reprocess the claim.\n"
    ),
    "timely_filing": (
        "To: [PAYER_NAME]\n"
        "Re: Claim [CLAIM_NUMBER], date of service [SERVICE_DATE]\n\n"
        "The claim was denied as untimely. Enclosed is proof of the original timely submission. "
        "Please reprocess the claim.\n"
    ),
}

_PLACEHOLDER = re.compile(r"\[([A-Z_]+)\]")


def merge_appeal_template(template: str, values: Mapping[str, Optional[str]]) -> str:
    """Replace [KEY] tokens with values; unknown or empty keys stay as tokens."""

    def substitute(match: re.Match) -> str:
        value = values.get(match.group(1))
        return str(value) if value else match.group(0)

    return _PLACEHOLDER.sub(substitute, template)


# =============================================================================
# Deadlines & Levels
# =============================================================================


APPEAL_LEVEL_ORDER: tuple[AppealLevel, ...] = (
    AppealLevel.FIRST,
    AppealLevel.SECOND,
    AppealLevel.EXTERNAL,
)


def default_appeal_deadline(denial_date: date, filing_days: int) -> date:
    return denial_date + timedelta(days=filing_days)


def next_appeal_level(prior_appeals: int) -> Optional[AppealLevel]:
    if prior_appeals >= len(APPEAL_LEVEL_ORDER):
        return None
    return APPEAL_LEVEL_ORDER[prior_appeals]


@dataclass
class DenialAssessment:
    claim: Claim
    category: DenialCategory
    recovery_likelihood: RecoveryLikelihood
    priority: WorkPriority
    amount_at_stake_cents: int
    appeal_deadline: date
    days_until_deadline: int


@dataclass
class AppealOutcomeResult:
    appeal: ClaimAppeal
    claim: Claim
    payment_posted_cents: Optional[int] = None


# =============================================================================
# Appeal Tracker
# =============================================================================


class AppealTracker:
    """Appeals for denied claims and the transitions their outcomes drive."""

    def __init__(
        self,
        session: AsyncSession,
        id_generator: Optional[IdGenerator] = None,
        audit_sink: Optional[AuditSink] = None,
        event_emitter: Optional[EventEmitter] = None,
        catalogs: Optional[CatalogRepository] = None,
        settings: Optional[ClaimsSettings] = None,
    ):
        self.session = session
        self.settings = settings or get_claims_settings()
        self.id_generator = id_generator or UuidIdGenerator()
        self.audit_sink = audit_sink or LoggingAuditSink()
        self.event_emitter = event_emitter or LoggingEventEmitter()
        self.catalogs = catalogs or CatalogRepository(session)
        self.ledger = ClaimLedger(session, self.id_generator)

    async def list_appeals(self, tenant_id: str, claim_id: str) -> list[ClaimAppeal]:
        """Appeals oldest first."""
        await self.ledger.load_claim(tenant_id, claim_id)
        return await self._appeals_for(claim_id)

    async def _appeals_for(self, claim_id: str) -> list[ClaimAppeal]:
        result = await self.session.execute(
            select(ClaimAppeal)
            .where(ClaimAppeal.claim_id == claim_id)
            .order_by(ClaimAppeal.created_at, ClaimAppeal.id)
        )
        return list(result.scalars().all())

    async def _filing_days(self, tenant_id: str, claim: Claim, as_of: date) -> int:
        catalog = await self.catalogs.load(tenant_id)
        contract = catalog.contract_for(claim.payer_id, claim.payer_name, as_of)
        if contract and contract.appeal_filing_days:
            return contract.appeal_filing_days
        return self.settings.APPEAL_DEADLINE_DAYS

    # =========================================================================
    # Denial Assessment
    # =========================================================================

    async def assess_denial(
        self,
        tenant_id: str,
        claim_id: str,
        as_of: Optional[date] = None,
    ) -> DenialAssessment:
        """Category, recovery chance, priority and deadline for a denied claim."""
        as_of = as_of or date.today()
        claim = await self.ledger.load_claim(tenant_id, claim_id)
        if claim.status not in (ClaimStatus.DENIED, ClaimStatus.APPEALED):
            raise StateConflictError(
                "Only denied claims can be assessed",
                current_status=claim.status.value,
            )

        category = claim.denial_category or categorize_denial(claim.denial_code, claim.denial_reason)
        at_stake = max(to_cents(claim.total_charges) - to_cents(claim.paid_amount), 0)
        denial_date = claim.denial_date or as_of
        deadline = default_appeal_deadline(denial_date, await self._filing_days(tenant_id, claim, denial_date))
        return DenialAssessment(
            claim=claim,
            category=category,
            recovery_likelihood=assess_recovery_likelihood(category),
            priority=priority_from_amount(at_stake),
            amount_at_stake_cents=at_stake,
            appeal_deadline=deadline,
            days_until_deadline=(deadline - as_of).days,
        )

    # =========================================================================
    # Submission
    # =========================================================================

    async def submit_appeal(
        self,
        tenant_id: str,
        claim_id: str,
        user_id: Optional[str],
        request: AppealSubmit,
    ) -> ClaimAppeal:
        """
        Appeal a denied claim.

        The claim must be denied, or appealed with a denied latest appeal.
        Deadline defaults to denial date + the contract's appeal window
        (CLAIMS_APPEAL_DEADLINE_DAYS without a contract); level defaults
        to the one after the claim's prior appeals.
        """
        claim = await self.ledger.load_claim(tenant_id, claim_id, for_update=True)
        if claim.status not in (ClaimStatus.DENIED, ClaimStatus.APPEALED):
            raise StateConflictError(
                f"Cannot appeal a claim in {claim.status.value} status; only denied claims can be appealed",
                current_status=claim.status.value,
            )

        prior = await self._appeals_for(claim.id)
        latest = prior[-1] if prior else None

        level = request.appeal_level or next_appeal_level(len(prior))
        if level is None:
            raise StateConflictError(
                "All appeal levels have been used for this claim",
                current_status=claim.status.value,
            )

        denial_date = claim.denial_date or date.today()
        deadline = request.appeal_deadline or default_appeal_deadline(
            denial_date, await self._filing_days(tenant_id, claim, denial_date)
        )
        letter = request.appeal_letter or await self._render_letter(tenant_id, claim, request)

        await self.ledger.transition(
            claim,
            TransitionEvent.APPEAL,
            ClaimStatus.APPEALED,
            user_id,
            source=HistorySource.APPEAL,
            notes=f"{level.value.capitalize()} level appeal submitted",
            metadata={"latest_appeal_status": latest.appeal_status if latest else None},
        )

        appeal = ClaimAppeal(
            id=self.id_generator.new_id(),
            claim_id=claim.id,
            appeal_level=level,
            appeal_status=AppealStatus.SUBMITTED,
            template_used=request.template_used,
            appeal_letter=letter,
            appeal_deadline=deadline,
            notes=request.notes,
            submitted_by=user_id,
        )
        self.session.add(appeal)
        claim.appeal_status = AppealStatus.SUBMITTED
        claim.appeal_notes = request.notes
        claim.appeal_submitted_at = datetime.now(timezone.utc)
        await self.ledger.commit("appeal submission")

        logger.info(
            f"Submitted {level.value} appeal for claim {claim.claim_number} "
            f"(deadline {deadline.isoformat()})"
        )
        await self._after_commit(tenant_id, user_id, "submit_appeal", claim, [ClaimEvent.STATUS_CHANGED])
        return appeal

    async def _render_letter(
        self,
        tenant_id: str,
        claim: Claim,
        request: AppealSubmit,
    ) -> Optional[str]:
        template = request.template_text
        if template is None and request.template_used:
            template = APPEAL_TEMPLATES.get(request.template_used)
            if template is None:
                raise ValidationError(
                    f"Unknown appeal template: {request.template_used}",
                    field_errors={"templateUsed": [f"must be one of {sorted(APPEAL_TEMPLATES)}"]},
                )
        if template is None:
            return None

        patient = await self.session.scalar(
            select(Patient).where(Patient.id == claim.patient_id, Patient.tenant_id == tenant_id)
        )
        values: dict[str, Optional[str]] = {
            "PAYER_NAME": claim.payer_name or "Insurance Company",
            "CLAIM_NUMBER": claim.claim_number,
            "PATIENT_NAME": f"{patient.first_name} {patient.last_name}" if patient else None,
            "SERVICE_DATE": claim.service_date.isoformat() if claim.service_date else None,
            "DENIAL_CODE": claim.denial_code,
            "DENIAL_REASON": claim.denial_reason,
            "TOTAL_CHARGES": f"{claim.total_charges:.2f}",
        }
        values.update(request.template_values)
        return merge_appeal_template(template, values)

    # =========================================================================
    # Outcome
    # =========================================================================

    async def record_outcome(
        self,
        tenant_id: str,
        claim_id: str,
        user_id: Optional[str],
        request: AppealOutcomeRequest,
    ) -> AppealOutcomeResult:
        """
        Record the payer's decision on the active appeal.

        approved: claim accepted, approved amount (default: full charge)
        posted as an appeal payment. partial: same with a required amount.
        denied: claim back to denied. A posted payment can complete the
        claim to paid.
        """
        if request.outcome == AppealOutcome.PARTIAL and request.approved_amount_cents is None:
            raise ValidationError(
                "Partial approval requires an approved amount",
                field_errors={"approvedAmountCents": ["required for partial outcomes"]},
            )

        claim = await self.ledger.load_claim(tenant_id, claim_id, for_update=True)
        if claim.status != ClaimStatus.APPEALED:
            raise StateConflictError(
                f"Cannot record an appeal outcome for a claim in {claim.status.value} status",
                current_status=claim.status.value,
            )

        active = next(
            (a for a in reversed(await self._appeals_for(claim.id)) if a.appeal_status == AppealStatus.SUBMITTED),
            None,
        )
        if active is None:
            raise StateConflictError("Claim has no active appeal", current_status=claim.status.value)

        amount_cents: Optional[int] = None
        if request.outcome == AppealOutcome.DENIED:
            appeal_status = AppealStatus.DENIED
            event, target = TransitionEvent.APPEAL_DENIED, ClaimStatus.DENIED
        else:
            appeal_status = AppealStatus(request.outcome.value)
            event, target = TransitionEvent.APPEAL_APPROVED, ClaimStatus.ACCEPTED
            amount_cents = request.approved_amount_cents or to_cents(claim.total_charges)

        await self.ledger.transition(
            claim,
            event,
            target,
            user_id,
            source=HistorySource.APPEAL,
            notes=f"Appeal {request.outcome.value}" + (f": {request.notes}" if request.notes else ""),
        )

        active.appeal_status = appeal_status
        active.outcome = request.outcome.value
        active.approved_amount_cents = amount_cents
        active.decision_date = request.decision_date or date.today()
        if request.notes:
            active.notes = request.notes
        claim.appeal_status = appeal_status
        if request.notes:
            claim.appeal_notes = request.notes

        events = [ClaimEvent.STATUS_CHANGED]
        if target == ClaimStatus.DENIED:
            events.append(ClaimEvent.DENIED)
        posted: Optional[int] = None
        if amount_cents:
            await self.ledger.post_payment(
                claim,
                amount_cents,
                user_id,
                payment_date=active.decision_date,
                payment_method=PaymentMethod.APPEAL_PAYMENT.value,
            )
            posted = amount_cents
            events.append(ClaimEvent.PAYMENT_RECEIVED)
            if await self.ledger.apply_paid_in_full(claim, user_id, HistorySource.APPEAL):
                events.append(ClaimEvent.PAID)

        await self.ledger.commit("appeal outcome")

        logger.info(
            f"Recorded appeal outcome {request.outcome.value} for claim {claim.claim_number} "
            f"-> {claim.status.value}"
        )
        await self._after_commit(tenant_id, user_id, "appeal_outcome", claim, events)
        return AppealOutcomeResult(appeal=active, claim=claim, payment_posted_cents=posted)

    async def _after_commit(
        self,
        tenant_id: str,
        user_id: Optional[str],
        action: str,
        claim: Claim,
        events: list[ClaimEvent],
    ) -> None:
        await publish_claim_change(
            self.audit_sink, self.event_emitter, tenant_id, user_id, action, claim, events
        )
