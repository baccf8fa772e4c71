"""
Claims Service.

Provides:
- Claim creation and retrieval with tenant isolation
- Line item management (totals recomputed on every change)
- Scrub persistence with optional auto-fix
- Submission, bulk submission, manual status changes and denials
- Payment posting with the paid-in-full transition
- Status history
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from claim_engine.catalogs.repository import CatalogRepository
from claim_engine.core.config import ClaimsSettings, get_claims_settings
from claim_engine.core.enums import ClaimStatus, HistorySource, ScrubStatus
from claim_engine.models.claim import Claim, ClaimPayment, ClaimStatusHistory
from claim_engine.schemas.claim import ClaimCreate, PaymentCreate
from claim_engine.services.appeal_tracker import categorize_denial
from claim_engine.services.batch import BatchResult, run_batch
from claim_engine.services.claim_records import (
    LineItem,
    line_items_from_claim,
    line_items_to_json,
    snapshot_from_claim,
    total_charges,
)
from claim_engine.services.claim_scrubber import (
    ClaimScrubber,
    ScrubCheck,
    ScrubIssue,
    ScrubResult,
    get_claim_scrubber,
    get_passed_checks,
)
from claim_engine.services.claim_state_machine import (
    TransitionEvent,
    get_status_display_name,
    is_editable_status,
)
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
from claim_engine.services.modifier_advisor import ModifierSuggestion, suggest_modifiers
from claim_engine.services.payment_posting import ClaimLedger
from claim_engine.utils.errors import NotFoundError, StateConflictError
from claim_engine.utils.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# Filters & Results
# =============================================================================


@dataclass
class ClaimFilters:
    """Typed claim list filters, compiled into one SELECT."""

    statuses: Optional[list[ClaimStatus]] = None
    patient_id: Optional[str] = None
    payer_id: Optional[str] = None
    scrub_status: Optional[ScrubStatus] = None
    claim_number: Optional[str] = None
    service_date_from: Optional[date] = None
    service_date_to: Optional[date] = None
    limit: int = 50
    offset: int = 0

    def apply(self, query: Select, tenant_id: str) -> Select:
        query = query.where(Claim.tenant_id == tenant_id)
        if self.statuses:
            query = query.where(Claim.status.in_(self.statuses))
        if self.patient_id:
            query = query.where(Claim.patient_id == self.patient_id)
        if self.payer_id:
            query = query.where(Claim.payer_id == self.payer_id)
        if self.scrub_status:
            query = query.where(Claim.scrub_status == self.scrub_status)
        if self.claim_number:
            query = query.where(Claim.claim_number == self.claim_number)
        if self.service_date_from:
            query = query.where(Claim.service_date >= self.service_date_from)
        if self.service_date_to:
            query = query.where(Claim.service_date <= self.service_date_to)
        return query


@dataclass
class ScrubOutcome:
    """Persisted scrub result plus what auto-fix changed."""

    claim: Claim
    result: ScrubResult
    applied: list[ScrubIssue] = field(default_factory=list)
    passes: int = 0


# =============================================================================
# Claims Service
# =============================================================================


class ClaimsService:
    """
    Service for claim lifecycle operations.

    Every mutating method is one transaction. Audit writes and events
    happen after the commit and never fail the call.
    """

    def __init__(
        self,
        session: AsyncSession,
        id_generator: Optional[IdGenerator] = None,
        audit_sink: Optional[AuditSink] = None,
        event_emitter: Optional[EventEmitter] = None,
        catalogs: Optional[CatalogRepository] = None,
        scrubber: Optional[ClaimScrubber] = None,
        settings: Optional[ClaimsSettings] = None,
    ):
        self.session = session
        self.settings = settings or get_claims_settings()
        self.id_generator = id_generator or UuidIdGenerator()
        self.audit_sink = audit_sink or LoggingAuditSink()
        self.event_emitter = event_emitter or LoggingEventEmitter()
        self.catalogs = catalogs or CatalogRepository(session)
        self.scrubber = scrubber or get_claim_scrubber(self.settings)
        self.ledger = ClaimLedger(session, self.id_generator)

    # =========================================================================
    # Create & Read
    # =========================================================================

    async def create_claim(
        self,
        tenant_id: str,
        user_id: Optional[str],
        data: ClaimCreate,
    ) -> Claim:
        """Create a draft claim and its first history entry."""
        line_items = [item.to_line_item() for item in data.line_items]

        claim = Claim(
            id=self.id_generator.new_id(),
            tenant_id=tenant_id,
            claim_number=self.id_generator.new_claim_number(),
            patient_id=data.patient_id,
            encounter_id=data.encounter_id,
            payer_id=data.payer_id,
            payer_name=data.payer_name,
            service_date=data.service_date,
            diagnoses=list(data.diagnoses),
            line_items=line_items_to_json(line_items),
            total_charges=total_charges(line_items),
            status=ClaimStatus.DRAFT,
            is_cosmetic=data.is_cosmetic,
            cosmetic_reason=data.cosmetic_reason,
            scrub_errors=[],
            scrub_warnings=[],
            scrub_info=[],
            created_by=user_id,
        )
        self.session.add(claim)
        await self.session.flush()
        await self.ledger.append_history(
            claim, None, ClaimStatus.DRAFT, user_id, HistorySource.API, "Claim created"
        )
        await self.ledger.commit("claim creation")

        logger.info(f"Created claim {claim.claim_number} (ID: {claim.id})")
        await self._after_commit(tenant_id, user_id, "create", claim, [ClaimEvent.CREATED])
        return claim

    async def get_claim(self, tenant_id: str, claim_id: str) -> Claim:
        return await self.ledger.load_claim(tenant_id, claim_id)

    async def list_claims(
        self,
        tenant_id: str,
        filters: Optional[ClaimFilters] = None,
    ) -> tuple[list[Claim], int]:
        """Newest first. Returns (page, total matching)."""
        filters = filters or ClaimFilters()

        count_query = filters.apply(select(func.count(Claim.id)), tenant_id)
        total = (await self.session.execute(count_query)).scalar_one()

        query = (
            filters.apply(select(Claim), tenant_id)
            .order_by(Claim.created_at.desc(), Claim.id.desc())
            .offset(filters.offset)
            .limit(filters.limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all()), int(total)

    # =========================================================================
    # Line Items
    # =========================================================================

    async def replace_line_items(
        self,
        tenant_id: str,
        claim_id: str,
        user_id: Optional[str],
        line_items: Sequence[LineItem],
    ) -> Claim:
        claim = await self.ledger.load_claim(tenant_id, claim_id, for_update=True)
        return await self._save_line_items(claim, user_id, list(line_items), "Line items replaced")

    async def add_line_item(
        self,
        tenant_id: str,
        claim_id: str,
        user_id: Optional[str],
        line_item: LineItem,
    ) -> Claim:
        claim = await self.ledger.load_claim(tenant_id, claim_id, for_update=True)
        items = line_items_from_claim(claim) + [line_item]
        return await self._save_line_items(claim, user_id, items, f"Line item {line_item.cpt} added")

    async def remove_line_item(
        self,
        tenant_id: str,
        claim_id: str,
        user_id: Optional[str],
        line_index: int,
    ) -> Claim:
        claim = await self.ledger.load_claim(tenant_id, claim_id, for_update=True)
        items = line_items_from_claim(claim)
        if line_index < 0 or line_index >= len(items):
            raise NotFoundError("Line item", str(line_index))
        removed = items.pop(line_index)
        return await self._save_line_items(claim, user_id, items, f"Line item {removed.cpt} removed")

    async def _save_line_items(
        self,
        claim: Claim,
        user_id: Optional[str],
        line_items: list[LineItem],
        notes: str,
    ) -> Claim:
        if not is_editable_status(claim.status):
            raise StateConflictError(
                f"Cannot modify line items of a claim in {claim.status.value} status",
                current_status=claim.status.value,
            )

        claim.line_items = line_items_to_json(line_items)
        claim.total_charges = total_charges(line_items)
        self._clear_scrub(claim)
        await self.ledger.transition(
            claim, TransitionEvent.EDIT, ClaimStatus.DRAFT, user_id, notes=notes
        )
        await self.ledger.commit("line item update")

        await self._after_commit(claim.tenant_id, user_id, "update_line_items", claim, [ClaimEvent.UPDATED])
        return claim

    @staticmethod
    def _clear_scrub(claim: Claim) -> None:
        claim.scrub_status = None
        claim.scrub_errors = []
        claim.scrub_warnings = []
        claim.scrub_info = []
        claim.last_scrubbed_at = None

    # =========================================================================
    # Scrubbing & Modifiers
    # =========================================================================

    async def scrub_claim(
        self,
        tenant_id: str,
        claim_id: str,
        user_id: Optional[str],
        auto_fix: bool = False,
        as_of: Optional[date] = None,
    ) -> ScrubOutcome:
        """
        Scrub a claim, optionally auto-fixing, and cache the result.

        Blocking errors move the claim to scrubbed; a clean or
        warnings-only result moves it to ready.
        """
        claim = await self.ledger.load_claim(tenant_id, claim_id, for_update=True)
        if not is_editable_status(claim.status):
            raise StateConflictError(
                f"Cannot scrub a claim in {claim.status.value} status",
                current_status=claim.status.value,
            )

        catalog = await self.catalogs.load(tenant_id)
        snapshot = snapshot_from_claim(claim)
        applied: list[ScrubIssue] = []
        passes = 0

        if auto_fix:
            fixed = self.scrubber.auto_fix(snapshot, catalog, as_of)
            result, applied, passes = fixed.result, fixed.applied, fixed.passes
            if fixed.changed:
                claim.line_items = line_items_to_json(fixed.snapshot.line_items)
                claim.diagnoses = list(fixed.snapshot.diagnoses)
                claim.total_charges = total_charges(fixed.snapshot.line_items)
        else:
            result = self.scrubber.scrub(snapshot, catalog, as_of)

        claim.scrub_status = result.status
        claim.scrub_errors = [issue.to_dict() for issue in result.errors]
        claim.scrub_warnings = [issue.to_dict() for issue in result.warnings]
        claim.scrub_info = [issue.to_dict() for issue in result.info]
        claim.last_scrubbed_at = datetime.now(timezone.utc)

        note = f"Scrub {result.status.value}"
        if applied:
            note += f" after auto-fixing {len(applied)} issue(s)"
        if result.status == ScrubStatus.ERRORS:
            await self.ledger.transition(
                claim, TransitionEvent.SCRUB_FAILED, ClaimStatus.SCRUBBED, user_id,
                source=HistorySource.SYSTEM, notes=note,
            )
        else:
            await self.ledger.transition(
                claim, TransitionEvent.SCRUB_PASSED, ClaimStatus.READY, user_id,
                source=HistorySource.SYSTEM, notes=note,
            )
        await self.ledger.commit("claim scrub")

        logger.info(
            f"Scrubbed claim {claim.claim_number}: {result.status.value} "
            f"({len(result.errors)} errors, {len(applied)} auto-fixed)"
        )
        await self._after_commit(tenant_id, user_id, "scrub", claim, [ClaimEvent.UPDATED])
        return ScrubOutcome(claim=claim, result=result, applied=applied, passes=passes)

    async def get_passed_checks(
        self,
        tenant_id: str,
        claim_id: str,
    ) -> tuple[Claim, list[ScrubCheck]]:
        """Checks that did not fire in the cached scrub (or a fresh one if never scrubbed)."""
        claim = await self.ledger.load_claim(tenant_id, claim_id)
        if claim.scrub_status is None:
            catalog = await self.catalogs.load(tenant_id)
            fired = self.scrubber.scrub(snapshot_from_claim(claim), catalog).fired_codes
        else:
            cached = (claim.scrub_errors or []) + (claim.scrub_warnings or []) + (claim.scrub_info or [])
            fired = {issue.get("code") for issue in cached}
        return claim, get_passed_checks(fired)

    async def suggest_modifiers(self, tenant_id: str, claim_id: str) -> list[ModifierSuggestion]:
        claim = await self.ledger.load_claim(tenant_id, claim_id)
        catalog = await self.catalogs.load(tenant_id)
        return suggest_modifiers(line_items_from_claim(claim), catalog.modifier_rules, claim.payer_id)

    # =========================================================================
    # Submission & Status
    # =========================================================================

    async def submit_claim(
        self,
        tenant_id: str,
        claim_id: str,
        user_id: Optional[str],
    ) -> Claim:
        """
        Submit a ready claim.

        Re-submitting an already submitted claim is a no-op. Claims with
        blocking scrub errors are rejected with StateConflictError.
        """
        claim = await self.ledger.load_claim(tenant_id, claim_id, for_update=True)
        changed = await self.ledger.transition(
            claim, TransitionEvent.SUBMIT, ClaimStatus.SUBMITTED, user_id, notes="Claim submitted"
        )
        if not changed:
            return claim

        claim.submitted_at = datetime.now(timezone.utc)
        await self.ledger.commit("claim submission")

        logger.info(f"Submitted claim {claim.claim_number}")
        await self._after_commit(tenant_id, user_id, "submit", claim, [ClaimEvent.SUBMITTED])
        return claim

    async def bulk_submit(
        self,
        tenant_id: str,
        claim_ids: Sequence[str],
        user_id: Optional[str],
    ) -> BatchResult[str, str]:
        """Submit each claim on its own; one rejection never stops the rest."""

        async def submit_one(claim_id: str) -> str:
            try:
                claim = await self.submit_claim(tenant_id, claim_id, user_id)
                return claim.id
            except Exception:
                await self.session.rollback()
                raise

        result = await run_batch(claim_ids, submit_one, item_key=lambda claim_id: claim_id)
        logger.info(
            f"Bulk submit for tenant {tenant_id}: "
            f"{len(result.successes)} submitted, {len(result.failures)} failed"
        )
        return result

    async def update_status(
        self,
        tenant_id: str,
        claim_id: str,
        user_id: Optional[str],
        status: ClaimStatus,
        notes: Optional[str] = None,
    ) -> Claim:
        """Manual status change. Paid is never accepted here."""
        claim = await self.ledger.load_claim(tenant_id, claim_id, for_update=True)
        if status == ClaimStatus.PAID:
            raise StateConflictError(
                "Status paid is set automatically when payments cover the total charges",
                current_status=claim.status.value,
            )
        if claim.status == status:
            return claim

        transition = self.ledger.state_machine.find_api_transition(claim.status, status)
        if transition is None:
            raise StateConflictError(
                f"Cannot change status from {get_status_display_name(claim.status)} "
                f"to {get_status_display_name(status)}",
                current_status=claim.status.value,
                details={"requestedStatus": status.value},
            )

        if status == ClaimStatus.DRAFT:
            self._clear_scrub(claim)
        await self.ledger.transition(claim, transition.event, status, user_id, notes=notes)
        await self.ledger.commit("status update")

        await self._after_commit(tenant_id, user_id, "update_status", claim, [ClaimEvent.STATUS_CHANGED])
        return claim

    async def deny_claim(
        self,
        tenant_id: str,
        claim_id: str,
        user_id: Optional[str],
        denial_reason: str,
        denial_code: Optional[str] = None,
        denial_date: Optional[date] = None,
    ) -> Claim:
        """Record a payer denial and categorize it."""
        claim = await self.ledger.load_claim(tenant_id, claim_id, for_update=True)
        if claim.status == ClaimStatus.DENIED:
            return claim

        previous = claim.status
        await self.ledger.transition(
            claim, TransitionEvent.DENY, ClaimStatus.DENIED, user_id, reason=denial_reason
        )
        claim.denial_reason = denial_reason
        claim.denial_code = denial_code
        claim.denial_date = denial_date or date.today()
        claim.denial_category = categorize_denial(denial_code, denial_reason)
        await self.ledger.commit("claim denial")

        logger.info(
            f"Denied claim {claim.claim_number} from {previous.value} "
            f"(category: {claim.denial_category.value})"
        )
        await self._after_commit(tenant_id, user_id, "deny", claim, [ClaimEvent.DENIED])
        return claim

    # =========================================================================
    # Payments & History
    # =========================================================================

    async def post_payment(
        self,
        tenant_id: str,
        claim_id: str,
        user_id: Optional[str],
        data: PaymentCreate,
    ) -> tuple[ClaimPayment, Claim]:
        """Post a payment; the claim becomes paid once payments cover its charges."""
        claim = await self.ledger.load_claim(tenant_id, claim_id, for_update=True)
        payment = await self.ledger.post_payment(
            claim,
            data.amount_cents,
            user_id,
            payment_date=data.payment_date,
            payment_method=data.payment_method,
            payer=data.payer,
            check_number=data.check_number,
        )
        became_paid = await self.ledger.apply_paid_in_full(claim, user_id, HistorySource.API)
        await self.ledger.commit("payment posting")

        events = [ClaimEvent.PAYMENT_RECEIVED]
        if became_paid:
            events.append(ClaimEvent.PAID)
        await self._after_commit(tenant_id, user_id, "post_payment", claim, events)
        return payment, claim

    async def list_payments(self, tenant_id: str, claim_id: str) -> list[ClaimPayment]:
        await self.ledger.load_claim(tenant_id, claim_id)
        result = await self.session.execute(
            select(ClaimPayment)
            .where(ClaimPayment.claim_id == claim_id)
            .order_by(ClaimPayment.created_at, ClaimPayment.id)
        )
        return list(result.scalars().all())

    async def get_status_history(self, tenant_id: str, claim_id: str) -> list[ClaimStatusHistory]:
        await self.ledger.load_claim(tenant_id, claim_id)
        result = await self.session.execute(
            select(ClaimStatusHistory)
            .where(ClaimStatusHistory.claim_id == claim_id)
            .order_by(ClaimStatusHistory.sequence)
        )
        return list(result.scalars().all())

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
