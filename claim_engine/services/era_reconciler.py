"""
ERA Reconciler.

Matches remittance records to claims and posts what they pay.

Matching stops at the first hit, in this order:
1. Claim id
2. Claim number
3. Patient name ("Last, First" or "First Last") + service date, limited to
   claims open for payment; the newest matching claim wins

Each record runs in its own savepoint: a failing record is rolled back,
reported under `errors`, and the batch moves on.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from claim_engine.core.config import ClaimsSettings, get_claims_settings
from claim_engine.core.enums import (
    ClaimStatus,
    EraBatchStatus,
    HistorySource,
    MatchStrategy,
    PaymentMethod,
)
from claim_engine.models.catalog import Patient
from claim_engine.models.claim import Claim, ClaimAdjustment
from claim_engine.models.era import EraImportBatch
from claim_engine.schemas.era import EraClaimRecord, EraImportRequest, EraImportResponse, EraSummary
from claim_engine.services.appeal_tracker import categorize_denial
from claim_engine.services.batch import run_batch
from claim_engine.services.claim_state_machine import TransitionEvent
from claim_engine.services.collaborators import (
    AuditSink,
    ClaimEvent,
    EventEmitter,
    IdGenerator,
    LoggingAuditSink,
    LoggingEventEmitter,
    UuidIdGenerator,
    emit_safely,
    record_audit_safely,
)
from claim_engine.services.payment_posting import ClaimLedger
from claim_engine.utils.errors import NotFoundError, PersistenceError, ValidationError
from claim_engine.utils.logging import get_logger
from claim_engine.utils.money import from_cents

logger = get_logger(__name__)

UNMATCHED_REASON = "No claim matched the claim id, claim number or patient name and service date"


# =============================================================================
# Name Matching
# =============================================================================


def parse_patient_name(name: Optional[str]) -> Optional[tuple[str, str]]:
    """
    Split a remittance patient name into (first, last).

    "DOE, JANE M" and "Jane M Doe" both give ("JANE", "DOE") modulo case.
    Returns None when the name has fewer than two parts.
    """
    if not name or not name.strip():
        return None
    if "," in name:
        last, _, rest = name.partition(",")
        first_parts = rest.split()
        last = last.strip()
        if not last or not first_parts:
            return None
        return first_parts[0], last
    parts = name.split()
    if len(parts) < 2:
        return None
    return parts[0], parts[-1]


_LIKE_SPECIALS = re.compile(r"([\\%_])")


def like_prefix(value: str) -> str:
    """Lower-cased LIKE prefix pattern with wildcards escaped."""
    return _LIKE_SPECIALS.sub(r"\\\1", value.strip().lower()) + "%"


@dataclass
class ClaimMatch:
    claim: Claim
    strategy: MatchStrategy


# =============================================================================
# Record Outcomes
# =============================================================================


@dataclass
class RecordOutcome:
    """What happened to one record that did not fail."""

    matched: Optional[dict[str, Any]] = None
    unmatched: Optional[dict[str, Any]] = None
    posted_cents: int = 0
    adjustment_cents: int = 0
    denied: bool = False
    partial: bool = False
    events: list[tuple[ClaimEvent, dict[str, Any]]] = field(default_factory=list)


@dataclass
class _BatchTally:
    matched: list[dict[str, Any]] = field(default_factory=list)
    unmatched: list[dict[str, Any]] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)
    auto_posted: int = 0
    denied: int = 0
    partial_payments: int = 0
    paid_cents: int = 0
    adjustment_cents: int = 0
    events: list[tuple[ClaimEvent, dict[str, Any]]] = field(default_factory=list)

    def add(self, outcome: RecordOutcome) -> None:
        if outcome.unmatched is not None:
            self.unmatched.append(outcome.unmatched)
            return
        self.matched.append(outcome.matched)
        self.paid_cents += outcome.posted_cents
        self.adjustment_cents += outcome.adjustment_cents
        if outcome.posted_cents > 0:
            self.auto_posted += 1
        if outcome.denied:
            self.denied += 1
        if outcome.partial:
            self.partial_payments += 1
        self.events.extend(outcome.events)


def _record_key(raw: Any) -> Optional[str]:
    """Claim number for error reporting, read before validation."""
    if isinstance(raw, dict):
        value = raw.get("claimNumber") or raw.get("claim_number")
        return str(value) if value is not None else None
    return None


# =============================================================================
# ERA Reconciler
# =============================================================================


class EraReconciler:
    """Imports remittance batches and auto-posts matched records."""

    def __init__(
        self,
        session: AsyncSession,
        id_generator: Optional[IdGenerator] = None,
        audit_sink: Optional[AuditSink] = None,
        event_emitter: Optional[EventEmitter] = None,
        settings: Optional[ClaimsSettings] = None,
    ):
        self.session = session
        self.settings = settings or get_claims_settings()
        self.id_generator = id_generator or UuidIdGenerator()
        self.audit_sink = audit_sink or LoggingAuditSink()
        self.event_emitter = event_emitter or LoggingEventEmitter()
        self.ledger = ClaimLedger(session, self.id_generator)

    # =========================================================================
    # Import
    # =========================================================================

    async def import_batch(
        self,
        tenant_id: str,
        user_id: Optional[str],
        request: EraImportRequest,
    ) -> EraImportResponse:
        """
        Reconcile a remittance batch.

        Raises:
            ValidationError: Too many records in one batch
            PersistenceError: The batch could not be created or completed
        """
        if len(request.claims) > self.settings.ERA_MAX_RECORDS:
            raise ValidationError(
                f"ERA import accepts at most {self.settings.ERA_MAX_RECORDS} records",
                field_errors={"claims": [f"at most {self.settings.ERA_MAX_RECORDS} records"]},
            )

        filename = request.filename or f"era-{datetime.now(timezone.utc):%Y%m%d%H%M%S}"
        batch = EraImportBatch(
            id=self.id_generator.new_id(),
            tenant_id=tenant_id,
            filename=filename,
            claim_count=len(request.claims),
            status=EraBatchStatus.PROCESSING,
            imported_by=user_id,
        )
        self.session.add(batch)
        await self.ledger.commit("ERA batch creation")
        batch_id = batch.id

        logger.info(f"ERA import {batch_id} started for tenant {tenant_id}: {len(request.claims)} records")

        tally = _BatchTally()

        async def reconcile(item: tuple[int, Any]) -> RecordOutcome:
            async with self.session.begin_nested():
                return await self._process_record(tenant_id, user_id, batch_id, item[0], item[1])

        results = await run_batch(
            list(enumerate(request.claims)),
            reconcile,
            item_key=lambda item: _record_key(item[1]),
        )
        for outcome in results.successes:
            tally.add(outcome)
        for failure in results.failures:
            tally.errors.append({"claimNumber": failure.error.item_key, "error": failure.error.message})
            logger.warning(f"ERA import {batch_id} record {failure.item[0]} failed: {failure.error.message}")

        batch.status = EraBatchStatus.COMPLETED
        batch.matched = len(tally.matched)
        batch.auto_posted = tally.auto_posted
        batch.unmatched = len(tally.unmatched)
        batch.denied = tally.denied
        batch.partial_payments = tally.partial_payments
        batch.errored = len(tally.errors)
        batch.total_paid_cents = tally.paid_cents
        batch.total_adjustment_cents = tally.adjustment_cents
        batch.completed_at = datetime.now(timezone.utc)
        try:
            await self.ledger.commit("ERA import")
        except PersistenceError:
            await self._mark_failed(tenant_id, batch_id)
            raise

        logger.info(
            f"ERA import {batch_id} completed: {batch.matched} matched, "
            f"{batch.unmatched} unmatched, {batch.errored} errors"
        )

        await record_audit_safely(self.audit_sink, tenant_id, user_id, "era_import", "era_batch", batch_id)
        for event, payload in tally.events:
            await emit_safely(self.event_emitter, event, tenant_id, payload)

        return EraImportResponse(
            era_id=batch_id,
            filename=filename,
            summary=EraSummary(
                total_claims=len(request.claims),
                matched=batch.matched,
                auto_posted=batch.auto_posted,
                unmatched=batch.unmatched,
                denied=batch.denied,
                partial_payments=batch.partial_payments,
                total_paid=from_cents(tally.paid_cents),
                total_adjustments=from_cents(tally.adjustment_cents),
            ),
            matched_claims=tally.matched,
            unmatched_claims=tally.unmatched,
            errors=tally.errors or None,
        )

    async def _mark_failed(self, tenant_id: str, batch_id: str) -> None:
        batch = await self.session.scalar(
            select(EraImportBatch).where(
                EraImportBatch.id == batch_id,
                EraImportBatch.tenant_id == tenant_id,
            )
        )
        if batch is None:
            return
        batch.status = EraBatchStatus.FAILED
        batch.completed_at = datetime.now(timezone.utc)
        await self.ledger.commit("ERA batch failure marking")

    async def _process_record(
        self,
        tenant_id: str,
        user_id: Optional[str],
        batch_id: str,
        index: int,
        raw: Any,
    ) -> RecordOutcome:
        record = EraClaimRecord.model_validate(raw)

        match = await self.match_record(tenant_id, record)
        if match is None:
            return RecordOutcome(unmatched={
                "index": index,
                "claimNumber": record.claim_number,
                "patientName": record.patient_name,
                "serviceDate": record.service_date.isoformat() if record.service_date else None,
                "paidAmountCents": record.paid_amount_cents,
                "reason": UNMATCHED_REASON,
            })

        claim = match.claim
        previous = claim.status
        outcome = RecordOutcome()

        if record.paid_amount_cents > 0:
            await self.ledger.post_payment(
                claim,
                record.paid_amount_cents,
                user_id,
                payment_date=record.payment_date,
                payment_method=PaymentMethod.ERA.value,
                payer=record.payer_name,
                check_number=record.check_number,
                era_batch_id=batch_id,
            )
            outcome.posted_cents = record.paid_amount_cents

        for adjustment in record.adjustments:
            self.session.add(ClaimAdjustment(
                id=self.id_generator.new_id(),
                claim_id=claim.id,
                code=adjustment.code,
                reason=adjustment.reason,
                amount_cents=adjustment.amount_cents,
                era_batch_id=batch_id,
            ))
        outcome.adjustment_cents = record.adjustment_cents

        if record.patient_responsibility_cents is not None:
            claim.patient_responsibility = from_cents(record.patient_responsibility_cents)

        note = f"ERA auto-post: {record.paid_amount_cents} cents paid (batch {batch_id}, matched by {match.strategy.value})"
        if record.denial_code:
            reason = record.denial_reason or f"Denied with code {record.denial_code}"
            changed = await self.ledger.transition(
                claim,
                TransitionEvent.DENY,
                ClaimStatus.DENIED,
                user_id,
                source=HistorySource.ERA,
                notes=f"{note}; denied {record.denial_code}",
                reason=reason,
            )
            if not changed:
                await self.ledger.append_history(claim, previous, previous, user_id, HistorySource.ERA, note)
            claim.denial_code = record.denial_code
            claim.denial_reason = reason
            claim.denial_date = record.payment_date or datetime.now(timezone.utc).date()
            claim.denial_category = categorize_denial(record.denial_code, reason)
            outcome.denied = True
        elif not await self.ledger.apply_paid_in_full(claim, user_id, HistorySource.ERA, notes=note):
            await self.ledger.append_history(claim, previous, previous, user_id, HistorySource.ERA, note)
            outcome.partial = record.paid_amount_cents > 0 and claim.status != ClaimStatus.PAID

        payload = {"claimId": claim.id, "claimNumber": claim.claim_number, "status": claim.status.value}
        if outcome.posted_cents:
            outcome.events.append((ClaimEvent.PAYMENT_RECEIVED, payload))
        if claim.status != previous:
            outcome.events.append((ClaimEvent.STATUS_CHANGED, payload))
            if claim.status == ClaimStatus.DENIED:
                outcome.events.append((ClaimEvent.DENIED, payload))
            elif claim.status == ClaimStatus.PAID:
                outcome.events.append((ClaimEvent.PAID, payload))

        outcome.matched = {
            "claimId": claim.id,
            "claimNumber": claim.claim_number,
            "matchedBy": match.strategy.value,
            "paidAmountCents": record.paid_amount_cents,
            "previousStatus": previous.value,
            "newStatus": claim.status.value,
        }
        return outcome

    # =========================================================================
    # Matching
    # =========================================================================

    async def match_record(self, tenant_id: str, record: EraClaimRecord) -> Optional[ClaimMatch]:
        """First hit of claim id, claim number, then patient name + service date."""
        if record.claim_id:
            claim = await self._match_by_id(tenant_id, record.claim_id)
            if claim:
                return ClaimMatch(claim, MatchStrategy.CLAIM_ID)
        if record.claim_number:
            claim = await self._match_by_number(tenant_id, record.claim_number)
            if claim:
                return ClaimMatch(claim, MatchStrategy.CLAIM_NUMBER)
        if record.patient_name and record.service_date:
            claim = await self._match_by_patient(tenant_id, record)
            if claim:
                return ClaimMatch(claim, MatchStrategy.PATIENT_NAME)
        return None

    async def _match_by_id(self, tenant_id: str, claim_id: str) -> Optional[Claim]:
        result = await self.session.execute(
            select(Claim)
            .where(Claim.id == claim_id, Claim.tenant_id == tenant_id)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def _match_by_number(self, tenant_id: str, claim_number: str) -> Optional[Claim]:
        result = await self.session.execute(
            select(Claim)
            .where(Claim.claim_number == claim_number, Claim.tenant_id == tenant_id)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def _match_by_patient(self, tenant_id: str, record: EraClaimRecord) -> Optional[Claim]:
        parsed = parse_patient_name(record.patient_name)
        if parsed is None:
            return None
        first, last = parsed

        result = await self.session.execute(
            select(Claim)
            .join(
                Patient,
                and_(Patient.id == Claim.patient_id, Patient.tenant_id == Claim.tenant_id),
            )
            .where(
                Claim.tenant_id == tenant_id,
                Claim.service_date == record.service_date,
                Claim.status.in_(self.settings.fuzzy_match_statuses),
                func.lower(Patient.last_name).like(like_prefix(last), escape="\\"),
                func.lower(Patient.first_name).like(like_prefix(first), escape="\\"),
            )
            .order_by(Claim.created_at.desc(), Claim.id.desc())
            .limit(1)
            .with_for_update(of=Claim)
        )
        return result.scalars().first()

    # =========================================================================
    # Batches
    # =========================================================================

    async def get_batch(self, tenant_id: str, batch_id: str) -> EraImportBatch:
        batch = await self.session.scalar(
            select(EraImportBatch).where(
                EraImportBatch.id == batch_id,
                EraImportBatch.tenant_id == tenant_id,
            )
        )
        if batch is None:
            raise NotFoundError("ERA batch", batch_id)
        return batch

    async def list_batches(
        self,
        tenant_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[EraImportBatch]:
        result = await self.session.execute(
            select(EraImportBatch)
            .where(EraImportBatch.tenant_id == tenant_id)
            .order_by(EraImportBatch.created_at.desc(), EraImportBatch.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())
