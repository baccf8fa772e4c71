"""
Payment posting and status bookkeeping shared by the claim services.

Provides:
- Locked claim loads scoped to a tenant
- Guarded status transitions with exactly one history entry each
- Payment posting with the paid-in-full check

Nothing here commits except ClaimLedger.commit; callers decide where the
transaction (or savepoint) ends.
"""

from datetime import date
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from claim_engine.core.enums import ClaimStatus, HistorySource
from claim_engine.models.claim import Claim, ClaimPayment, ClaimStatusHistory
from claim_engine.services.claim_state_machine import (
    ClaimStateMachine,
    TransitionContext,
    TransitionEvent,
    get_claim_state_machine,
)
from claim_engine.services.collaborators import IdGenerator
from claim_engine.utils.errors import NotFoundError, PersistenceError, StateConflictError, ValidationError
from claim_engine.utils.logging import get_logger
from claim_engine.utils.money import from_cents, to_cents

logger = get_logger(__name__)


class ClaimLedger:
    """Status transitions, history rows and payments for one session."""

    def __init__(
        self,
        session: AsyncSession,
        id_generator: IdGenerator,
        state_machine: Optional[ClaimStateMachine] = None,
    ):
        self.session = session
        self.id_generator = id_generator
        self.state_machine = state_machine or get_claim_state_machine()

    # =========================================================================
    # Loading
    # =========================================================================

    async def load_claim(
        self,
        tenant_id: str,
        claim_id: str,
        for_update: bool = False,
    ) -> Claim:
        """Load a tenant's claim or raise NotFoundError."""
        query = select(Claim).where(Claim.id == claim_id, Claim.tenant_id == tenant_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        claim = result.scalar_one_or_none()
        if claim is None:
            raise NotFoundError("Claim", claim_id)
        return claim

    # =========================================================================
    # Transitions
    # =========================================================================

    async def transition(
        self,
        claim: Claim,
        event: TransitionEvent,
        target: ClaimStatus,
        changed_by: Optional[str],
        source: HistorySource = HistorySource.API,
        notes: Optional[str] = None,
        reason: Optional[str] = None,
        automatic: bool = False,
        metadata: Optional[dict] = None,
    ) -> bool:
        """
        Move the claim to `target` and append its history entry.

        Returns False for a same-status request (no history row) unless
        the event is defined as re-entrant for that status. Raises
        StateConflictError when the state machine rejects the move.
        """
        current = claim.status
        if current == target:
            reentrant = self.state_machine.get_transition(current, event)
            if reentrant is None or reentrant.to_status != current:
                return False

        context_metadata = {"scrub_status": claim.scrub_status}
        context_metadata.update(metadata or {})
        context = TransitionContext(
            claim_id=claim.id,
            current_status=current,
            target_status=target,
            event=event,
            triggered_by=changed_by,
            reason=reason,
            automatic=automatic,
            metadata=context_metadata,
        )
        result = self.state_machine.execute_transition(context)
        if not result.success:
            raise StateConflictError(
                result.error or "Invalid status transition",
                current_status=current.value,
                details={"requestedStatus": target.value, "event": event.value},
            )

        claim.status = target
        await self.append_history(claim, current, target, changed_by, source, notes or reason)
        return True

    async def append_history(
        self,
        claim: Claim,
        previous_status: Optional[ClaimStatus],
        status: ClaimStatus,
        changed_by: Optional[str],
        source: HistorySource = HistorySource.API,
        notes: Optional[str] = None,
    ) -> ClaimStatusHistory:
        result = await self.session.execute(
            select(func.coalesce(func.max(ClaimStatusHistory.sequence), 0))
            .where(ClaimStatusHistory.claim_id == claim.id)
        )
        sequence = int(result.scalar_one()) + 1

        entry = ClaimStatusHistory(
            id=self.id_generator.new_id(),
            claim_id=claim.id,
            sequence=sequence,
            previous_status=previous_status,
            status=status,
            notes=notes,
            source=source,
            changed_by=changed_by,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    # =========================================================================
    # Payments
    # =========================================================================

    async def total_paid_cents(self, claim_id: str) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.sum(ClaimPayment.amount_cents), 0))
            .where(ClaimPayment.claim_id == claim_id)
        )
        return int(result.scalar_one())

    async def post_payment(
        self,
        claim: Claim,
        amount_cents: int,
        posted_by: Optional[str],
        payment_date: Optional[date] = None,
        payment_method: Optional[str] = None,
        payer: Optional[str] = None,
        check_number: Optional[str] = None,
        era_batch_id: Optional[str] = None,
    ) -> ClaimPayment:
        """Append a payment and refresh the claim's denormalized paid amount."""
        if amount_cents <= 0:
            raise ValidationError(
                "Payment amount must be positive",
                field_errors={"amountCents": ["must be greater than 0"]},
            )

        payment = ClaimPayment(
            id=self.id_generator.new_id(),
            claim_id=claim.id,
            amount_cents=amount_cents,
            payment_date=payment_date or date.today(),
            payment_method=payment_method,
            payer=payer if payer is not None else claim.payer_name,
            check_number=check_number,
            era_batch_id=era_batch_id,
            posted_by=posted_by,
        )
        self.session.add(payment)
        await self.session.flush()

        claim.paid_amount = from_cents(await self.total_paid_cents(claim.id))
        logger.info(f"Posted {amount_cents} cents to claim {claim.claim_number}")
        return payment

    def is_paid_in_full(self, claim: Claim) -> bool:
        return to_cents(claim.paid_amount or 0) >= to_cents(claim.total_charges or 0)

    async def apply_paid_in_full(
        self,
        claim: Claim,
        changed_by: Optional[str],
        source: HistorySource,
        notes: Optional[str] = None,
    ) -> bool:
        """Transition to paid when posted payments cover the total charges."""
        if claim.status == ClaimStatus.PAID or not self.is_paid_in_full(claim):
            return False
        return await self.transition(
            claim,
            TransitionEvent.PAYMENT_COMPLETE,
            ClaimStatus.PAID,
            changed_by,
            source=source,
            notes=notes or "Paid in full",
            automatic=True,
        )

    # =========================================================================
    # Transaction
    # =========================================================================

    async def commit(self, operation: str) -> None:
        """Commit, converting store failures into a sanitized PersistenceError."""
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Commit failed during {operation}: {type(e).__name__}")
            raise PersistenceError(operation) from e
