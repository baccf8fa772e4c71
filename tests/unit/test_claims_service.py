"""
Claims Service Tests.

Tests for:
- Claim creation, lookup, listing and tenant isolation
- Line item edits and scrub invalidation
- Scrub persistence and auto-fix
- Submission guard, bulk submission and manual status changes
- Payments, the paid-in-full transition and status history
"""

from datetime import date

import pytest
from conftest import OTHER_TENANT_ID, TENANT_ID, USER_ID, claim_create, line
from sqlalchemy import update

from claim_engine.core.enums import (
    ClaimStatus,
    DenialCategory,
    HistorySource,
    ScrubStatus,
)
from claim_engine.models import Claim
from claim_engine.schemas.claim import PaymentCreate
from claim_engine.services.claim_records import LineItem
from claim_engine.services.claims_service import ClaimFilters, ClaimsService
from claim_engine.services.collaborators import ClaimEvent
from claim_engine.utils.errors import NotFoundError, StateConflictError, ValidationError


@pytest.fixture
def service(db_session, id_generator, audit_sink, event_emitter, claims_settings):
    return ClaimsService(
        db_session,
        id_generator=id_generator,
        audit_sink=audit_sink,
        event_emitter=event_emitter,
        settings=claims_settings,
    )


async def ready_claim(service: ClaimsService, **overrides) -> Claim:
    claim = await service.create_claim(TENANT_ID, USER_ID, claim_create(**overrides))
    outcome = await service.scrub_claim(TENANT_ID, claim.id, USER_ID)
    assert outcome.claim.status == ClaimStatus.READY
    return outcome.claim


async def submitted_claim(service: ClaimsService, **overrides) -> Claim:
    claim = await ready_claim(service, **overrides)
    return await service.submit_claim(TENANT_ID, claim.id, USER_ID)


def payment(amount_cents: int) -> PaymentCreate:
    return PaymentCreate(amount_cents=amount_cents, payment_date=date(2025, 3, 1))


@pytest.mark.unit
class TestCreateClaim:
    """Test claim creation and retrieval."""

    async def test_create_claim(self, service, audit_sink, event_emitter):
        """Totals are charge x units in cents; the claim starts as draft."""
        claim = await service.create_claim(TENANT_ID, USER_ID, claim_create())

        assert claim.id == "id-000001"
        assert claim.claim_number == "CLM-TEST-000001"
        assert claim.status == ClaimStatus.DRAFT
        assert claim.total_charges == 300
        assert claim.paid_amount == 0
        assert claim.scrub_status is None
        assert claim.line_items[1] == {
            "cpt": "11101",
            "modifiers": [],
            "dx": ["L82.1"],
            "units": 2,
            "charge": "75.00",
            "description": None,
        }

        audit_sink.record.assert_awaited_once_with(TENANT_ID, USER_ID, "create", "claim", claim.id)
        event, tenant, payload = event_emitter.emit.await_args.args
        assert event == ClaimEvent.CREATED
        assert tenant == TENANT_ID
        assert payload == {"claimId": claim.id, "claimNumber": claim.claim_number, "status": "draft"}

    async def test_create_writes_first_history_entry(self, service):
        claim = await service.create_claim(TENANT_ID, USER_ID, claim_create())

        history = await service.get_status_history(TENANT_ID, claim.id)

        assert len(history) == 1
        assert history[0].sequence == 1
        assert history[0].previous_status is None
        assert history[0].status == ClaimStatus.DRAFT
        assert history[0].notes == "Claim created"

    async def test_other_tenant_cannot_see_claim(self, service):
        claim = await service.create_claim(TENANT_ID, USER_ID, claim_create())

        with pytest.raises(NotFoundError):
            await service.get_claim(OTHER_TENANT_ID, claim.id)

    async def test_missing_claim(self, service):
        with pytest.raises(NotFoundError) as exc_info:
            await service.get_claim(TENANT_ID, "missing")
        assert exc_info.value.message == "Claim not found: missing"

    async def test_audit_failure_does_not_fail_create(self, service, audit_sink):
        """Audit writes happen after the commit and are best effort."""
        audit_sink.record.side_effect = RuntimeError("audit store down")

        claim = await service.create_claim(TENANT_ID, USER_ID, claim_create())

        assert (await service.get_claim(TENANT_ID, claim.id)).status == ClaimStatus.DRAFT


@pytest.mark.unit
class TestListClaims:
    """Test filtered listing."""

    async def test_filters_and_total(self, service):
        first = await service.create_claim(TENANT_ID, USER_ID, claim_create())
        await service.create_claim(TENANT_ID, USER_ID, claim_create(payerId="medicare", payerName="Medicare"))
        await service.create_claim(OTHER_TENANT_ID, USER_ID, claim_create())
        await service.scrub_claim(TENANT_ID, first.id, USER_ID)

        claims, total = await service.list_claims(TENANT_ID)
        assert total == 2

        ready, ready_total = await service.list_claims(TENANT_ID, ClaimFilters(statuses=[ClaimStatus.READY]))
        assert ready_total == 1
        assert ready[0].id == first.id

        medicare, _ = await service.list_claims(TENANT_ID, ClaimFilters(payer_id="medicare"))
        assert [c.payer_name for c in medicare] == ["Medicare"]

        clean, _ = await service.list_claims(TENANT_ID, ClaimFilters(scrub_status=ScrubStatus.CLEAN))
        assert [c.id for c in clean] == [first.id]

    async def test_pagination(self, service):
        for _ in range(3):
            await service.create_claim(TENANT_ID, USER_ID, claim_create())

        page, total = await service.list_claims(TENANT_ID, ClaimFilters(limit=2, offset=2))

        assert total == 3
        assert len(page) == 1


@pytest.mark.unit
class TestLineItems:
    """Test line item edits."""

    async def test_add_line_item_resets_ready_claim(self, service):
        """Editing a scrubbed claim drops its scrub and returns it to draft."""
        claim = await ready_claim(service)

        updated = await service.add_line_item(
            TENANT_ID, claim.id, USER_ID, LineItem.from_json(line("17000", "120.00"))
        )

        assert updated.status == ClaimStatus.DRAFT
        assert updated.total_charges == 420
        assert updated.scrub_status is None
        assert updated.scrub_errors == []
        history = await service.get_status_history(TENANT_ID, claim.id)
        assert [h.status for h in history] == [ClaimStatus.DRAFT, ClaimStatus.READY, ClaimStatus.DRAFT]

    async def test_replace_and_remove(self, service):
        claim = await service.create_claim(TENANT_ID, USER_ID, claim_create())

        replaced = await service.replace_line_items(
            TENANT_ID, claim.id, USER_ID, [LineItem.from_json(line("11102", "80.00", units=3))]
        )
        assert replaced.total_charges == 240

        removed = await service.remove_line_item(TENANT_ID, claim.id, USER_ID, 0)
        assert removed.line_items == []
        assert removed.total_charges == 0

    async def test_draft_edit_adds_no_history(self, service):
        claim = await service.create_claim(TENANT_ID, USER_ID, claim_create())

        await service.remove_line_item(TENANT_ID, claim.id, USER_ID, 1)

        assert len(await service.get_status_history(TENANT_ID, claim.id)) == 1

    async def test_remove_out_of_range(self, service):
        claim = await service.create_claim(TENANT_ID, USER_ID, claim_create())

        with pytest.raises(NotFoundError):
            await service.remove_line_item(TENANT_ID, claim.id, USER_ID, 5)

    async def test_submitted_claim_is_locked(self, service):
        claim = await submitted_claim(service)

        with pytest.raises(StateConflictError) as exc_info:
            await service.add_line_item(TENANT_ID, claim.id, USER_ID, LineItem.from_json(line("17000", "10.00")))
        assert exc_info.value.current_status == "submitted"


@pytest.mark.unit
class TestScrubClaim:
    """Test scrub persistence."""

    async def test_clean_scrub_moves_to_ready(self, service):
        claim = await service.create_claim(TENANT_ID, USER_ID, claim_create())

        outcome = await service.scrub_claim(TENANT_ID, claim.id, USER_ID)

        assert outcome.result.status == ScrubStatus.CLEAN
        assert outcome.claim.status == ClaimStatus.READY
        assert outcome.claim.scrub_status == ScrubStatus.CLEAN
        assert outcome.claim.last_scrubbed_at is not None
        history = await service.get_status_history(TENANT_ID, claim.id)
        assert history[-1].source == HistorySource.SYSTEM
        assert history[-1].notes == "Scrub clean"

    async def test_blocking_errors_move_to_scrubbed(self, service):
        claim = await service.create_claim(
            TENANT_ID, USER_ID, claim_create(lineItems=[line("11402", "200.00"), line("12001", "80.00")])
        )

        outcome = await service.scrub_claim(TENANT_ID, claim.id, USER_ID)

        assert outcome.claim.status == ClaimStatus.SCRUBBED
        assert outcome.claim.scrub_status == ScrubStatus.ERRORS
        assert outcome.claim.scrub_errors[0]["code"] == "MUTUALLY_EXCLUSIVE_CODES"

    async def test_auto_fix_persists_corrections(self, service):
        claim = await service.create_claim(
            TENANT_ID, USER_ID, claim_create(lineItems=[line("99213", "120.00"), line("11102", "90.00")])
        )

        outcome = await service.scrub_claim(TENANT_ID, claim.id, USER_ID, auto_fix=True)

        assert outcome.result.status == ScrubStatus.CLEAN
        assert [issue.code for issue in outcome.applied] == ["MISSING_REQUIRED_MODIFIER"]
        assert outcome.passes == 1
        assert outcome.claim.line_items[0]["modifiers"] == ["25"]
        assert outcome.claim.status == ClaimStatus.READY

    async def test_rescrub_without_changes_keeps_status(self, service):
        claim = await ready_claim(service)

        outcome = await service.scrub_claim(TENANT_ID, claim.id, USER_ID)

        assert outcome.claim.status == ClaimStatus.READY
        assert len(await service.get_status_history(TENANT_ID, claim.id)) == 2

    async def test_cannot_scrub_submitted_claim(self, service):
        claim = await submitted_claim(service)

        with pytest.raises(StateConflictError):
            await service.scrub_claim(TENANT_ID, claim.id, USER_ID)

    async def test_passed_checks_uses_cached_scrub(self, service):
        claim = await service.create_claim(TENANT_ID, USER_ID, claim_create(lineItems=[line("15780", "300.00")]))
        await service.scrub_claim(TENANT_ID, claim.id, USER_ID)

        _, checks = await service.get_passed_checks(TENANT_ID, claim.id)

        names = [check.name for check in checks]
        assert "cosmetic_documentation" not in names
        assert "required_identifiers" in names

    async def test_passed_checks_without_scrub(self, service):
        claim = await service.create_claim(TENANT_ID, USER_ID, claim_create(payerId=None))

        _, checks = await service.get_passed_checks(TENANT_ID, claim.id)

        assert "required_identifiers" not in [check.name for check in checks]

    async def test_modifier_suggestions(self, service):
        claim = await service.create_claim(
            TENANT_ID, USER_ID, claim_create(lineItems=[line("99213", "120.00"), line("11102", "90.00")])
        )

        suggestions = await service.suggest_modifiers(TENANT_ID, claim.id)

        assert [(s.line_index, s.modifier) for s in suggestions] == [(0, "25")]


@pytest.mark.unit
class TestSubmission:
    """Test the submission guard and bulk submission."""

    async def test_submit_ready_claim(self, service, event_emitter):
        claim = await submitted_claim(service)

        assert claim.status == ClaimStatus.SUBMITTED
        assert claim.submitted_at is not None
        assert event_emitter.emit.await_args.args[0] == ClaimEvent.SUBMITTED

    async def test_resubmit_is_noop(self, service):
        claim = await submitted_claim(service)

        again = await service.submit_claim(TENANT_ID, claim.id, USER_ID)

        assert again.status == ClaimStatus.SUBMITTED
        assert len(await service.get_status_history(TENANT_ID, claim.id)) == 3

    async def test_unscrubbed_draft_cannot_be_submitted(self, service):
        claim = await service.create_claim(TENANT_ID, USER_ID, claim_create())

        with pytest.raises(StateConflictError) as exc_info:
            await service.submit_claim(TENANT_ID, claim.id, USER_ID)
        assert exc_info.value.current_status == "draft"

    async def test_scrub_errors_block_submission(self, service):
        """A claim with scrub errors never reaches submitted."""
        claim = await service.create_claim(
            TENANT_ID, USER_ID, claim_create(lineItems=[line("11402", "200.00"), line("12001", "80.00")])
        )
        await service.scrub_claim(TENANT_ID, claim.id, USER_ID)

        with pytest.raises(StateConflictError):
            await service.submit_claim(TENANT_ID, claim.id, USER_ID)

    async def test_ready_claim_with_errors_is_rejected(self, service, db_session):
        claim = await ready_claim(service)
        claim_id = claim.id
        await db_session.execute(
            update(Claim).where(Claim.id == claim_id).values(scrub_status=ScrubStatus.ERRORS)
        )
        await db_session.commit()
        db_session.expire_all()

        with pytest.raises(StateConflictError) as exc_info:
            await service.submit_claim(TENANT_ID, claim_id, USER_ID)

        assert exc_info.value.message == "Claim has unresolved scrub errors"
        reloaded = await service.get_claim(TENANT_ID, claim_id)
        assert reloaded.status == ClaimStatus.READY

    async def test_bulk_submit_isolates_failures(self, service):
        ready_id = (await ready_claim(service)).id
        draft_id = (await service.create_claim(TENANT_ID, USER_ID, claim_create())).id

        result = await service.bulk_submit(TENANT_ID, [ready_id, draft_id, "missing"], USER_ID)

        assert result.successes == [ready_id]
        assert [f.item for f in result.failures] == [draft_id, "missing"]
        assert result.failures[1].error.message == "Claim not found: missing"
        assert result.total == 3
        assert (await service.get_claim(TENANT_ID, ready_id)).status == ClaimStatus.SUBMITTED
        assert (await service.get_claim(TENANT_ID, draft_id)).status == ClaimStatus.DRAFT


@pytest.mark.unit
class TestStatusChanges:
    """Test manual status changes and denials."""

    async def test_accept_submitted_claim(self, service):
        claim = await submitted_claim(service)

        accepted = await service.update_status(TENANT_ID, claim.id, USER_ID, ClaimStatus.ACCEPTED, "Payer ack")

        assert accepted.status == ClaimStatus.ACCEPTED
        history = await service.get_status_history(TENANT_ID, claim.id)
        assert history[-1].notes == "Payer ack"
        assert history[-1].previous_status == ClaimStatus.SUBMITTED

    async def test_back_to_draft_clears_scrub(self, service):
        claim = await ready_claim(service)

        draft = await service.update_status(TENANT_ID, claim.id, USER_ID, ClaimStatus.DRAFT)

        assert draft.status == ClaimStatus.DRAFT
        assert draft.scrub_status is None

    async def test_paid_cannot_be_set(self, service):
        claim = await submitted_claim(service)

        with pytest.raises(StateConflictError):
            await service.update_status(TENANT_ID, claim.id, USER_ID, ClaimStatus.PAID)

    async def test_illegal_status_change(self, service):
        claim = await service.create_claim(TENANT_ID, USER_ID, claim_create())

        with pytest.raises(StateConflictError) as exc_info:
            await service.update_status(TENANT_ID, claim.id, USER_ID, ClaimStatus.SUBMITTED)

        assert exc_info.value.details == {"requestedStatus": "submitted"}

    async def test_same_status_is_noop(self, service):
        claim = await service.create_claim(TENANT_ID, USER_ID, claim_create())

        await service.update_status(TENANT_ID, claim.id, USER_ID, ClaimStatus.DRAFT)

        assert len(await service.get_status_history(TENANT_ID, claim.id)) == 1

    async def test_deny_categorizes(self, service, event_emitter):
        claim = await submitted_claim(service)

        denied = await service.deny_claim(
            TENANT_ID, claim.id, USER_ID, "Modifier missing", denial_code="CO-4", denial_date=date(2025, 1, 1)
        )

        assert denied.status == ClaimStatus.DENIED
        assert denied.denial_category == DenialCategory.ELIGIBILITY
        assert denied.denial_date == date(2025, 1, 1)
        assert event_emitter.emit.await_args.args[0] == ClaimEvent.DENIED

    async def test_deny_draft_rejected(self, service):
        claim = await service.create_claim(TENANT_ID, USER_ID, claim_create())

        with pytest.raises(StateConflictError):
            await service.deny_claim(TENANT_ID, claim.id, USER_ID, "Not covered")


@pytest.mark.unit
class TestPayments:
    """Test payment posting and the paid-in-full transition."""

    async def test_full_lifecycle(self, service, event_emitter):
        """Create, scrub, submit, then a 30000 cent payment closes the 300.00 claim."""
        claim = await submitted_claim(service)

        posted, updated = await service.post_payment(TENANT_ID, claim.id, USER_ID, payment(30000))

        assert posted.amount_cents == 30000
        assert posted.payer == "Aetna"
        assert posted.payment_method == "Manual"
        assert updated.status == ClaimStatus.PAID
        assert updated.paid_amount == 300
        history = await service.get_status_history(TENANT_ID, claim.id)
        assert [h.status for h in history] == [
            ClaimStatus.DRAFT,
            ClaimStatus.READY,
            ClaimStatus.SUBMITTED,
            ClaimStatus.PAID,
        ]
        assert [h.sequence for h in history] == [1, 2, 3, 4]
        emitted = [call.args[0] for call in event_emitter.emit.await_args_list[-2:]]
        assert emitted == [ClaimEvent.PAYMENT_RECEIVED, ClaimEvent.PAID]

    async def test_payment_on_draft_can_complete(self, service):
        claim = await service.create_claim(TENANT_ID, USER_ID, claim_create())

        _, updated = await service.post_payment(TENANT_ID, claim.id, USER_ID, payment(30000))

        assert updated.status == ClaimStatus.PAID

    async def test_partial_then_full(self, service):
        claim = await submitted_claim(service)

        _, partial = await service.post_payment(TENANT_ID, claim.id, USER_ID, payment(10000))
        assert partial.status == ClaimStatus.SUBMITTED
        assert partial.paid_amount == 100

        _, paid = await service.post_payment(TENANT_ID, claim.id, USER_ID, payment(20000))
        assert paid.status == ClaimStatus.PAID

        payments = await service.list_payments(TENANT_ID, claim.id)
        assert [p.amount_cents for p in payments] == [10000, 20000]

    async def test_payment_after_paid_keeps_status(self, service):
        claim = await submitted_claim(service)
        await service.post_payment(TENANT_ID, claim.id, USER_ID, payment(30000))

        _, updated = await service.post_payment(TENANT_ID, claim.id, USER_ID, payment(500))

        assert updated.status == ClaimStatus.PAID
        assert updated.paid_amount == 305
        assert len(await service.get_status_history(TENANT_ID, claim.id)) == 4

    async def test_non_positive_amount(self, service):
        claim = await service.create_claim(TENANT_ID, USER_ID, claim_create())

        with pytest.raises(ValidationError):
            await service.ledger.post_payment(claim, 0, USER_ID)
