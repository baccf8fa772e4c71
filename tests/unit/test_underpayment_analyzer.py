"""
Underpayment Analyzer Tests.

Tests for:
- Expected reimbursement per line (fee schedule, Medicare, billed charge)
- Claim variance, threshold and paid-amount allocation
- Underpayment listing and summary
- Flag queue
"""

from datetime import date
from decimal import Decimal

import pytest
from conftest import OTHER_TENANT_ID, TENANT_ID, USER_ID, add_fee, claim_create, line

from claim_engine.catalogs import ContractTerms, FeeScheduleEntry, build_default_catalog
from claim_engine.core.enums import (
    ClaimStatus,
    ContractBasis,
    ExpectedAmountBasis,
    UnderpaymentFlagStatus,
)
from claim_engine.schemas.claim import PaymentCreate
from claim_engine.services.claim_records import LineItem
from claim_engine.services.claims_service import ClaimsService
from claim_engine.services.underpayment_analyzer import (
    UnderpaymentAnalyzer,
    compute_claim_variance,
    expected_line_cents,
)
from claim_engine.utils.errors import NotFoundError, StateConflictError

AS_OF = date(2025, 6, 1)


def item(cpt: str, charge: str = "100.00", units: int = 1) -> LineItem:
    return LineItem(cpt=cpt, units=units, charge=Decimal(charge), dx=("L82.1",))


@pytest.fixture
def catalog():
    return build_default_catalog().with_tenant_data(
        fee_schedule=[
            FeeScheduleEntry("17000", 10000, medicare_cents=6000),
            FeeScheduleEntry("11102", 12000),
        ],
        contracts=[
            ContractTerms(payer_name="Aetna", payer_id="aetna", reimbursement_percent=Decimal("80")),
            ContractTerms(
                payer_name="Medicare",
                payer_id="medicare",
                reimbursement_percent=Decimal("100"),
                basis=ContractBasis.MEDICARE,
            ),
        ],
    )


@pytest.mark.unit
class TestExpectedAmounts:
    """Test per-line expected reimbursement."""

    def test_fee_schedule_scaled_by_contract(self, catalog):
        contract = catalog.contract_for("aetna", None, AS_OF)
        assert expected_line_cents(item("17000", units=2), catalog, contract) == (
            16000,
            ExpectedAmountBasis.FEE_SCHEDULE,
        )

    def test_medicare_basis_uses_medicare_rate(self, catalog):
        contract = catalog.contract_for("medicare", None, AS_OF)
        assert expected_line_cents(item("17000"), catalog, contract) == (6000, ExpectedAmountBasis.MEDICARE)

    def test_medicare_basis_without_medicare_rate(self, catalog):
        contract = catalog.contract_for("medicare", None, AS_OF)
        assert expected_line_cents(item("11102"), catalog, contract) == (12000, ExpectedAmountBasis.FEE_SCHEDULE)

    def test_billed_charge_without_fee(self, catalog):
        assert expected_line_cents(item("11300", "50.00", units=3), catalog, None) == (
            15000,
            ExpectedAmountBasis.BILLED_CHARGE,
        )


@pytest.mark.unit
class TestClaimVariance:
    """Test claim-level variance."""

    def test_variance_and_allocation(self, catalog):
        """Paid estimates split in proportion to expected amounts and sum to the paid total."""
        variance = compute_claim_variance(
            [item("17000"), item("11102")], 16500, catalog, "cigna", "Cigna", AS_OF, 10.0
        )

        assert variance.expected_cents == 22000
        assert variance.variance_cents == 5500
        assert variance.variance_percent == Decimal("25.00")
        assert variance.is_underpaid
        assert variance.contract_percent is None
        assert [line.estimated_paid_cents for line in variance.lines] == [7500, 9000]

    def test_threshold_is_exclusive(self, catalog):
        variance = compute_claim_variance([item("17000")], 9000, catalog, None, None, AS_OF, 10.0)

        assert variance.variance_percent == Decimal("10.00")
        assert not variance.is_underpaid

    def test_contract_matched_by_name(self, catalog):
        variance = compute_claim_variance([item("17000")], 6000, catalog, None, "AETNA ", AS_OF, 10.0)

        assert variance.contract_percent == Decimal("80")
        assert variance.expected_cents == 8000
        assert variance.variance_percent == Decimal("25.00")

    def test_nothing_expected(self, catalog):
        variance = compute_claim_variance([], 500, catalog, None, None, AS_OF, 10.0)

        assert variance.variance_percent == Decimal("0.00")
        assert not variance.is_underpaid


@pytest.fixture
def claims(db_session, id_generator, audit_sink, event_emitter, claims_settings):
    return ClaimsService(
        db_session,
        id_generator=id_generator,
        audit_sink=audit_sink,
        event_emitter=event_emitter,
        settings=claims_settings,
    )


@pytest.fixture
def analyzer(db_session, id_generator, audit_sink, claims_settings):
    return UnderpaymentAnalyzer(
        db_session,
        id_generator=id_generator,
        audit_sink=audit_sink,
        settings=claims_settings,
    )


async def accepted_claim(claims: ClaimsService, paid_cents: int) -> str:
    """An accepted 100.00 claim for 17000 with `paid_cents` posted. Returns its id."""
    claim = await claims.create_claim(TENANT_ID, USER_ID, claim_create(lineItems=[line("17000", "100.00")]))
    await claims.scrub_claim(TENANT_ID, claim.id, USER_ID)
    await claims.submit_claim(TENANT_ID, claim.id, USER_ID)
    await claims.update_status(TENANT_ID, claim.id, USER_ID, ClaimStatus.ACCEPTED)
    await claims.post_payment(TENANT_ID, claim.id, USER_ID, PaymentCreate(amount_cents=paid_cents))
    return claim.id


@pytest.mark.unit
class TestUnderpaymentListing:
    """Test the underpayment scan."""

    async def test_analyze_claim(self, db_session, claims, analyzer):
        await add_fee(db_session, "17000", 10000)
        claim_id = await accepted_claim(claims, 8000)

        report = await analyzer.analyze_claim(TENANT_ID, claim_id)

        assert report.variance.expected_cents == 10000
        assert report.variance.paid_cents == 8000
        assert report.variance.variance_percent == Decimal("20.00")
        assert report.variance.is_underpaid
        assert report.variance.lines[0].basis == ExpectedAmountBasis.FEE_SCHEDULE

    async def test_list_orders_by_variance(self, db_session, claims, analyzer):
        await add_fee(db_session, "17000", 10000)
        twenty = await accepted_claim(claims, 8000)
        await accepted_claim(claims, 9500)
        fifty = await accepted_claim(claims, 5000)

        report = await analyzer.list_underpayments(TENANT_ID)

        assert [r.claim.id for r in report.items] == [fifty, twenty]
        assert report.count == 2
        assert report.total_underpayment_cents == 7000
        assert report.average_variance_percent == Decimal("35.00")

    async def test_summary_covers_more_than_the_page(self, db_session, claims, analyzer):
        await add_fee(db_session, "17000", 10000)
        await accepted_claim(claims, 8000)
        fifty = await accepted_claim(claims, 5000)

        report = await analyzer.list_underpayments(TENANT_ID, limit=1)

        assert [r.claim.id for r in report.items] == [fifty]
        assert report.count == 2

    async def test_unpaid_and_other_tenant_claims_are_skipped(self, db_session, claims, analyzer):
        await add_fee(db_session, "17000", 10000)
        await claims.create_claim(TENANT_ID, USER_ID, claim_create())
        await accepted_claim(claims, 5000)

        report = await analyzer.list_underpayments(OTHER_TENANT_ID)

        assert report.items == []
        assert report.count == 0
        assert report.average_variance_percent == Decimal("0.00")


@pytest.mark.unit
class TestFlags:
    """Test the underpayment flag queue."""

    async def test_flag_and_resolve(self, db_session, claims, analyzer, audit_sink):
        await add_fee(db_session, "17000", 10000)
        claim_id = await accepted_claim(claims, 8000)

        flag = await analyzer.flag_underpayment(TENANT_ID, claim_id, USER_ID, notes="Short paid")

        assert flag.status == UnderpaymentFlagStatus.PENDING
        assert flag.expected_amount_cents == 10000
        assert flag.actual_paid_cents == 8000
        assert flag.variance_percent == Decimal("20.00")
        audit_sink.record.assert_any_await(TENANT_ID, USER_ID, "underpayment_flag", "claim", claim_id)

        resolved = await analyzer.resolve_flag(
            TENANT_ID, flag.id, USER_ID, UnderpaymentFlagStatus.RESOLVED, notes="Payer reprocessed"
        )

        assert resolved.status == UnderpaymentFlagStatus.RESOLVED
        assert resolved.resolved_by == USER_ID
        assert resolved.resolved_at is not None
        assert resolved.notes == "Payer reprocessed"
        assert await analyzer.list_flags(TENANT_ID, UnderpaymentFlagStatus.PENDING) == []

    async def test_duplicate_pending_flag(self, db_session, claims, analyzer):
        await add_fee(db_session, "17000", 10000)
        claim_id = await accepted_claim(claims, 8000)
        await analyzer.flag_underpayment(TENANT_ID, claim_id, USER_ID)

        with pytest.raises(StateConflictError):
            await analyzer.flag_underpayment(TENANT_ID, claim_id, USER_ID)

    async def test_reflag_after_dismissal(self, db_session, claims, analyzer):
        await add_fee(db_session, "17000", 10000)
        claim_id = await accepted_claim(claims, 8000)
        first = await analyzer.flag_underpayment(TENANT_ID, claim_id, USER_ID)
        await analyzer.resolve_flag(TENANT_ID, first.id, USER_ID, UnderpaymentFlagStatus.DISMISSED)

        second = await analyzer.flag_underpayment(TENANT_ID, claim_id, USER_ID)

        assert second.id != first.id
        assert len(await analyzer.list_flags(TENANT_ID)) == 2

    async def test_resolve_twice(self, db_session, claims, analyzer):
        await add_fee(db_session, "17000", 10000)
        claim_id = await accepted_claim(claims, 8000)
        flag = await analyzer.flag_underpayment(TENANT_ID, claim_id, USER_ID)
        await analyzer.resolve_flag(TENANT_ID, flag.id, USER_ID, UnderpaymentFlagStatus.RESOLVED)

        with pytest.raises(StateConflictError) as exc_info:
            await analyzer.resolve_flag(TENANT_ID, flag.id, USER_ID, UnderpaymentFlagStatus.DISMISSED)
        assert exc_info.value.current_status == "resolved"

    async def test_missing_flag(self, analyzer):
        with pytest.raises(NotFoundError):
            await analyzer.resolve_flag(TENANT_ID, "missing", USER_ID, UnderpaymentFlagStatus.RESOLVED)

    async def test_flag_missing_claim(self, analyzer):
        with pytest.raises(NotFoundError):
            await analyzer.flag_underpayment(TENANT_ID, "missing", USER_ID)
