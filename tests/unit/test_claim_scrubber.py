"""
Claim Scrub Engine Tests.

Tests for:
- Each check group against the default dermatology catalog
- Deterministic re-scrubbing
- Auto-fix passes and convergence
- Passed check listing
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from claim_engine.catalogs import ContractTerms, FeeScheduleEntry, build_default_catalog
from claim_engine.core.enums import IssueSeverity, ScrubStatus
from claim_engine.services.claim_records import ClaimSnapshot, LineItem
from claim_engine.services.claim_scrubber import (
    SCRUB_CHECKS,
    ClaimScrubber,
    ScrubConfig,
    get_passed_checks,
)

AS_OF = date(2025, 6, 30)
SERVICE_DATE = date(2025, 6, 20)


def item(cpt: str, charge: str = "100.00", units: int = 1, dx=("L82.1",), modifiers=()) -> LineItem:
    return LineItem(cpt=cpt, units=units, charge=Decimal(charge), modifiers=tuple(modifiers), dx=tuple(dx))


def snapshot(*lines: LineItem, **overrides) -> ClaimSnapshot:
    values = {
        "claim_id": "claim-1",
        "patient_id": "patient-1",
        "payer_id": "aetna",
        "payer_name": "Aetna",
        "service_date": SERVICE_DATE,
        "line_items": tuple(lines),
        "diagnoses": ("L82.1",),
    }
    values.update(overrides)
    return ClaimSnapshot(**values)


def codes(issues) -> list[str]:
    return [issue.code for issue in issues]


@pytest.fixture
def scrubber():
    return ClaimScrubber(ScrubConfig())


@pytest.fixture
def catalog():
    return build_default_catalog()


@pytest.mark.unit
class TestCleanClaims:
    """Test claims that pass every check."""

    def test_biopsy_claim_is_clean(self, scrubber, catalog):
        """11100 + 11101 with a shared diagnosis raises nothing."""
        result = scrubber.scrub(snapshot(item("11100", "150.00"), item("11101", "75.00", units=2)), catalog, AS_OF)

        assert result.status == ScrubStatus.CLEAN
        assert result.errors == []
        assert result.warnings == []
        assert result.info == []

    def test_rescrub_is_identical(self, scrubber, catalog):
        """Scrubbing the same snapshot twice yields the same result."""
        claim = snapshot(
            item("99213", dx=("D22.9",)),
            item("11102", dx=("L82.1", "L82.1")),
            item("15780"),
            diagnoses=("L82.1",),
        )
        first = scrubber.scrub(claim, catalog, AS_OF)
        second = scrubber.scrub(claim, catalog, AS_OF)

        assert first.as_dict() == second.as_dict()
        assert first.status == second.status

    def test_all_checks_pass_for_clean_claim(self, scrubber, catalog):
        result = scrubber.scrub(snapshot(item("11100")), catalog, AS_OF)

        passed = get_passed_checks(result.fired_codes)

        assert len(passed) == len(SCRUB_CHECKS)


@pytest.mark.unit
class TestRequiredFields:
    """Test identifier and line item checks."""

    def test_missing_identifiers_and_lines(self, scrubber, catalog):
        """Missing payer, patient, date and lines are blocking errors."""
        claim = snapshot(patient_id=None, payer_id=None, service_date=None)

        result = scrubber.scrub(claim, catalog, AS_OF)

        assert result.status == ScrubStatus.ERRORS
        assert codes(result.errors) == [
            "MISSING_PATIENT_ID",
            "MISSING_PAYER_ID",
            "MISSING_SERVICE_DATE",
            "NO_LINE_ITEMS",
        ]
        assert all(issue.blocking for issue in result.errors)

    def test_invalid_amounts(self, scrubber, catalog):
        claim = snapshot(item("11100", charge="0.00"), item("17000", units=0))

        result = scrubber.scrub(claim, catalog, AS_OF)

        assert "INVALID_CHARGE" in codes(result.errors)
        assert "INVALID_UNITS" in codes(result.errors)

    def test_issue_names_offending_field(self, scrubber, catalog):
        result = scrubber.scrub(snapshot(item("11100", charge="0.00")), catalog, AS_OF)

        issue = next(issue for issue in result.errors if issue.code == "INVALID_CHARGE")
        assert issue.field_name == "charge"
        assert issue.line_index == 0
        assert issue.to_dict()["field"] == "charge"
        assert issue.to_dict()["data"] == dict(issue.data)


@pytest.mark.unit
class TestDiagnosisPointers:
    """Test diagnosis pointer checks."""

    def test_line_dx_not_on_claim_is_fixable(self, scrubber, catalog):
        result = scrubber.scrub(snapshot(item("11100", dx=("D22.9",))), catalog, AS_OF)

        issue = result.errors[0]
        assert issue.code == "DX_NOT_ON_CLAIM"
        assert issue.auto_fixable is True
        assert issue.data == {"code": "D22.9"}
        # Only fixable errors: not blocking
        assert result.status == ScrubStatus.WARNINGS

    def test_unknown_line_dx_is_blocking(self, scrubber, catalog):
        result = scrubber.scrub(snapshot(item("11100", dx=("Z99.99",))), catalog, AS_OF)

        assert codes(result.errors) == ["INVALID_DIAGNOSIS_CODE"]
        assert result.status == ScrubStatus.ERRORS

    def test_missing_line_dx_without_claim_dx_is_blocking(self, scrubber, catalog):
        result = scrubber.scrub(snapshot(item("11100", dx=()), diagnoses=()), catalog, AS_OF)

        assert codes(result.errors) == ["MISSING_LINE_DIAGNOSIS"]
        assert result.errors[0].auto_fixable is False

    def test_duplicate_and_misordered_pointers(self, scrubber, catalog):
        claim = snapshot(
            item("11100", dx=("L82.1", "L82.1")),
            item("17000", dx=("D22.9", "L82.1")),
            diagnoses=("L82.1", "D22.9"),
        )

        result = scrubber.scrub(claim, catalog, AS_OF)

        assert codes(result.errors) == ["DUPLICATE_DX_POINTER", "PRIMARY_DX_NOT_FIRST"]
        assert result.errors[1].line_index == 1

    def test_too_many_pointers(self, scrubber, catalog):
        dx = ("L82.1", "D22.9", "L57.0", "L82.0", "D23.9")
        claim = snapshot(item("11100", dx=dx), diagnoses=dx)

        result = scrubber.scrub(claim, catalog, AS_OF)

        assert codes(result.errors) == ["TOO_MANY_DX_POINTERS"]


@pytest.mark.unit
class TestCosmeticDocumentation:
    """Test cosmetic checks."""

    def test_unflagged_cosmetic_procedure_warns(self, scrubber, catalog):
        result = scrubber.scrub(snapshot(item("15780")), catalog, AS_OF)

        assert codes(result.warnings) == ["COSMETIC_PROCEDURE_NOT_FLAGGED"]
        assert result.warnings[0].severity == IssueSeverity.WARNING
        assert result.status == ScrubStatus.WARNINGS

    def test_cosmetic_claim_needs_reason(self, scrubber, catalog):
        result = scrubber.scrub(snapshot(item("15780"), is_cosmetic=True), catalog, AS_OF)
        assert codes(result.errors) == ["COSMETIC_REASON_REQUIRED"]

        documented = snapshot(item("15780"), is_cosmetic=True, cosmetic_reason="Patient elected, self-pay")
        assert scrubber.scrub(documented, catalog, AS_OF).status == ScrubStatus.CLEAN


@pytest.mark.unit
class TestModifierChecks:
    """Test modifier format, pair edits and required modifiers."""

    def test_malformed_and_conflicting_modifiers(self, scrubber, catalog):
        claim = snapshot(item("69210", modifiers=("50", "RT")), item("11100", modifiers=("ABC",)))

        result = scrubber.scrub(claim, catalog, AS_OF)

        assert "CONFLICTING_MODIFIERS" in codes(result.errors)
        assert "INVALID_MODIFIER" in codes(result.errors)

    def test_em_with_procedure_needs_25(self, scrubber, catalog):
        """E/M billed with a procedure needs modifier 25."""
        result = scrubber.scrub(snapshot(item("99213"), item("11102")), catalog, AS_OF)

        issue = result.errors[0]
        assert issue.code == "MISSING_REQUIRED_MODIFIER"
        assert issue.line_index == 0
        assert issue.data == {"modifier": "25"}
        assert issue.auto_fixable is True

    def test_em_alone_needs_nothing(self, scrubber, catalog):
        assert scrubber.scrub(snapshot(item("99213")), catalog, AS_OF).status == ScrubStatus.CLEAN

    def test_bypassable_pair_edit(self, scrubber, catalog):
        """Mohs + tangential biopsy needs 59 on the biopsy line."""
        result = scrubber.scrub(snapshot(item("17311"), item("11102")), catalog, AS_OF)

        issue = result.errors[0]
        assert issue.code == "MUTUALLY_EXCLUSIVE_CODES"
        assert issue.line_index == 1
        assert issue.data["modifier"] == "59"
        assert issue.auto_fixable is True

    def test_pair_edit_satisfied_by_x_modifier(self, scrubber, catalog):
        claim = snapshot(item("17311"), item("11102", modifiers=("XS",)))
        assert "MUTUALLY_EXCLUSIVE_CODES" not in codes(scrubber.scrub(claim, catalog, AS_OF).errors)

    def test_medicare_substitutes_xs(self, scrubber, catalog):
        claim = snapshot(item("17311"), item("11102"), payer_id="medicare", payer_name="Medicare")

        result = scrubber.scrub(claim, catalog, AS_OF)

        assert result.errors[0].data["modifier"] == "XS"

    def test_unbypassable_pair_edit_blocks(self, scrubber, catalog):
        """Simple repair bundled into the excision cannot be billed at all."""
        result = scrubber.scrub(snapshot(item("11402"), item("12001")), catalog, AS_OF)

        assert codes(result.errors) == ["MUTUALLY_EXCLUSIVE_CODES"]
        assert result.errors[0].auto_fixable is False
        assert result.status == ScrubStatus.ERRORS


@pytest.mark.unit
class TestServiceDateWindow:
    """Test service date checks."""

    def test_future_service_date(self, scrubber, catalog):
        result = scrubber.scrub(snapshot(item("11100"), service_date=AS_OF + timedelta(days=1)), catalog, AS_OF)
        assert codes(result.errors) == ["FUTURE_SERVICE_DATE"]

    def test_filing_deadline_close(self, scrubber, catalog):
        """Within 30 days of the 365-day limit warns."""
        result = scrubber.scrub(snapshot(item("11100"), service_date=AS_OF - timedelta(days=340)), catalog, AS_OF)

        assert codes(result.warnings) == ["TIMELY_FILING_RISK"]
        assert result.warnings[0].data["daysRemaining"] == 25

    def test_filing_deadline_passed(self, scrubber, catalog):
        result = scrubber.scrub(snapshot(item("11100"), service_date=AS_OF - timedelta(days=400)), catalog, AS_OF)

        assert codes(result.warnings) == ["TIMELY_FILING_RISK"]
        assert result.warnings[0].data["daysRemaining"] == -35

    def test_contract_filing_limit_applies(self, scrubber, catalog):
        tenant_catalog = catalog.with_tenant_data(
            contracts=[
                ContractTerms(
                    payer_name="Aetna",
                    payer_id="aetna",
                    reimbursement_percent=Decimal("100"),
                    timely_filing_days=90,
                )
            ]
        )
        claim = snapshot(item("11100"), service_date=AS_OF - timedelta(days=80))

        result = scrubber.scrub(claim, tenant_catalog, AS_OF)

        assert result.warnings[0].data["daysRemaining"] == 10


@pytest.mark.unit
class TestFeeScheduleAndDuplicates:
    """Test fee schedule and duplicate line checks."""

    def test_fee_checks_skipped_without_schedule(self, scrubber, catalog):
        result = scrubber.scrub(snapshot(item("11100", charge="1.00")), catalog, AS_OF)
        assert result.status == ScrubStatus.CLEAN

    def test_charge_below_fee(self, scrubber, catalog):
        tenant_catalog = catalog.with_tenant_data(fee_schedule=[FeeScheduleEntry("11100", 20000)])
        claim = snapshot(item("11100", "150.00"), item("17000", "90.00"))

        result = scrubber.scrub(claim, tenant_catalog, AS_OF)

        assert codes(result.warnings) == ["CHARGE_BELOW_FEE_SCHEDULE"]
        assert result.warnings[0].data == {"feeCents": 20000, "chargeCents": 15000}
        assert codes(result.info) == ["CPT_NOT_IN_FEE_SCHEDULE"]
        assert result.status == ScrubStatus.WARNINGS

    def test_duplicate_line(self, scrubber, catalog):
        result = scrubber.scrub(snapshot(item("11100"), item("11100")), catalog, AS_OF)

        assert codes(result.warnings) == ["DUPLICATE_LINE_ITEM"]
        assert result.warnings[0].data == {"firstLineIndex": 0}


@pytest.mark.unit
class TestAutoFix:
    """Test auto-fix passes."""

    def test_fix_adds_em_modifier(self, scrubber, catalog):
        fixed = scrubber.auto_fix(snapshot(item("99213"), item("11102")), catalog, AS_OF)

        assert fixed.result.status == ScrubStatus.CLEAN
        assert fixed.snapshot.line_items[0].modifiers == ("25",)
        assert fixed.passes == 1
        assert codes(fixed.applied) == ["MISSING_REQUIRED_MODIFIER"]

    def test_fix_converges_across_passes(self, scrubber, catalog):
        """Adding a claim diagnosis unlocks the empty line's fix on the next pass."""
        claim = snapshot(item("11100", dx=("D22.9",)), item("17000", dx=()), diagnoses=())

        fixed = scrubber.auto_fix(claim, catalog, AS_OF)

        assert fixed.result.status == ScrubStatus.CLEAN
        assert fixed.passes == 2
        assert fixed.snapshot.diagnoses == ("D22.9",)
        assert fixed.snapshot.line_items[1].dx == ("D22.9",)

    def test_fix_dedupes_and_reorders_pointers(self, scrubber, catalog):
        claim = snapshot(
            item("11100", dx=("L82.1", "L82.1")),
            item("17000", dx=("D22.9", "L82.1")),
            diagnoses=("L82.1", "D22.9"),
        )

        fixed = scrubber.auto_fix(claim, catalog, AS_OF)

        assert fixed.result.status == ScrubStatus.CLEAN
        assert fixed.snapshot.line_items[0].dx == ("L82.1",)
        assert fixed.snapshot.line_items[1].dx == ("L82.1", "D22.9")

    def test_fix_pair_modifier(self, scrubber, catalog):
        fixed = scrubber.auto_fix(snapshot(item("17311"), item("11102")), catalog, AS_OF)

        assert fixed.result.status == ScrubStatus.CLEAN
        assert fixed.snapshot.line_items[1].modifiers == ("59",)

    def test_blocking_errors_remain(self, scrubber, catalog):
        """Non-fixable errors survive auto-fix untouched."""
        fixed = scrubber.auto_fix(snapshot(item("11402"), item("12001")), catalog, AS_OF)

        assert fixed.changed is False
        assert fixed.passes == 0
        assert fixed.result.status == ScrubStatus.ERRORS

    def test_pass_limit(self, catalog):
        """The loop stops at max_fix_passes."""
        scrubber = ClaimScrubber(ScrubConfig(max_fix_passes=1))
        claim = snapshot(item("11100", dx=("D22.9",)), item("17000", dx=()), diagnoses=())

        fixed = scrubber.auto_fix(claim, catalog, AS_OF)

        assert fixed.passes == 1
        assert codes(fixed.result.fixable_errors) == ["MISSING_LINE_DIAGNOSIS"]
