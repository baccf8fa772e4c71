"""
Claim Scrub Engine.

Provides:
- Pre-submission validation of a claim snapshot against coding and payer rules
- Auto-fix of resolvable issues with bounded re-scrub passes
- The list of defined checks and which of them passed

Scrubbing is a pure function of (snapshot, catalog, as_of): no store access,
no clock reads when as_of is given, and issues are emitted in a fixed order,
so scrubbing the same snapshot twice yields identical results.
"""

from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Any, Iterable, Optional

from claim_engine.catalogs.tables import MODIFIER_PATTERN, CodingCatalog
from claim_engine.core.config import ClaimsSettings, get_claims_settings
from claim_engine.core.enums import IssueSeverity, ModifierContext, ScrubStatus
from claim_engine.services.claim_records import ClaimSnapshot
from claim_engine.utils.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# Issues & Results
# =============================================================================


@dataclass(frozen=True)
class ScrubIssue:
    """Single scrub finding. `data` carries what an automated fix needs."""

    code: str
    message: str
    severity: IssueSeverity
    check: str
    auto_fixable: bool = False
    line_index: Optional[int] = None
    data: dict = field(default_factory=dict, hash=False)
    field_name: Optional[str] = None

    @property
    def blocking(self) -> bool:
        return self.severity == IssueSeverity.ERROR and not self.auto_fixable

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "check": self.check,
            "autoFixable": self.auto_fixable,
            "lineIndex": self.line_index,
            "field": self.field_name,
            "data": dict(self.data),
        }


@dataclass
class ScrubResult:
    """Outcome of one scrub pass."""

    status: ScrubStatus = ScrubStatus.CLEAN
    errors: list[ScrubIssue] = field(default_factory=list)
    warnings: list[ScrubIssue] = field(default_factory=list)
    info: list[ScrubIssue] = field(default_factory=list)

    def add_issue(self, issue: ScrubIssue) -> None:
        if issue.severity == IssueSeverity.ERROR:
            self.errors.append(issue)
        elif issue.severity == IssueSeverity.WARNING:
            self.warnings.append(issue)
        else:
            self.info.append(issue)
        self.status = self._derive_status()

    def _derive_status(self) -> ScrubStatus:
        if any(issue.blocking for issue in self.errors):
            return ScrubStatus.ERRORS
        if self.errors or self.warnings:
            return ScrubStatus.WARNINGS
        return ScrubStatus.CLEAN

    @property
    def fixable_errors(self) -> list[ScrubIssue]:
        return [issue for issue in self.errors if issue.auto_fixable]

    @property
    def fired_codes(self) -> set[str]:
        return {issue.code for issue in self.errors + self.warnings + self.info}

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "errors": [i.to_dict() for i in self.errors],
            "warnings": [i.to_dict() for i in self.warnings],
            "info": [i.to_dict() for i in self.info],
        }


@dataclass
class AutoFixResult:
    """Corrected snapshot, its final scrub, and the issues that were fixed."""

    snapshot: ClaimSnapshot
    result: ScrubResult
    applied: list[ScrubIssue] = field(default_factory=list)
    passes: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.applied)


# =============================================================================
# Check Definitions
# =============================================================================


@dataclass(frozen=True)
class ScrubCheck:
    """A named check and the issue codes it can raise."""

    name: str
    description: str
    codes: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description, "codes": list(self.codes)}


SCRUB_CHECKS: tuple[ScrubCheck, ...] = (
    ScrubCheck(
        "required_identifiers",
        "Patient, payer and service date are present",
        ("MISSING_PATIENT_ID", "MISSING_PAYER_ID", "MISSING_SERVICE_DATE"),
    ),
    ScrubCheck(
        "line_items_present",
        "Claim has at least one line item",
        ("NO_LINE_ITEMS",),
    ),
    ScrubCheck(
        "line_item_amounts",
        "Every line has a positive charge and unit count",
        ("INVALID_CHARGE", "INVALID_UNITS"),
    ),
    ScrubCheck(
        "diagnosis_pointers",
        "Line diagnosis pointers are valid and resolve to claim diagnoses",
        (
            "MISSING_LINE_DIAGNOSIS",
            "INVALID_DIAGNOSIS_CODE",
            "DX_NOT_ON_CLAIM",
            "DUPLICATE_DX_POINTER",
            "TOO_MANY_DX_POINTERS",
            "PRIMARY_DX_NOT_FIRST",
        ),
    ),
    ScrubCheck(
        "cosmetic_documentation",
        "Cosmetic claims carry a reason and cosmetic procedures are flagged",
        ("COSMETIC_REASON_REQUIRED", "COSMETIC_PROCEDURE_NOT_FLAGGED"),
    ),
    ScrubCheck(
        "modifier_format",
        "Modifiers are well formed, within limits and not contradictory",
        ("INVALID_MODIFIER", "TOO_MANY_MODIFIERS", "CONFLICTING_MODIFIERS"),
    ),
    ScrubCheck(
        "mutually_exclusive_codes",
        "No CPT pair violates a payer edit without its bypass modifier",
        ("MUTUALLY_EXCLUSIVE_CODES",),
    ),
    ScrubCheck(
        "required_modifiers",
        "E/M billed with a procedure carries modifier 25",
        ("MISSING_REQUIRED_MODIFIER",),
    ),
    ScrubCheck(
        "service_date_window",
        "Service date is not in the future and inside the filing limit",
        ("FUTURE_SERVICE_DATE", "TIMELY_FILING_RISK"),
    ),
    ScrubCheck(
        "fee_schedule",
        "Charges are at or above the fee schedule",
        ("CHARGE_BELOW_FEE_SCHEDULE", "CPT_NOT_IN_FEE_SCHEDULE"),
    ),
    ScrubCheck(
        "duplicate_lines",
        "No line repeats the same CPT and modifiers",
        ("DUPLICATE_LINE_ITEM",),
    ),
)


def get_passed_checks(
    fired_codes: Iterable[str],
    checks: tuple[ScrubCheck, ...] = SCRUB_CHECKS,
) -> list[ScrubCheck]:
    """Checks none of whose codes fired."""
    fired = set(fired_codes)
    return [check for check in checks if not fired.intersection(check.codes)]


# =============================================================================
# Scrub Configuration
# =============================================================================


@dataclass
class ScrubConfig:
    """Limits used by the scrub engine."""

    max_dx_pointers: int = 4
    max_modifiers: int = 4
    timely_filing_days: int = 365
    timely_filing_warning_days: int = 30
    max_fix_passes: int = 3

    @classmethod
    def from_settings(cls, settings: ClaimsSettings) -> "ScrubConfig":
        return cls(
            max_dx_pointers=settings.MAX_DX_POINTERS,
            max_modifiers=settings.MAX_MODIFIERS,
            timely_filing_days=settings.TIMELY_FILING_DAYS,
            timely_filing_warning_days=settings.TIMELY_FILING_WARNING_DAYS,
            max_fix_passes=settings.SCRUB_MAX_FIX_PASSES,
        )


# =============================================================================
# Claim Scrubber
# =============================================================================


def _dedupe(codes: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered = []
    for code in codes:
        if code not in seen:
            seen.add(code)
            ordered.append(code)
    return ordered


class ClaimScrubber:
    """
    Validates claim snapshots and repairs what can be repaired.

    Validates:
    - Required identifiers and line item shape
    - Diagnosis pointers against claim diagnoses and the code catalog
    - Cosmetic documentation
    - Modifier format, payer pair edits and required modifiers
    - Service date window and fee schedule floor
    """

    def __init__(self, config: Optional[ScrubConfig] = None):
        self.config = config or ScrubConfig()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def scrub(
        self,
        snapshot: ClaimSnapshot,
        catalog: CodingCatalog,
        as_of: Optional[date] = None,
    ) -> ScrubResult:
        """Run every check against the snapshot."""
        as_of = as_of or date.today()
        result = ScrubResult()

        self._check_required_identifiers(snapshot, result)
        self._check_line_items_present(snapshot, result)
        self._check_line_item_amounts(snapshot, result)
        self._check_diagnosis_pointers(snapshot, catalog, result)
        self._check_cosmetic_documentation(snapshot, catalog, result)
        self._check_modifier_format(snapshot, catalog, result)
        self._check_mutually_exclusive_codes(snapshot, catalog, result)
        self._check_required_modifiers(snapshot, catalog, result)
        self._check_service_date_window(snapshot, catalog, as_of, result)
        self._check_fee_schedule(snapshot, catalog, result)
        self._check_duplicate_lines(snapshot, result)

        logger.debug(
            f"Scrubbed claim {snapshot.claim_id}: status={result.status.value} "
            f"errors={len(result.errors)} warnings={len(result.warnings)} info={len(result.info)}"
        )
        return result

    def auto_fix(
        self,
        snapshot: ClaimSnapshot,
        catalog: CodingCatalog,
        as_of: Optional[date] = None,
    ) -> AutoFixResult:
        """
        Apply fixable errors and re-scrub until none remain.

        Each pass fixes the fixable errors of the previous scrub. A fix can
        unlock another (adding a diagnosis to the claim lets an empty line
        receive the primary diagnosis), hence the bounded loop.
        """
        as_of = as_of or date.today()
        current = snapshot
        result = self.scrub(current, catalog, as_of)
        applied: list[ScrubIssue] = []
        passes = 0

        while result.fixable_errors and passes < self.config.max_fix_passes:
            fixable = result.fixable_errors
            current = self.apply_fixes(current, fixable)
            applied.extend(fixable)
            passes += 1
            result = self.scrub(current, catalog, as_of)

        if result.fixable_errors:
            logger.warning(
                f"Auto-fix for claim {snapshot.claim_id} stopped after {passes} passes "
                f"with {len(result.fixable_errors)} fixable errors left"
            )
        return AutoFixResult(snapshot=current, result=result, applied=applied, passes=passes)

    def apply_fixes(self, snapshot: ClaimSnapshot, issues: Iterable[ScrubIssue]) -> ClaimSnapshot:
        """
        Return a corrected copy of the snapshot.

        Every fix is idempotent and reads the current snapshot rather than
        stale issue data where it can, so applying overlapping fixes is safe.
        """
        diagnoses = list(snapshot.diagnoses)
        lines = list(snapshot.line_items)

        # Claim-level diagnosis additions first so line fixes can see them
        for issue in issues:
            if issue.code == "DX_NOT_ON_CLAIM":
                code = issue.data.get("code")
                if code and code not in diagnoses:
                    diagnoses.append(code)

        for issue in issues:
            index = issue.line_index
            if index is None or index >= len(lines):
                continue
            line = lines[index]

            if issue.code == "DUPLICATE_DX_POINTER":
                line = replace(line, dx=tuple(_dedupe(line.dx)))
            elif issue.code == "PRIMARY_DX_NOT_FIRST" and diagnoses:
                primary = diagnoses[0]
                if primary in line.dx:
                    line = replace(line, dx=(primary,) + tuple(d for d in _dedupe(line.dx) if d != primary))
            elif issue.code == "MISSING_LINE_DIAGNOSIS" and diagnoses and not line.dx:
                line = replace(line, dx=(diagnoses[0],))
            elif issue.code in ("MISSING_REQUIRED_MODIFIER", "MUTUALLY_EXCLUSIVE_CODES"):
                modifier = issue.data.get("modifier")
                if modifier and len(line.modifiers) < self.config.max_modifiers:
                    line = line.with_modifier(modifier)

            lines[index] = line

        return replace(snapshot, diagnoses=tuple(diagnoses), line_items=tuple(lines))

    # -------------------------------------------------------------------------
    # Checks
    # -------------------------------------------------------------------------

    def _check_required_identifiers(self, snapshot: ClaimSnapshot, result: ScrubResult) -> None:
        check = "required_identifiers"
        if not snapshot.patient_id:
            result.add_issue(ScrubIssue(
                code="MISSING_PATIENT_ID",
                message="Patient is required",
                severity=IssueSeverity.ERROR,
                check=check,
                field_name="patientId",
            ))
        if not snapshot.payer_id:
            result.add_issue(ScrubIssue(
                code="MISSING_PAYER_ID",
                message="Payer ID is required before submission",
                severity=IssueSeverity.ERROR,
                check=check,
                field_name="payerId",
            ))
        if snapshot.service_date is None:
            result.add_issue(ScrubIssue(
                code="MISSING_SERVICE_DATE",
                message="Service date is required",
                severity=IssueSeverity.ERROR,
                check=check,
                field_name="serviceDate",
            ))

    def _check_line_items_present(self, snapshot: ClaimSnapshot, result: ScrubResult) -> None:
        if not snapshot.line_items:
            result.add_issue(ScrubIssue(
                code="NO_LINE_ITEMS",
                message="Claim must have at least one line item",
                severity=IssueSeverity.ERROR,
                check="line_items_present",
                field_name="lineItems",
            ))

    def _check_line_item_amounts(self, snapshot: ClaimSnapshot, result: ScrubResult) -> None:
        check = "line_item_amounts"
        for index, line in enumerate(snapshot.line_items):
            if line.charge_cents <= 0:
                result.add_issue(ScrubIssue(
                    code="INVALID_CHARGE",
                    message=f"Line {index + 1} ({line.cpt}) must have a positive charge",
                    severity=IssueSeverity.ERROR,
                    check=check,
                    line_index=index,
                    field_name="charge",
                ))
            if line.units <= 0:
                result.add_issue(ScrubIssue(
                    code="INVALID_UNITS",
                    message=f"Line {index + 1} ({line.cpt}) must have at least one unit",
                    severity=IssueSeverity.ERROR,
                    check=check,
                    line_index=index,
                    field_name="units",
                ))

    def _check_diagnosis_pointers(
        self,
        snapshot: ClaimSnapshot,
        catalog: CodingCatalog,
        result: ScrubResult,
    ) -> None:
        check = "diagnosis_pointers"
        claim_dx = list(snapshot.diagnoses)
        known_claim_dx = [code for code in claim_dx if catalog.is_known_diagnosis(code)]
        primary = claim_dx[0] if claim_dx else None

        for code in claim_dx:
            if not catalog.is_known_diagnosis(code):
                result.add_issue(ScrubIssue(
                    code="INVALID_DIAGNOSIS_CODE",
                    message=f"Diagnosis {code} is not a valid billable ICD-10 code",
                    severity=IssueSeverity.ERROR,
                    check=check,
                    field_name="diagnoses",
                    data={"code": code},
                ))

        for index, line in enumerate(snapshot.line_items):
            if not line.dx:
                result.add_issue(ScrubIssue(
                    code="MISSING_LINE_DIAGNOSIS",
                    message=f"Line {index + 1} ({line.cpt}) has no diagnosis pointer",
                    severity=IssueSeverity.ERROR,
                    check=check,
                    auto_fixable=bool(known_claim_dx) and primary in known_claim_dx,
                    line_index=index,
                    field_name="dx",
                    data={"dx": primary} if primary else {},
                ))
                continue

            unique = _dedupe(line.dx)
            if len(unique) != len(line.dx):
                result.add_issue(ScrubIssue(
                    code="DUPLICATE_DX_POINTER",
                    message=f"Line {index + 1} ({line.cpt}) repeats a diagnosis pointer",
                    severity=IssueSeverity.ERROR,
                    check=check,
                    auto_fixable=True,
                    line_index=index,
                    field_name="dx",
                ))

            for code in unique:
                if code in claim_dx:
                    continue
                if catalog.is_known_diagnosis(code):
                    result.add_issue(ScrubIssue(
                        code="DX_NOT_ON_CLAIM",
                        message=f"Line {index + 1} points to {code}, which is not on the claim",
                        severity=IssueSeverity.ERROR,
                        check=check,
                        auto_fixable=True,
                        line_index=index,
                        field_name="dx",
                        data={"code": code},
                    ))
                else:
                    result.add_issue(ScrubIssue(
                        code="INVALID_DIAGNOSIS_CODE",
                        message=f"Line {index + 1} points to unknown diagnosis {code}",
                        severity=IssueSeverity.ERROR,
                        check=check,
                        line_index=index,
                        field_name="dx",
                        data={"code": code},
                    ))

            if len(unique) > self.config.max_dx_pointers:
                result.add_issue(ScrubIssue(
                    code="TOO_MANY_DX_POINTERS",
                    message=(
                        f"Line {index + 1} has {len(unique)} diagnosis pointers; "
                        f"at most {self.config.max_dx_pointers} are allowed"
                    ),
                    severity=IssueSeverity.ERROR,
                    check=check,
                    line_index=index,
                    field_name="dx",
                ))

            if primary and primary in unique and unique[0] != primary:
                result.add_issue(ScrubIssue(
                    code="PRIMARY_DX_NOT_FIRST",
                    message=f"Line {index + 1} should point to primary diagnosis {primary} first",
                    severity=IssueSeverity.ERROR,
                    check=check,
                    auto_fixable=True,
                    line_index=index,
                    field_name="dx",
                    data={"dx": primary},
                ))

    def _check_cosmetic_documentation(
        self,
        snapshot: ClaimSnapshot,
        catalog: CodingCatalog,
        result: ScrubResult,
    ) -> None:
        check = "cosmetic_documentation"
        if snapshot.is_cosmetic:
            if not (snapshot.cosmetic_reason or "").strip():
                result.add_issue(ScrubIssue(
                    code="COSMETIC_REASON_REQUIRED",
                    message="Cosmetic claims require a documented cosmetic reason",
                    severity=IssueSeverity.ERROR,
                    check=check,
                    field_name="cosmeticReason",
                ))
            return

        for index, line in enumerate(snapshot.line_items):
            if catalog.is_cosmetic(line.cpt):
                result.add_issue(ScrubIssue(
                    code="COSMETIC_PROCEDURE_NOT_FLAGGED",
                    message=f"CPT {line.cpt} is usually cosmetic but the claim is not flagged cosmetic",
                    severity=IssueSeverity.WARNING,
                    check=check,
                    line_index=index,
                    field_name="isCosmetic",
                ))

    def _check_modifier_format(
        self,
        snapshot: ClaimSnapshot,
        catalog: CodingCatalog,
        result: ScrubResult,
    ) -> None:
        check = "modifier_format"
        conflicts = catalog.modifier_rules.conflicting_modifiers
        for index, line in enumerate(snapshot.line_items):
            for modifier in line.modifiers:
                if not MODIFIER_PATTERN.match(modifier):
                    result.add_issue(ScrubIssue(
                        code="INVALID_MODIFIER",
                        message=f"Line {index + 1} has malformed modifier '{modifier}'",
                        severity=IssueSeverity.ERROR,
                        check=check,
                        line_index=index,
                        field_name="modifiers",
                        data={"modifier": modifier},
                    ))
            if len(line.modifiers) > self.config.max_modifiers:
                result.add_issue(ScrubIssue(
                    code="TOO_MANY_MODIFIERS",
                    message=(
                        f"Line {index + 1} has {len(line.modifiers)} modifiers; "
                        f"at most {self.config.max_modifiers} are allowed"
                    ),
                    severity=IssueSeverity.ERROR,
                    check=check,
                    line_index=index,
                    field_name="modifiers",
                ))
            present = set(line.modifiers)
            for first, second in conflicts:
                if first in present and second in present:
                    result.add_issue(ScrubIssue(
                        code="CONFLICTING_MODIFIERS",
                        message=f"Line {index + 1} combines contradictory modifiers {first} and {second}",
                        severity=IssueSeverity.ERROR,
                        check=check,
                        line_index=index,
                        field_name="modifiers",
                        data={"modifiers": [first, second]},
                    ))

    def _check_mutually_exclusive_codes(
        self,
        snapshot: ClaimSnapshot,
        catalog: CodingCatalog,
        result: ScrubResult,
    ) -> None:
        rules = catalog.modifier_rules
        lines_by_cpt: dict[str, list[int]] = {}
        for index, line in enumerate(snapshot.line_items):
            lines_by_cpt.setdefault(line.cpt, []).append(index)

        for rule in rules.rules_for_payer(snapshot.payer_id):
            if rule.column_one not in lines_by_cpt or rule.column_two not in lines_by_cpt:
                continue
            required = rules.substitute(rule.modifier, snapshot.payer_id) if rule.modifier else None
            relation = (
                "mutually exclusive with"
                if rule.context == ModifierContext.MUTUALLY_EXCLUSIVE
                else "bundled with"
            )
            for index in lines_by_cpt[rule.column_two]:
                line = snapshot.line_items[index]
                if required and rules.satisfies(required, line.modifiers):
                    continue
                hint = f"; append modifier {required} if distinct" if required else ""
                result.add_issue(ScrubIssue(
                    code="MUTUALLY_EXCLUSIVE_CODES",
                    message=f"CPT {rule.column_two} is {relation} CPT {rule.column_one}: {rule.rationale}{hint}",
                    severity=IssueSeverity.ERROR,
                    check="mutually_exclusive_codes",
                    auto_fixable=bool(required) and len(line.modifiers) < self.config.max_modifiers,
                    line_index=index,
                    field_name="modifiers",
                    data={"modifier": required, "pairedCpt": rule.column_one} if required else {"pairedCpt": rule.column_one},
                ))

    def _check_required_modifiers(
        self,
        snapshot: ClaimSnapshot,
        catalog: CodingCatalog,
        result: ScrubResult,
    ) -> None:
        rules = catalog.modifier_rules
        em_lines = [i for i, line in enumerate(snapshot.line_items) if rules.is_em(line.cpt)]
        has_procedure = any(not rules.is_em(line.cpt) for line in snapshot.line_items)
        if not em_lines or not has_procedure:
            return

        for index in em_lines:
            line = snapshot.line_items[index]
            if "25" in line.modifiers:
                continue
            result.add_issue(ScrubIssue(
                code="MISSING_REQUIRED_MODIFIER",
                message=f"E/M {line.cpt} billed with a procedure on the same day requires modifier 25",
                severity=IssueSeverity.ERROR,
                check="required_modifiers",
                auto_fixable=len(line.modifiers) < self.config.max_modifiers,
                line_index=index,
                field_name="modifiers",
                data={"modifier": "25"},
            ))

    def _check_service_date_window(
        self,
        snapshot: ClaimSnapshot,
        catalog: CodingCatalog,
        as_of: date,
        result: ScrubResult,
    ) -> None:
        check = "service_date_window"
        if snapshot.service_date is None:
            return

        if snapshot.service_date > as_of:
            result.add_issue(ScrubIssue(
                code="FUTURE_SERVICE_DATE",
                message=f"Service date {snapshot.service_date.isoformat()} is in the future",
                severity=IssueSeverity.ERROR,
                check=check,
                field_name="serviceDate",
            ))
            return

        contract = catalog.contract_for(snapshot.payer_id, snapshot.payer_name, as_of)
        limit_days = (
            contract.timely_filing_days
            if contract and contract.timely_filing_days
            else self.config.timely_filing_days
        )
        deadline = snapshot.service_date + timedelta(days=limit_days)
        remaining = (deadline - as_of).days
        if remaining < 0:
            message = f"Filing limit of {limit_days} days passed on {deadline.isoformat()}"
        elif remaining <= self.config.timely_filing_warning_days:
            message = f"Only {remaining} days left to file (deadline {deadline.isoformat()})"
        else:
            return
        result.add_issue(ScrubIssue(
            code="TIMELY_FILING_RISK",
            message=message,
            severity=IssueSeverity.WARNING,
            check=check,
            field_name="serviceDate",
            data={"deadline": deadline.isoformat(), "daysRemaining": remaining},
        ))

    def _check_fee_schedule(
        self,
        snapshot: ClaimSnapshot,
        catalog: CodingCatalog,
        result: ScrubResult,
    ) -> None:
        check = "fee_schedule"
        if not catalog.fee_schedule:
            return
        for index, line in enumerate(snapshot.line_items):
            entry = catalog.fee_for(line.cpt)
            if entry is None:
                result.add_issue(ScrubIssue(
                    code="CPT_NOT_IN_FEE_SCHEDULE",
                    message=f"CPT {line.cpt} has no fee schedule entry",
                    severity=IssueSeverity.INFO,
                    check=check,
                    line_index=index,
                    field_name="cpt",
                ))
            elif 0 < line.charge_cents < entry.fee_cents:
                result.add_issue(ScrubIssue(
                    code="CHARGE_BELOW_FEE_SCHEDULE",
                    message=(
                        f"Line {index + 1} charge for {line.cpt} is below the fee schedule "
                        f"({line.charge_cents} < {entry.fee_cents} cents)"
                    ),
                    severity=IssueSeverity.WARNING,
                    check=check,
                    line_index=index,
                    field_name="charge",
                    data={"feeCents": entry.fee_cents, "chargeCents": line.charge_cents},
                ))

    def _check_duplicate_lines(self, snapshot: ClaimSnapshot, result: ScrubResult) -> None:
        seen: dict[tuple, int] = {}
        for index, line in enumerate(snapshot.line_items):
            key = (line.cpt, tuple(sorted(line.modifiers)))
            if key in seen:
                result.add_issue(ScrubIssue(
                    code="DUPLICATE_LINE_ITEM",
                    message=f"Line {index + 1} repeats CPT {line.cpt} from line {seen[key] + 1}",
                    severity=IssueSeverity.WARNING,
                    check="duplicate_lines",
                    line_index=index,
                    field_name="cpt",
                    data={"firstLineIndex": seen[key]},
                ))
            else:
                seen[key] = index


# =============================================================================
# Factory
# =============================================================================


def get_claim_scrubber(settings: Optional[ClaimsSettings] = None) -> ClaimScrubber:
    """Build a scrubber configured from claims settings."""
    return ClaimScrubber(ScrubConfig.from_settings(settings or get_claims_settings()))
