"""
Underpayment Analyzer.

Compares what a claim was paid with what its payer should have paid.

Expected reimbursement per line:
- Fee schedule fee x units (the Medicare rate when the contract is Medicare based)
- Billed charge x units when the CPT has no fee
- Scaled by the active contract's reimbursement percentage

Payments are posted per claim, so per-line paid amounts are estimates:
the posted total is split across lines in proportion to expected amounts.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from claim_engine.catalogs import CatalogRepository, CodingCatalog
from claim_engine.catalogs.tables import ContractTerms
from claim_engine.core.config import ClaimsSettings, get_claims_settings
from claim_engine.core.enums import (
    ClaimStatus,
    ContractBasis,
    ExpectedAmountBasis,
    UnderpaymentFlagStatus,
)
from claim_engine.models.claim import Claim
from claim_engine.models.underpayment import UnderpaymentFlag
from claim_engine.services.claim_records import LineItem, line_items_from_claim
from claim_engine.services.collaborators import (
    AuditSink,
    IdGenerator,
    LoggingAuditSink,
    UuidIdGenerator,
    record_audit_safely,
)
from claim_engine.services.payment_posting import ClaimLedger
from claim_engine.utils.errors import NotFoundError, StateConflictError
from claim_engine.utils.logging import get_logger
from claim_engine.utils.money import (
    CENT,
    allocate_proportionally,
    scale_cents,
    to_cents,
    to_percent,
    variance_percent,
)

logger = get_logger(__name__)

ANALYZED_STATUSES = (ClaimStatus.PAID, ClaimStatus.ACCEPTED)


# =============================================================================
# Variance
# =============================================================================


@dataclass
class LineVariance:
    line_index: int
    cpt: str
    units: int
    basis: ExpectedAmountBasis
    expected_cents: int
    estimated_paid_cents: int

    @property
    def variance_cents(self) -> int:
        return self.expected_cents - self.estimated_paid_cents


@dataclass
class ClaimVariance:
    expected_cents: int
    paid_cents: int
    variance_percent: Decimal
    threshold_percent: Decimal
    contract_percent: Optional[Decimal]
    lines: list[LineVariance]

    @property
    def variance_cents(self) -> int:
        return self.expected_cents - self.paid_cents

    @property
    def is_underpaid(self) -> bool:
        return self.variance_percent > self.threshold_percent


def expected_line_cents(
    line: LineItem,
    catalog: CodingCatalog,
    contract: Optional[ContractTerms],
) -> tuple[int, ExpectedAmountBasis]:
    """Expected reimbursement for one line and the basis it came from."""
    fee = catalog.fee_for(line.cpt)
    if fee is not None and contract is not None and contract.basis == ContractBasis.MEDICARE and fee.medicare_cents:
        base, basis = fee.medicare_cents, ExpectedAmountBasis.MEDICARE
    elif fee is not None:
        base, basis = fee.fee_cents, ExpectedAmountBasis.FEE_SCHEDULE
    else:
        base, basis = line.charge_cents, ExpectedAmountBasis.BILLED_CHARGE

    expected = base * line.units
    if contract is not None:
        expected = scale_cents(expected, contract.reimbursement_percent)
    return expected, basis


def compute_claim_variance(
    line_items: Sequence[LineItem],
    paid_cents: int,
    catalog: CodingCatalog,
    payer_id: Optional[str],
    payer_name: Optional[str],
    as_of: date,
    threshold: float,
) -> ClaimVariance:
    """
    Expected vs paid for one claim.

    variance_percent = (expected - paid) / expected x 100, 2dp, and 0 when
    nothing is expected. Line paid estimates always sum to paid_cents.
    """
    contract = catalog.contract_for(payer_id, payer_name, as_of)

    expectations = [expected_line_cents(line, catalog, contract) for line in line_items]
    estimates = allocate_proportionally(paid_cents, [cents for cents, _ in expectations])

    lines = [
        LineVariance(
            line_index=index,
            cpt=line.cpt,
            units=line.units,
            basis=basis,
            expected_cents=expected,
            estimated_paid_cents=estimate,
        )
        for index, (line, (expected, basis), estimate) in enumerate(zip(line_items, expectations, estimates))
    ]
    expected_total = sum(line.expected_cents for line in lines)

    return ClaimVariance(
        expected_cents=expected_total,
        paid_cents=paid_cents,
        variance_percent=variance_percent(expected_total, paid_cents),
        threshold_percent=to_percent(threshold).quantize(CENT),
        contract_percent=contract.reimbursement_percent if contract else None,
        lines=lines,
    )


@dataclass
class ClaimVarianceReport:
    """A claim and its variance, as listed by the analyzer."""

    claim: Claim
    variance: ClaimVariance


@dataclass
class UnderpaymentReport:
    items: list[ClaimVarianceReport]
    count: int
    total_underpayment_cents: int
    average_variance_percent: Decimal


# =============================================================================
# Underpayment Analyzer
# =============================================================================


class UnderpaymentAnalyzer:
    """Variance analysis over posted payments, plus the follow-up flag queue."""

    def __init__(
        self,
        session: AsyncSession,
        id_generator: Optional[IdGenerator] = None,
        audit_sink: Optional[AuditSink] = None,
        catalogs: Optional[CatalogRepository] = None,
        settings: Optional[ClaimsSettings] = None,
    ):
        self.session = session
        self.settings = settings or get_claims_settings()
        self.id_generator = id_generator or UuidIdGenerator()
        self.audit_sink = audit_sink or LoggingAuditSink()
        self.catalogs = catalogs or CatalogRepository(session)
        self.ledger = ClaimLedger(session, self.id_generator)

    def _variance(self, claim: Claim, catalog: CodingCatalog) -> ClaimVariance:
        return compute_claim_variance(
            line_items_from_claim(claim),
            to_cents(claim.paid_amount or 0),
            catalog,
            claim.payer_id,
            claim.payer_name,
            claim.service_date or date.today(),
            self.settings.UNDERPAYMENT_THRESHOLD_PERCENT,
        )

    async def analyze_claim(self, tenant_id: str, claim_id: str) -> ClaimVarianceReport:
        claim = await self.ledger.load_claim(tenant_id, claim_id)
        catalog = await self.catalogs.load(tenant_id)
        return ClaimVarianceReport(claim=claim, variance=self._variance(claim, catalog))

    async def list_underpayments(
        self,
        tenant_id: str,
        limit: Optional[int] = None,
    ) -> UnderpaymentReport:
        """
        Underpaid paid/accepted claims, largest variance first.

        Summary figures cover every underpaid claim found, not just the
        returned top-N.
        """
        limit = limit or self.settings.UNDERPAYMENT_TOP_N
        result = await self.session.execute(
            select(Claim)
            .where(
                Claim.tenant_id == tenant_id,
                Claim.status.in_(ANALYZED_STATUSES),
                Claim.total_charges > 0,
                Claim.paid_amount > 0,
            )
            .order_by(Claim.id)
        )
        claims = list(result.scalars().all())
        catalog = await self.catalogs.load(tenant_id)

        underpaid = []
        for claim in claims:
            variance = self._variance(claim, catalog)
            if variance.is_underpaid:
                underpaid.append(ClaimVarianceReport(claim=claim, variance=variance))
        underpaid.sort(key=lambda r: (-r.variance.variance_cents, r.claim.id))

        count = len(underpaid)
        average = Decimal("0.00")
        if count:
            average = (sum(r.variance.variance_percent for r in underpaid) / count).quantize(CENT)

        logger.debug(f"Underpayment scan for tenant {tenant_id}: {len(claims)} claims, {count} underpaid")

        return UnderpaymentReport(
            items=underpaid[:limit],
            count=count,
            total_underpayment_cents=sum(r.variance.variance_cents for r in underpaid),
            average_variance_percent=average,
        )

    # =========================================================================
    # Flags
    # =========================================================================

    async def flag_underpayment(
        self,
        tenant_id: str,
        claim_id: str,
        user_id: Optional[str],
        notes: Optional[str] = None,
    ) -> UnderpaymentFlag:
        """
        Queue a claim for underpayment follow-up.

        Raises:
            StateConflictError: The claim already has a pending flag
        """
        report = await self.analyze_claim(tenant_id, claim_id)
        pending = await self.session.scalar(
            select(UnderpaymentFlag.id).where(
                UnderpaymentFlag.tenant_id == tenant_id,
                UnderpaymentFlag.claim_id == claim_id,
                UnderpaymentFlag.status == UnderpaymentFlagStatus.PENDING,
            )
        )
        if pending is not None:
            raise StateConflictError(
                "Claim already has a pending underpayment flag",
                current_status=UnderpaymentFlagStatus.PENDING.value,
            )

        flag = UnderpaymentFlag(
            id=self.id_generator.new_id(),
            tenant_id=tenant_id,
            claim_id=claim_id,
            expected_amount_cents=report.variance.expected_cents,
            actual_paid_cents=report.variance.paid_cents,
            variance_percent=report.variance.variance_percent,
            status=UnderpaymentFlagStatus.PENDING,
            notes=notes,
            flagged_by=user_id,
        )
        self.session.add(flag)
        await self.ledger.commit("underpayment flag")

        logger.info(f"Flagged claim {claim_id} for underpayment at {flag.variance_percent}%")
        await record_audit_safely(
            self.audit_sink, tenant_id, user_id, "underpayment_flag", "claim", claim_id
        )
        return flag

    async def resolve_flag(
        self,
        tenant_id: str,
        flag_id: str,
        user_id: Optional[str],
        status: UnderpaymentFlagStatus,
        notes: Optional[str] = None,
    ) -> UnderpaymentFlag:
        flag = await self.session.scalar(
            select(UnderpaymentFlag).where(
                UnderpaymentFlag.id == flag_id,
                UnderpaymentFlag.tenant_id == tenant_id,
            )
        )
        if flag is None:
            raise NotFoundError("Underpayment flag", flag_id)
        if flag.status != UnderpaymentFlagStatus.PENDING:
            raise StateConflictError(
                f"Underpayment flag is already {flag.status.value}",
                current_status=flag.status.value,
            )

        flag.status = status
        flag.resolved_by = user_id
        flag.resolved_at = datetime.now(timezone.utc)
        if notes:
            flag.notes = notes
        await self.ledger.commit("underpayment flag resolution")

        await record_audit_safely(
            self.audit_sink, tenant_id, user_id, f"underpayment_{status.value}", "underpayment_flag", flag_id
        )
        return flag

    async def list_flags(
        self,
        tenant_id: str,
        status: Optional[UnderpaymentFlagStatus] = None,
    ) -> list[UnderpaymentFlag]:
        query = select(UnderpaymentFlag).where(UnderpaymentFlag.tenant_id == tenant_id)
        if status is not None:
            query = query.where(UnderpaymentFlag.status == status)
        result = await self.session.execute(
            query.order_by(UnderpaymentFlag.created_at.desc(), UnderpaymentFlag.id.desc())
        )
        return list(result.scalars().all())
