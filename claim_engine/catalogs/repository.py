"""
Catalog loading at the store boundary.

Maps fee schedule, payer contract and diagnosis rows into the immutable
catalog records the engines consume. Rows never leave this module.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from claim_engine.catalogs.defaults import build_default_catalog
from claim_engine.catalogs.tables import CodingCatalog, ContractTerms, FeeScheduleEntry
from claim_engine.models.catalog import DiagnosisCode, FeeScheduleItem, PayerContract
from claim_engine.utils.logging import get_logger

logger = get_logger(__name__)


class CatalogRepository:
    """Builds a tenant's CodingCatalog from the reference tables."""

    def __init__(self, session: AsyncSession, base: Optional[CodingCatalog] = None):
        self.session = session
        self.base = base or build_default_catalog()

    async def load(self, tenant_id: str) -> CodingCatalog:
        fee_rows = await self.session.execute(
            select(FeeScheduleItem).where(FeeScheduleItem.tenant_id == tenant_id)
        )
        contract_rows = await self.session.execute(
            select(PayerContract).where(PayerContract.tenant_id == tenant_id)
        )
        dx_rows = await self.session.execute(
            select(DiagnosisCode.icd10_code).where(DiagnosisCode.billable.is_(True))
        )

        fee_schedule = [
            FeeScheduleEntry(
                cpt=row.cpt_code,
                fee_cents=row.fee_cents,
                medicare_cents=row.medicare_cents,
            )
            for row in fee_rows.scalars().all()
        ]
        contracts = [
            ContractTerms(
                payer_name=row.payer_name,
                payer_id=row.payer_id,
                reimbursement_percent=row.reimbursement_percent,
                basis=row.basis,
                appeal_filing_days=row.appeal_filing_days,
                timely_filing_days=row.timely_filing_days,
                active=row.active,
                effective_date=row.effective_date,
                expiration_date=row.expiration_date,
            )
            for row in contract_rows.scalars().all()
        ]
        diagnosis_codes = list(dx_rows.scalars().all())

        logger.debug(
            f"Loaded catalog for tenant {tenant_id}: "
            f"{len(fee_schedule)} fees, {len(contracts)} contracts, {len(diagnosis_codes)} extra dx"
        )

        return self.base.with_tenant_data(
            fee_schedule=fee_schedule,
            contracts=contracts,
            diagnosis_codes=diagnosis_codes,
        )
