"""
Immutable coding catalogs.

Every engine call receives a CodingCatalog explicitly. Nothing here is
module-level mutable state: tables are frozen dataclasses over tuples,
frozensets and read-only mappings, so one catalog can be shared across
requests and a different one built per tenant or per test.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from claim_engine.core.enums import ContractBasis, ModifierContext

ICD10_PATTERN = re.compile(r"^[A-TV-Z][0-9][0-9A-Z](\.[0-9A-Z]{1,4})?$")
MODIFIER_PATTERN = re.compile(r"^[A-Z0-9]{2}$")

# Any of these satisfies an edit whose bypass modifier is 59 or an X modifier
DISTINCT_PROCEDURE_MODIFIERS = frozenset({"59", "XE", "XP", "XS", "XU"})


def _freeze(mapping: Optional[Mapping]) -> Mapping:
    return MappingProxyType(dict(mapping or {}))


# =============================================================================
# Modifier Rule Table
# =============================================================================


@dataclass(frozen=True)
class ModifierDefinition:
    """A billing modifier and what it means."""

    code: str
    description: str
    category: str


@dataclass(frozen=True)
class CptProfile:
    """Modifier-relevant attributes of one CPT code."""

    cpt: str
    description: str
    bilateral_eligible: bool = False
    multiple_procedure: bool = False
    add_on: bool = False
    is_em: bool = False
    is_cosmetic: bool = False
    common_modifiers: tuple[str, ...] = ()


@dataclass(frozen=True)
class PairRule:
    """
    Edit between two CPT codes billed on the same claim.

    column_two is the code that carries the bypass modifier. A rule without
    a modifier cannot be bypassed: the two codes may not be billed together.
    An empty payer_ids set means the rule applies to every payer.
    """

    column_one: str
    column_two: str
    context: ModifierContext
    rationale: str
    modifier: Optional[str] = None
    payer_ids: frozenset[str] = frozenset()

    def applies_to(self, payer_id: Optional[str]) -> bool:
        return not self.payer_ids or (payer_id is not None and payer_id in self.payer_ids)

    def involves(self, cpt: str) -> bool:
        return cpt in (self.column_one, self.column_two)


@dataclass(frozen=True)
class ModifierRuleTable:
    """Modifier catalog, per-CPT profiles, pair edits and payer substitutions."""

    modifiers: Mapping[str, ModifierDefinition]
    profiles: Mapping[str, CptProfile]
    pair_rules: tuple[PairRule, ...] = ()
    payer_substitutions: Mapping[str, Mapping[str, str]] = field(default_factory=lambda: _freeze({}))
    conflicting_modifiers: tuple[tuple[str, str], ...] = ()
    em_code_pattern: str = r"^992\d\d$"

    @classmethod
    def build(
        cls,
        modifiers: Iterable[ModifierDefinition],
        profiles: Iterable[CptProfile],
        pair_rules: Iterable[PairRule] = (),
        payer_substitutions: Optional[Mapping[str, Mapping[str, str]]] = None,
        conflicting_modifiers: Iterable[tuple[str, str]] = (),
    ) -> "ModifierRuleTable":
        return cls(
            modifiers=_freeze({m.code: m for m in modifiers}),
            profiles=_freeze({p.cpt: p for p in profiles}),
            pair_rules=tuple(pair_rules),
            payer_substitutions=_freeze(
                {payer: _freeze(subs) for payer, subs in (payer_substitutions or {}).items()}
            ),
            conflicting_modifiers=tuple(conflicting_modifiers),
        )

    def profile(self, cpt: str) -> Optional[CptProfile]:
        return self.profiles.get(cpt)

    def is_em(self, cpt: str) -> bool:
        profile = self.profiles.get(cpt)
        if profile is not None:
            return profile.is_em
        return re.match(self.em_code_pattern, cpt or "") is not None

    def rules_for_payer(self, payer_id: Optional[str]) -> list[PairRule]:
        return [rule for rule in self.pair_rules if rule.applies_to(payer_id)]

    def rules_involving(self, cpt: str) -> list[PairRule]:
        return [rule for rule in self.pair_rules if rule.involves(cpt)]

    def substitute(self, modifier: str, payer_id: Optional[str]) -> str:
        """Map a modifier to the payer's preferred equivalent (e.g. 59 -> XS)."""
        if payer_id is None:
            return modifier
        return self.payer_substitutions.get(payer_id, {}).get(modifier, modifier)

    def satisfies(self, required: str, present: Iterable[str]) -> bool:
        """True when the present modifiers already cover the required one."""
        present_set = set(present)
        if required in present_set:
            return True
        if required in DISTINCT_PROCEDURE_MODIFIERS:
            return bool(present_set & DISTINCT_PROCEDURE_MODIFIERS)
        return False


# =============================================================================
# Fee Schedules & Contracts
# =============================================================================


@dataclass(frozen=True)
class FeeScheduleEntry:
    """Expected reimbursement for one unit of a CPT, in cents."""

    cpt: str
    fee_cents: int
    medicare_cents: Optional[int] = None


@dataclass(frozen=True)
class ContractTerms:
    """A payer contract as the engine sees it."""

    payer_name: str
    reimbursement_percent: Decimal
    payer_id: Optional[str] = None
    basis: ContractBasis = ContractBasis.FEE_SCHEDULE
    appeal_filing_days: Optional[int] = None
    timely_filing_days: Optional[int] = None
    active: bool = True
    effective_date: Optional[date] = None
    expiration_date: Optional[date] = None

    def is_active_on(self, as_of: date) -> bool:
        if not self.active:
            return False
        if self.effective_date and as_of < self.effective_date:
            return False
        if self.expiration_date and as_of > self.expiration_date:
            return False
        return True


# =============================================================================
# Coding Catalog
# =============================================================================


@dataclass(frozen=True)
class CodingCatalog:
    """Everything the scrub, modifier and underpayment engines look up."""

    modifier_rules: ModifierRuleTable
    diagnosis_codes: frozenset[str] = frozenset()
    fee_schedule: Mapping[str, FeeScheduleEntry] = field(default_factory=lambda: _freeze({}))
    contracts: tuple[ContractTerms, ...] = ()
    cosmetic_cpts: frozenset[str] = frozenset()

    def with_tenant_data(
        self,
        fee_schedule: Iterable[FeeScheduleEntry] = (),
        contracts: Iterable[ContractTerms] = (),
        diagnosis_codes: Iterable[str] = (),
    ) -> "CodingCatalog":
        """Return a copy extended with a tenant's fee schedule and contracts."""
        return CodingCatalog(
            modifier_rules=self.modifier_rules,
            diagnosis_codes=self.diagnosis_codes | frozenset(diagnosis_codes),
            fee_schedule=_freeze({**self.fee_schedule, **{e.cpt: e for e in fee_schedule}}),
            contracts=self.contracts + tuple(contracts),
            cosmetic_cpts=self.cosmetic_cpts,
        )

    def is_known_diagnosis(self, code: str) -> bool:
        """Catalog lookup, or an ICD-10 shape check when no codes are loaded."""
        if self.diagnosis_codes:
            return code in self.diagnosis_codes
        return ICD10_PATTERN.match(code or "") is not None

    def fee_for(self, cpt: str) -> Optional[FeeScheduleEntry]:
        return self.fee_schedule.get(cpt)

    def is_cosmetic(self, cpt: str) -> bool:
        if cpt in self.cosmetic_cpts:
            return True
        profile = self.modifier_rules.profile(cpt)
        return bool(profile and profile.is_cosmetic)

    def contract_for(
        self,
        payer_id: Optional[str],
        payer_name: Optional[str],
        as_of: date,
    ) -> Optional[ContractTerms]:
        """Active contract by payer id first, then by case-insensitive payer name."""
        active = [c for c in self.contracts if c.is_active_on(as_of)]
        if payer_id:
            for contract in active:
                if contract.payer_id and contract.payer_id == payer_id:
                    return contract
        if payer_name:
            wanted = payer_name.strip().lower()
            for contract in active:
                if contract.payer_name.strip().lower() == wanted:
                    return contract
        return None
