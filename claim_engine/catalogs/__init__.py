"""
Coding catalogs: diagnosis codes, fee schedules, payer contracts and
modifier rule tables.
"""

from claim_engine.catalogs.defaults import build_default_catalog, build_default_modifier_rules
from claim_engine.catalogs.repository import CatalogRepository
from claim_engine.catalogs.tables import (
    CodingCatalog,
    ContractTerms,
    CptProfile,
    FeeScheduleEntry,
    ModifierDefinition,
    ModifierRuleTable,
    PairRule,
)

__all__ = [
    "CatalogRepository",
    "CodingCatalog",
    "ContractTerms",
    "CptProfile",
    "FeeScheduleEntry",
    "ModifierDefinition",
    "ModifierRuleTable",
    "PairRule",
    "build_default_catalog",
    "build_default_modifier_rules",
]
