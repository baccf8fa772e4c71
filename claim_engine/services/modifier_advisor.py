"""
Modifier Advisor.

Suggests modifiers for a claim's line items from an injected rule table.
Pure functions only: the same line items and rules always produce the
same ranked suggestions.

Contexts considered:
- CPT pair edits with a bypass modifier (distinct procedure / mutually exclusive)
- E/M on the same day as a procedure (25)
- Bilateral procedures (50)
- Multiple-procedure reduction on secondary procedures (51)
"""

from dataclasses import dataclass
from typing import Any, Optional, Sequence

from claim_engine.catalogs.tables import CptProfile, ModifierRuleTable, PairRule
from claim_engine.core.enums import ModifierContext, SuggestionConfidence
from claim_engine.services.claim_records import LineItem

CONFIDENCE_SCORES = {
    SuggestionConfidence.HIGH: 3,
    SuggestionConfidence.MEDIUM: 2,
    SuggestionConfidence.LOW: 1,
}

LATERALITY_MODIFIERS = frozenset({"50", "RT", "LT"})


@dataclass(frozen=True)
class ModifierSuggestion:
    """A proposed modifier for one line."""

    line_index: int
    cpt: str
    modifier: str
    context: ModifierContext
    rationale: str
    confidence: SuggestionConfidence

    @property
    def score(self) -> int:
        return CONFIDENCE_SCORES[self.confidence]

    def to_dict(self) -> dict[str, Any]:
        return {
            "lineIndex": self.line_index,
            "cpt": self.cpt,
            "modifier": self.modifier,
            "context": self.context.value,
            "rationale": self.rationale,
            "confidence": self.confidence.value,
        }


class _SuggestionSet:
    """Keeps the strongest suggestion per (line, modifier)."""

    def __init__(self) -> None:
        self._items: dict[tuple[int, str], ModifierSuggestion] = {}

    def add(self, suggestion: ModifierSuggestion) -> None:
        key = (suggestion.line_index, suggestion.modifier)
        existing = self._items.get(key)
        if existing is None or suggestion.score > existing.score:
            self._items[key] = suggestion

    def ranked(self) -> list[ModifierSuggestion]:
        return sorted(
            self._items.values(),
            key=lambda s: (-s.score, s.line_index, s.modifier),
        )


# =============================================================================
# Suggestions
# =============================================================================


def suggest_modifiers(
    line_items: Sequence[LineItem],
    rules: ModifierRuleTable,
    payer_id: Optional[str] = None,
) -> list[ModifierSuggestion]:
    """
    Rank modifier suggestions for the given line items.

    Args:
        line_items: Claim lines in billing order
        rules: Modifier rule table (defaults plus any tenant additions)
        payer_id: Payer whose pair edits and substitutions apply

    Returns:
        Suggestions ordered by confidence, then line, then modifier.
        Modifiers already satisfied on a line are never suggested.
    """
    suggestions = _SuggestionSet()
    _suggest_pair_modifiers(line_items, rules, payer_id, suggestions)
    _suggest_same_day_em(line_items, rules, payer_id, suggestions)
    _suggest_bilateral(line_items, rules, payer_id, suggestions)
    _suggest_multiple_procedure(line_items, rules, suggestions)
    return suggestions.ranked()


def _suggest_pair_modifiers(
    line_items: Sequence[LineItem],
    rules: ModifierRuleTable,
    payer_id: Optional[str],
    suggestions: _SuggestionSet,
) -> None:
    payer_rules = [rule for rule in rules.rules_for_payer(payer_id) if rule.modifier]
    for i, first in enumerate(line_items):
        for j in range(i + 1, len(line_items)):
            second = line_items[j]
            for rule in payer_rules:
                if {first.cpt, second.cpt} != {rule.column_one, rule.column_two}:
                    continue
                target = j if second.cpt == rule.column_two else i
                line = line_items[target]
                modifier = rules.substitute(rule.modifier, payer_id)
                if rules.satisfies(modifier, line.modifiers):
                    continue
                suggestions.add(ModifierSuggestion(
                    line_index=target,
                    cpt=line.cpt,
                    modifier=modifier,
                    context=rule.context,
                    rationale=rule.rationale,
                    confidence=SuggestionConfidence.HIGH if rule.payer_ids else SuggestionConfidence.MEDIUM,
                ))


def _suggest_same_day_em(
    line_items: Sequence[LineItem],
    rules: ModifierRuleTable,
    payer_id: Optional[str],
    suggestions: _SuggestionSet,
) -> None:
    procedures = [line.cpt for line in line_items if not rules.is_em(line.cpt)]
    if not procedures:
        return
    modifier = rules.substitute("25", payer_id)
    for index, line in enumerate(line_items):
        if not rules.is_em(line.cpt) or modifier in line.modifiers:
            continue
        suggestions.add(ModifierSuggestion(
            line_index=index,
            cpt=line.cpt,
            modifier=modifier,
            context=ModifierContext.SAME_DAY_EM,
            rationale=(
                f"E/M {line.cpt} is billed on the same day as procedure {procedures[0]}; "
                "a significant, separately identifiable visit needs modifier 25"
            ),
            confidence=SuggestionConfidence.HIGH,
        ))


def _suggest_bilateral(
    line_items: Sequence[LineItem],
    rules: ModifierRuleTable,
    payer_id: Optional[str],
    suggestions: _SuggestionSet,
) -> None:
    modifier = rules.substitute("50", payer_id)
    lines_by_cpt: dict[str, list[int]] = {}
    for index, line in enumerate(line_items):
        profile = rules.profile(line.cpt)
        if profile and profile.bilateral_eligible:
            lines_by_cpt.setdefault(line.cpt, []).append(index)

    for cpt, indexes in lines_by_cpt.items():
        if any(LATERALITY_MODIFIERS & set(line_items[i].modifiers) for i in indexes):
            continue
        if len(indexes) > 1:
            suggestions.add(ModifierSuggestion(
                line_index=indexes[0],
                cpt=cpt,
                modifier=modifier,
                context=ModifierContext.BILATERAL,
                rationale=f"CPT {cpt} appears on {len(indexes)} lines; bill once as a bilateral procedure",
                confidence=SuggestionConfidence.HIGH,
            ))
        elif line_items[indexes[0]].units == 2:
            suggestions.add(ModifierSuggestion(
                line_index=indexes[0],
                cpt=cpt,
                modifier=modifier,
                context=ModifierContext.BILATERAL,
                rationale=f"CPT {cpt} billed with 2 units is bilateral-eligible; use modifier 50 with 1 unit",
                confidence=SuggestionConfidence.MEDIUM,
            ))


def _suggest_multiple_procedure(
    line_items: Sequence[LineItem],
    rules: ModifierRuleTable,
    suggestions: _SuggestionSet,
) -> None:
    candidates = []
    for index, line in enumerate(line_items):
        profile = rules.profile(line.cpt)
        if profile and profile.multiple_procedure and not profile.add_on:
            candidates.append(index)
    if len(candidates) < 2:
        return

    # Highest-valued procedure is primary; ties go to the earlier line
    primary = min(candidates, key=lambda i: (-line_items[i].line_total_cents, i))
    for index in candidates:
        line = line_items[index]
        if index == primary or "51" in line.modifiers or line.cpt == line_items[primary].cpt:
            continue
        suggestions.add(ModifierSuggestion(
            line_index=index,
            cpt=line.cpt,
            modifier="51",
            context=ModifierContext.MULTIPLE_PROCEDURE,
            rationale=(
                f"CPT {line.cpt} is a secondary procedure to {line_items[primary].cpt}; "
                "multiple-procedure reduction applies"
            ),
            confidence=SuggestionConfidence.LOW,
        ))


# =============================================================================
# Catalog Lookups
# =============================================================================


def _profile_to_dict(profile: CptProfile, rules: ModifierRuleTable) -> dict[str, Any]:
    return {
        "cpt": profile.cpt,
        "description": profile.description,
        "bilateralEligible": profile.bilateral_eligible,
        "multipleProcedure": profile.multiple_procedure,
        "addOn": profile.add_on,
        "isEm": profile.is_em,
        "isCosmetic": profile.is_cosmetic,
        "commonModifiers": [
            {
                "code": code,
                "description": rules.modifiers[code].description if code in rules.modifiers else None,
            }
            for code in profile.common_modifiers
        ],
    }


def _pair_rule_to_dict(rule: PairRule) -> dict[str, Any]:
    return {
        "columnOne": rule.column_one,
        "columnTwo": rule.column_two,
        "context": rule.context.value,
        "modifier": rule.modifier,
        "rationale": rule.rationale,
        "payerIds": sorted(rule.payer_ids),
    }


def get_modifier_info(cpt: str, rules: ModifierRuleTable) -> Optional[dict[str, Any]]:
    """Profile and pair edits for one CPT, or None when the CPT is unknown."""
    profile = rules.profile(cpt)
    pair_rules = rules.rules_involving(cpt)
    if profile is None and not pair_rules:
        return None
    info = _profile_to_dict(profile, rules) if profile else {"cpt": cpt, "description": None}
    info["pairRules"] = [_pair_rule_to_dict(rule) for rule in pair_rules]
    return info


def get_all_modifier_rules(rules: ModifierRuleTable) -> dict[str, Any]:
    """Full catalog listing."""
    return {
        "modifiers": [
            {"code": m.code, "description": m.description, "category": m.category}
            for m in sorted(rules.modifiers.values(), key=lambda m: m.code)
        ],
        "cptRules": [
            _profile_to_dict(profile, rules)
            for profile in sorted(rules.profiles.values(), key=lambda p: p.cpt)
        ],
        "pairRules": [_pair_rule_to_dict(rule) for rule in rules.pair_rules],
        "payerSubstitutions": {payer: dict(subs) for payer, subs in rules.payer_substitutions.items()},
    }
