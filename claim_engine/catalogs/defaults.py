"""
Default dermatology coding tables.

A starter set for development and tests. Production tenants extend it
with their own fee schedules and contracts through CatalogRepository.
"""

from claim_engine.catalogs.tables import (
    CodingCatalog,
    CptProfile,
    ModifierDefinition,
    ModifierRuleTable,
    PairRule,
)
from claim_engine.core.enums import ModifierContext

# =============================================================================
# Modifiers
# =============================================================================

# Format: (code, description, category)
MODIFIERS = (
    ("24", "Unrelated E/M service during a postoperative period", "evaluation"),
    ("25", "Significant, separately identifiable E/M service on the same day as a procedure", "evaluation"),
    ("50", "Bilateral procedure", "anatomic"),
    ("51", "Multiple procedures", "payment"),
    ("57", "Decision for surgery", "evaluation"),
    ("59", "Distinct procedural service", "distinct"),
    ("76", "Repeat procedure by the same physician", "procedural"),
    ("79", "Unrelated procedure during the postoperative period", "procedural"),
    ("XE", "Separate encounter", "distinct"),
    ("XP", "Separate practitioner", "distinct"),
    ("XS", "Separate structure or organ", "distinct"),
    ("XU", "Unusual non-overlapping service", "distinct"),
    ("RT", "Right side", "anatomic"),
    ("LT", "Left side", "anatomic"),
    ("E1", "Upper left eyelid", "anatomic"),
    ("E2", "Lower left eyelid", "anatomic"),
    ("E3", "Upper right eyelid", "anatomic"),
    ("E4", "Lower right eyelid", "anatomic"),
    ("GA", "Waiver of liability statement on file", "payment"),
)

# =============================================================================
# CPT Profiles
# =============================================================================

EM_CODES = ("99202", "99203", "99204", "99205", "99211", "99212", "99213", "99214", "99215")

# Format: (cpt, description, bilateral, multiple_procedure, add_on, cosmetic)
PROCEDURES = (
    ("10060", "Incision and drainage of abscess, simple", False, True, False, False),
    ("11100", "Biopsy of skin, single lesion", False, True, False, False),
    ("11101", "Biopsy of skin, each additional lesion", False, False, True, False),
    ("11102", "Tangential biopsy of skin, single lesion", False, True, False, False),
    ("11103", "Tangential biopsy, each additional lesion", False, False, True, False),
    ("11104", "Punch biopsy of skin, single lesion", False, True, False, False),
    ("11105", "Punch biopsy, each additional lesion", False, False, True, False),
    ("11106", "Incisional biopsy of skin, single lesion", False, True, False, False),
    ("11107", "Incisional biopsy, each additional lesion", False, False, True, False),
    ("11300", "Shave of epidermal lesion, trunk/arms/legs, 0.5 cm or less", False, True, False, False),
    ("11305", "Shave of epidermal lesion, scalp/neck/hands/feet, 0.5 cm or less", False, True, False, False),
    ("11310", "Shave of epidermal lesion, face, 0.5 cm or less", False, True, False, False),
    ("11400", "Excision benign lesion, trunk/arms/legs, 0.5 cm or less", False, True, False, False),
    ("11401", "Excision benign lesion, trunk/arms/legs, 0.6 to 1.0 cm", False, True, False, False),
    ("11402", "Excision benign lesion, trunk/arms/legs, 1.1 to 2.0 cm", False, True, False, False),
    ("11600", "Excision malignant lesion, trunk/arms/legs, 0.5 cm or less", False, True, False, False),
    ("11601", "Excision malignant lesion, trunk/arms/legs, 0.6 to 1.0 cm", False, True, False, False),
    ("11950", "Subcutaneous injection of filling material, 1 cc or less", False, False, False, True),
    ("12001", "Simple repair of superficial wound, 2.5 cm or less", False, True, False, False),
    ("15780", "Dermabrasion, total face", False, False, False, True),
    ("15788", "Chemical peel, facial, epidermal", False, False, False, True),
    ("15823", "Blepharoplasty, upper eyelid, with excessive skin", True, True, False, True),
    ("17000", "Destruction of premalignant lesion, first lesion", False, True, False, False),
    ("17003", "Destruction of premalignant lesions, 2 to 14, each", False, False, True, False),
    ("17004", "Destruction of premalignant lesions, 15 or more", False, True, False, False),
    ("17110", "Destruction of benign lesions, up to 14", False, True, False, False),
    ("17111", "Destruction of benign lesions, 15 or more", False, True, False, False),
    ("17311", "Mohs surgery, head/neck/hands/feet/genitalia, first stage", False, False, False, False),
    ("17312", "Mohs surgery, each additional stage", False, False, True, False),
    ("17313", "Mohs surgery, trunk/arms/legs, first stage", False, False, False, False),
    ("17314", "Mohs surgery, trunk/arms/legs, each additional stage", False, False, True, False),
    ("17380", "Electrolysis epilation, each 30 minutes", False, False, False, True),
    ("64612", "Chemodenervation of muscles innervated by facial nerve", True, True, False, False),
    ("69210", "Removal of impacted cerumen, one ear", True, False, False, False),
    ("96372", "Therapeutic injection, subcutaneous or intramuscular", False, False, False, False),
)

# =============================================================================
# Pair Edits
# =============================================================================

PAIR_RULES = (
    PairRule(
        "17311", "11102", ModifierContext.DISTINCT_PROCEDURE,
        "Tangential biopsy on the day of Mohs surgery is separately payable only for a different lesion",
        modifier="59",
    ),
    PairRule(
        "17311", "11104", ModifierContext.DISTINCT_PROCEDURE,
        "Punch biopsy on the day of Mohs surgery is separately payable only for a different lesion",
        modifier="59",
    ),
    PairRule(
        "17000", "17110", ModifierContext.DISTINCT_PROCEDURE,
        "Premalignant and benign destruction at one session must treat distinct lesions",
        modifier="59",
    ),
    PairRule(
        "11400", "11300", ModifierContext.MUTUALLY_EXCLUSIVE,
        "Shave and excision of the same lesion cannot both be billed",
        modifier="59",
    ),
    PairRule(
        "11402", "12001", ModifierContext.MUTUALLY_EXCLUSIVE,
        "Simple repair is included in the excision of a benign lesion",
    ),
    PairRule(
        "11102", "11100", ModifierContext.MUTUALLY_EXCLUSIVE,
        "Legacy and current single-lesion biopsy codes describe the same service",
    ),
    PairRule(
        "17000", "11102", ModifierContext.DISTINCT_PROCEDURE,
        "Destruction and biopsy of the same lesion are bundled; a separate lesion needs XS",
        modifier="XS",
        payer_ids=frozenset({"medicare"}),
    ),
)

CONFLICTING_MODIFIERS = (
    ("50", "RT"),
    ("50", "LT"),
    ("RT", "LT"),
    ("59", "XE"),
    ("59", "XP"),
    ("59", "XS"),
    ("59", "XU"),
)

PAYER_SUBSTITUTIONS = {
    "medicare": {"59": "XS"},
}

# =============================================================================
# Diagnosis Codes
# =============================================================================

DIAGNOSIS_CODES = frozenset({
    "B07.9", "B35.1", "C43.9", "C44.311", "C44.41", "C44.511", "C44.612",
    "C44.712", "C44.91", "D04.39", "D22.9", "D23.9", "D48.5", "L20.9",
    "L30.9", "L40.0", "L57.0", "L60.0", "L70.0", "L71.9", "L72.0", "L81.4",
    "L82.0", "L82.1", "L85.3", "L90.5", "L98.8", "R21", "Z41.1", "Z85.828",
})


def build_default_modifier_rules() -> ModifierRuleTable:
    profiles = [
        CptProfile(cpt=code, description="Office or outpatient E/M visit", is_em=True, common_modifiers=("25", "57"))
        for code in EM_CODES
    ]
    for cpt, description, bilateral, multiple, add_on, cosmetic in PROCEDURES:
        common = []
        if bilateral:
            common.extend(["50", "RT", "LT"])
        if multiple:
            common.extend(["51", "59"])
        profiles.append(
            CptProfile(
                cpt=cpt,
                description=description,
                bilateral_eligible=bilateral,
                multiple_procedure=multiple,
                add_on=add_on,
                is_cosmetic=cosmetic,
                common_modifiers=tuple(common),
            )
        )

    return ModifierRuleTable.build(
        modifiers=[ModifierDefinition(code, description, category) for code, description, category in MODIFIERS],
        profiles=profiles,
        pair_rules=PAIR_RULES,
        payer_substitutions=PAYER_SUBSTITUTIONS,
        conflicting_modifiers=CONFLICTING_MODIFIERS,
    )


def build_default_catalog() -> CodingCatalog:
    """Fresh catalog with the default tables and no tenant fee data."""
    return CodingCatalog(
        modifier_rules=build_default_modifier_rules(),
        diagnosis_codes=DIAGNOSIS_CODES,
    )
