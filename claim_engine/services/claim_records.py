"""
Typed claim records and their mapping to stored JSON.

The engines work on frozen snapshots. Claim rows are converted here and
nowhere else, so JSON column shapes never reach business logic.
"""

from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from claim_engine.models.claim import Claim
from claim_engine.utils.money import from_cents, to_cents, to_decimal


@dataclass(frozen=True)
class LineItem:
    """One billed service line."""

    cpt: str
    units: int
    charge: Decimal
    modifiers: tuple[str, ...] = ()
    dx: tuple[str, ...] = ()
    description: Optional[str] = None

    @property
    def charge_cents(self) -> int:
        return to_cents(self.charge)

    @property
    def line_total_cents(self) -> int:
        return self.charge_cents * self.units

    def with_modifier(self, modifier: str) -> "LineItem":
        if modifier in self.modifiers:
            return self
        return replace(self, modifiers=self.modifiers + (modifier,))

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "LineItem":
        return cls(
            cpt=str(data["cpt"]).strip(),
            units=int(data.get("units", 1)),
            charge=to_decimal(data["charge"]),
            modifiers=tuple(str(m).strip().upper() for m in data.get("modifiers") or ()),
            dx=tuple(str(d).strip().upper() for d in data.get("dx") or ()),
            description=data.get("description"),
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "cpt": self.cpt,
            "modifiers": list(self.modifiers),
            "dx": list(self.dx),
            "units": self.units,
            "charge": str(self.charge),
            "description": self.description,
        }


@dataclass(frozen=True)
class ClaimSnapshot:
    """Immutable view of the parts of a claim the scrub engine checks."""

    claim_id: Optional[str]
    patient_id: Optional[str]
    payer_id: Optional[str]
    payer_name: Optional[str]
    service_date: Optional[date]
    line_items: tuple[LineItem, ...] = ()
    diagnoses: tuple[str, ...] = ()
    is_cosmetic: bool = False
    cosmetic_reason: Optional[str] = None
    metadata: dict = field(default_factory=dict, compare=False, hash=False)

    @property
    def total_charge_cents(self) -> int:
        return total_charge_cents(self.line_items)


def total_charge_cents(line_items) -> int:
    """Sum of charge x units over line items, in cents."""
    return sum(item.line_total_cents for item in line_items)


def total_charges(line_items) -> Decimal:
    return from_cents(total_charge_cents(line_items))


def line_items_from_claim(claim: Claim) -> list[LineItem]:
    return [LineItem.from_json(item) for item in (claim.line_items or [])]


def line_items_to_json(line_items) -> list[dict[str, Any]]:
    return [item.to_json() for item in line_items]


def snapshot_from_claim(claim: Claim) -> ClaimSnapshot:
    return ClaimSnapshot(
        claim_id=claim.id,
        patient_id=claim.patient_id,
        payer_id=claim.payer_id,
        payer_name=claim.payer_name,
        service_date=claim.service_date,
        line_items=tuple(line_items_from_claim(claim)),
        diagnoses=tuple(claim.diagnoses or ()),
        is_cosmetic=bool(claim.is_cosmetic),
        cosmetic_reason=claim.cosmetic_reason,
    )
