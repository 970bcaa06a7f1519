"""Real unit cost of a delivery.

Metered materials (cement, admixture) are costed from the note's actual
consumption divided by its volume. Sand, gravel and water have no
per-delivery telemetry and are costed from the formula's theoretical dosage.

Price units, as maintained in the price list:
- cement, sand, gravel: per tonne (quantities are in kg, so / 1000)
- water: per m³ (quantities are in L, so / 1000)
- admixture: per litre
"""

from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Protocol, Sequence

from core.errors import ReferenceDataUnavailable
from core.observability.logging import get_logger
from models.delivery import DeliveryNote, FormulaSpec, MaterialPrice


logger = get_logger(__name__)

PER_THOUSAND = Decimal("1000")
ZERO = Decimal("0")
CENT = Decimal("0.01")

# Primary key first, then known aliases. Keys are compared lowercased.
MATERIAL_ALIASES: Dict[str, tuple] = {
    "cement": ("ciment", "ciment cpj 45"),
    "admixture": ("adjuvant", "plastifiant"),
    "sand": ("sable",),
    "gravel": ("gravier",),
    "water": ("eau",),
}


class ReferenceDataProvider(Protocol):
    """Read-only access to formula specs and current prices.

    Implementations raise ReferenceDataUnavailable when the backing source
    cannot be reached; a missing formula is ``None``, not an error.
    """

    def get_formula_spec(self, formula_id: str) -> Optional[FormulaSpec]:
        ...

    def get_current_prices(self) -> List[MaterialPrice]:
        ...


def to_decimal(value) -> Decimal:
    """Coerce a number or numeric string to Decimal without float noise."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def build_price_index(prices: Sequence[MaterialPrice]) -> Dict[str, Decimal]:
    """Index prices by lowercased, trimmed material key."""
    return {p.material.strip().lower(): to_decimal(p.unit_price) for p in prices}


def resolve_price(index: Mapping[str, Decimal], material: str) -> Decimal:
    """Price of ``material`` via its primary key then aliases; zero if unresolved."""
    for key in MATERIAL_ALIASES[material]:
        if key in index:
            return index[key]
    logger.debug(f"No price found for {material}", extra_fields={"keys": MATERIAL_ALIASES[material]})
    return ZERO


def cost_breakdown(
    note: DeliveryNote,
    formula: FormulaSpec,
    prices: Mapping[str, Decimal],
) -> Dict[str, Decimal]:
    """Per-m³ cost of each of the five material lines.

    Args:
        note: Delivery note with positive volume
        formula: Theoretical dosage of the note's formula
        prices: Output of build_price_index

    Returns:
        Dict of material -> cost per m³
    """
    volume = to_decimal(note.volume_m3)

    cement_kg_m3 = to_decimal(note.cement_actual_kg) / volume
    admixture_l_m3 = to_decimal(note.admixture_actual_l) / volume

    return {
        "cement": cement_kg_m3 * resolve_price(prices, "cement") / PER_THOUSAND,
        "admixture": admixture_l_m3 * resolve_price(prices, "admixture"),
        "sand": to_decimal(formula.sand_kg_m3) * resolve_price(prices, "sand") / PER_THOUSAND,
        "gravel": to_decimal(formula.gravel_kg_m3) * resolve_price(prices, "gravel") / PER_THOUSAND,
        "water": to_decimal(formula.water_l_m3) * resolve_price(prices, "water") / PER_THOUSAND,
    }


def compute_real_unit_cost(
    note: DeliveryNote,
    reference: ReferenceDataProvider,
) -> Optional[Decimal]:
    """Compute the real cost per m³ of a delivery.

    Args:
        note: The delivery note (actual consumption + formula reference)
        reference: Formula spec / price list provider

    Returns:
        Unrounded cost per m³, or None when the formula spec is
        unknown, the price list cannot be fetched, or the note has no
        positive volume.
    """
    volume = to_decimal(note.volume_m3)
    if volume <= ZERO:
        logger.warning(
            f"Cannot cost delivery note {note.note_id}: no positive volume",
            extra_fields={"volume_m3": str(note.volume_m3)},
        )
        return None

    try:
        formula = reference.get_formula_spec(note.formula_id)
        if formula is None:
            logger.warning(f"Formula spec not found: {note.formula_id}")
            return None
        prices = build_price_index(reference.get_current_prices())
    except ReferenceDataUnavailable as e:
        logger.warning(
            f"Reference data unavailable while costing {note.note_id}: {e}",
            extra_fields={"formula_id": note.formula_id},
        )
        return None

    lines = cost_breakdown(note, formula, prices)
    total = sum(lines.values(), ZERO)

    logger.debug(
        f"Real unit cost for {note.note_id}: {total.quantize(CENT)}",
        extra_fields={k: str(v.quantize(CENT)) for k, v in lines.items()},
    )
    return total
