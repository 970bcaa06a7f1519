"""Margin leakage detection."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from lifecycle.costing import to_decimal


MIN_ACCEPTABLE_MARGIN_PCT = Decimal("15")
HUNDRED = Decimal("100")


class LeakageResult(BaseModel):
    """Verdict of the leakage detector.

    Attributes:
        flagged: True when the margin is below the minimum acceptable margin
        margin_pct: Margin as a percentage of sale price, None without a price
        real_unit_cost: The cost figure that was evaluated, kept for audit
    """
    flagged: bool
    margin_pct: Optional[Decimal] = None
    real_unit_cost: Decimal


def evaluate_leakage(real_cost, sale_price) -> LeakageResult:
    """Compare a real unit cost against the declared sale price.

    Args:
        real_cost: Real cost per m³
        sale_price: Declared sale price per m³ (may be None)

    Returns:
        LeakageResult. Without a positive sale price nothing can be
        evaluated: not flagged, margin None.
    """
    cost = to_decimal(real_cost)

    if sale_price is None or to_decimal(sale_price) <= 0:
        return LeakageResult(flagged=False, margin_pct=None, real_unit_cost=cost)

    price = to_decimal(sale_price)
    margin_pct = (price - cost) / price * HUNDRED

    return LeakageResult(
        flagged=margin_pct < MIN_ACCEPTABLE_MARGIN_PCT,
        margin_pct=margin_pct.quantize(Decimal("0.01")),
        real_unit_cost=cost,
    )
