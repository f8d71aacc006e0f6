# Overview: Pure line-item amount and delivery note total computation.

"""
Delivery Note Totals

Every item amount is derived, never taken from the caller:
- unit_price present and > 0  -> amount = quantity * unit_price
- otherwise                   -> amount = quantity (0 when quantity is missing)

The note total is the sum of item amounts, accumulated in item order so
fixtures reproduce exactly. No rounding beyond float arithmetic.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Optional


# Units of measure accepted on a delivery note line
VALID_UNITS = ("hour", "unit", "kg", "meter", "liter")


@dataclass(frozen=True)
class LineItem:
    description: str
    quantity: Optional[float]
    unit: str
    unit_price: Optional[float] = None
    amount: Optional[float] = None


def compute_amount(quantity: Optional[float], unit_price: Optional[float]) -> float:
    if quantity and unit_price is not None and unit_price > 0:
        return quantity * unit_price
    return quantity or 0.0


def compute_totals(items: Iterable[LineItem]) -> tuple[list[LineItem], float]:
    """Return (items with amount filled in, total). Input items are not mutated."""
    priced: list[LineItem] = []
    total = 0.0
    for item in items:
        amount = compute_amount(item.quantity, item.unit_price)
        priced.append(replace(item, amount=amount))
        total += amount
    return priced, total
