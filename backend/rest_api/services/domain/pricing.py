"""
Pricing / Totals Calculator.

Pure functions over integer money (minor units). Used by the cart engine
on every read and by order placement when snapshotting a cart.

Tax included:  tax is carved out of the subtotal, grand = subtotal + service
Tax excluded:  tax is added on top,             grand = subtotal + tax + service

The service charge is always a percentage of the subtotal. Rounding is
half-up to the nearest unit.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable


@dataclass(frozen=True)
class PricingSettings:
    tax_rate: float = 0.0
    service_charge_rate: float = 0.0
    tax_included: bool = True


@dataclass(frozen=True)
class Totals:
    subtotal: int
    tax: int
    service_charge: int
    grand_total: int

    def as_dict(self) -> dict[str, int]:
        return {
            "subtotal": self.subtotal,
            "tax": self.tax,
            "service_charge": self.service_charge,
            "grand_total": self.grand_total,
        }


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def line_total(unit_price: int, quantity: int) -> int:
    return unit_price * quantity


def compute_totals(lines: Iterable[tuple[int, int]], pricing: PricingSettings) -> Totals:
    """
    Compute cart / order totals.

    Args:
        lines: (unit_price, quantity) pairs.
        pricing: Store pricing settings.
    """
    subtotal = sum(line_total(unit_price, quantity) for unit_price, quantity in lines)

    # Rates go through str() so 0.1 stays 0.1 instead of its binary expansion
    tax_rate = Decimal(str(pricing.tax_rate))
    service_rate = Decimal(str(pricing.service_charge_rate))
    sub = Decimal(subtotal)

    service_charge = _round_half_up(sub * service_rate)

    if pricing.tax_included:
        tax = _round_half_up(sub - sub / (1 + tax_rate))
        grand_total = subtotal + service_charge
    else:
        tax = _round_half_up(sub * tax_rate)
        grand_total = subtotal + tax + service_charge

    return Totals(
        subtotal=subtotal,
        tax=tax,
        service_charge=service_charge,
        grand_total=grand_total,
    )
