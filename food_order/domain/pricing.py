from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Tuple


def effective_price(price: float, discount_price: float | None) -> float:
    """The price a customer pays right now: the discount price when one is set."""
    return discount_price if discount_price is not None else price


@dataclass(frozen=True)
class OrderTotals:
    """
    Money breakdown of an order.

    `total` is derived and has no field of its own, so it can never drift
    from the components it is computed from.
    """

    subtotal: float
    delivery_fee: float
    tax: float
    discount: float = 0.0

    @property
    def total(self) -> float:
        return round(self.subtotal + self.delivery_fee + self.tax - self.discount, 2)

    @classmethod
    def compute(
        cls,
        lines: Iterable[Tuple[float, int]],
        delivery_fee: float,
        tax_rate: float,
        discount: float = 0.0,
    ) -> "OrderTotals":
        """Build totals from (unit_price, quantity) pairs."""
        subtotal = round(sum(price * qty for price, qty in lines), 2)
        tax = round(subtotal * tax_rate, 2)
        return cls(
            subtotal=subtotal,
            delivery_fee=round(delivery_fee or 0.0, 2),
            tax=tax,
            discount=round(discount, 2),
        )
