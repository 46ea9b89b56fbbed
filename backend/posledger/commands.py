# Overview: Validated command objects accepted by the ledger services.

from __future__ import annotations

from dataclasses import dataclass, field

from .models import StockMovementType
from .errors import ValidationError


@dataclass(frozen=True)
class StockMovementCommand:
    """One inventory-affecting event (manual supply, write-off, count correction)."""
    product_id: int
    warehouse_id: int
    type: StockMovementType
    quantity: int
    cost_cents: int = 0
    note: str = ""
    user_id: str = "system"

    def __post_init__(self):
        if self.quantity is None or self.quantity <= 0:
            raise ValidationError("quantity must be > 0")
        if self.cost_cents is None or self.cost_cents < 0:
            raise ValidationError("cost_cents must be >= 0")
        if not self.user_id:
            raise ValidationError("user_id is required")


@dataclass(frozen=True)
class SaleLineCommand:
    product_id: int
    quantity: int
    unit_price_cents: int
    discount_cents: int = 0

    def __post_init__(self):
        if self.quantity is None or self.quantity <= 0:
            raise ValidationError("quantity must be > 0")
        if self.unit_price_cents is None or self.unit_price_cents <= 0:
            raise ValidationError("unit_price_cents must be > 0")
        if self.discount_cents is None or self.discount_cents < 0:
            raise ValidationError("discount_cents must be >= 0")


@dataclass(frozen=True)
class SaleCommand:
    """Checkout request. Totals are never part of the command; they are computed."""
    customer_id: int
    items: tuple[SaleLineCommand, ...]
    user_id: str
    warehouse_id: int | None = None
    discount_cents: int = 0
    notes: str | None = None
    requested_quantities: dict = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if not self.items:
            raise ValidationError("Sale must have at least one item")
        if self.discount_cents is None or self.discount_cents < 0:
            raise ValidationError("discount_cents must be >= 0")
        if not self.user_id:
            raise ValidationError("user_id is required")

        # Lines for the same product are checked against their combined quantity
        totals: dict[int, int] = {}
        for line in self.items:
            totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
        object.__setattr__(self, "items", tuple(self.items))
        object.__setattr__(self, "requested_quantities", totals)
