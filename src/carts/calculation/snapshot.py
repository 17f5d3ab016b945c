"""Calculation snapshot and breakdown value objects.

A CalculationSnapshot is the frozen output of one successful pipeline run.
The cart publishes it wholesale, so readers only ever see a complete set of
totals: either the fresh one or the previous one, never a mix.
"""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from carts.pricing.price import Currency, Price


class ShippingOption(BaseModel):
    """A priced way of delivering the cart, as offered by the shipping service."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    name: str
    price: Price
    description: str = ""
    collect: bool = False
    tax_class: str = "standard"
    meta: dict[str, Any] = Field(default_factory=dict)


class DiscountBreakdown(BaseModel):
    """One discount application and the lines it touched."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    name: str
    price: Price
    line_ids: tuple[str, ...] = ()
    cart_level: bool = False


class Promotion(BaseModel):
    """A promotion that is active on the cart."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    name: str
    coupon_code: str | None = None


class FreeItem(BaseModel):
    """A purchasable granted by a promotion, not yet added to the cart."""

    model_config = ConfigDict(frozen=True)

    promotion: str
    purchasable_type: str
    purchasable_id: str
    quantity: int = Field(default=1, ge=1)
    description: str = ""


class TaxAmount(BaseModel):
    model_config = ConfigDict(frozen=True)

    identifier: str
    description: str
    percentage: Decimal
    price: Price


class TaxBreakdown(BaseModel):
    """Tax amounts keyed by rate identifier."""

    model_config = ConfigDict(frozen=True)

    amounts: tuple[TaxAmount, ...] = ()

    def total(self, currency: Currency) -> Price:
        return sum((amount.price for amount in self.amounts), Price.zero(currency))

    def merge(self, other: "TaxBreakdown") -> "TaxBreakdown":
        """Combine two breakdowns, summing amounts that share a rate identifier."""
        merged: dict[str, TaxAmount] = {}
        for amount in (*self.amounts, *other.amounts):
            existing = merged.get(amount.identifier)
            if existing is None:
                merged[amount.identifier] = amount
            else:
                merged[amount.identifier] = existing.model_copy(update={"price": existing.price + amount.price})
        return TaxBreakdown(amounts=tuple(merged.values()))


class ShippingBreakdownItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    identifier: str
    name: str
    price: Price


class ShippingBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: tuple[ShippingBreakdownItem, ...] = ()


class LineCalculation(BaseModel):
    """Calculated amounts for one cart line."""

    model_config = ConfigDict(frozen=True)

    line_id: str
    quantity: int
    unit_price: Price
    sub_total: Price
    discount_total: Price
    sub_total_discounted: Price
    tax_breakdown: TaxBreakdown
    tax_amount: Price
    total: Price


class CalculationSnapshot(BaseModel):
    """Every derived total of a cart, captured at one fingerprint."""

    model_config = ConfigDict(frozen=True)

    fingerprint: str
    currency: Currency
    sub_total: Price
    sub_total_discounted: Price
    discount_total: Price
    discount_breakdown: tuple[DiscountBreakdown, ...] = ()
    discounts: tuple[DiscountBreakdown, ...] = ()
    promotions: tuple[Promotion, ...] = ()
    free_items: tuple[FreeItem, ...] = ()
    shipping_option: ShippingOption | None = None
    shipping_sub_total: Price
    shipping_tax_breakdown: TaxBreakdown = TaxBreakdown()
    shipping_tax_total: Price
    shipping_total: Price
    shipping_breakdown: ShippingBreakdown = ShippingBreakdown()
    tax_breakdown: TaxBreakdown = TaxBreakdown()
    tax_total: Price
    total: Price
    lines: dict[str, LineCalculation] = Field(default_factory=dict)
