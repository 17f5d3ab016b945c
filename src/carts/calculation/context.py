"""Working context the calculation stages read and write.

The context is seeded from the cart, mutated in place by each stage, and
frozen into a CalculationSnapshot once every stage has run. The cart itself
is never touched while stages run.
"""

from dataclasses import dataclass, field
from typing import Any

from carts.calculation.snapshot import (
    CalculationSnapshot,
    DiscountBreakdown,
    FreeItem,
    LineCalculation,
    Promotion,
    ShippingBreakdown,
    ShippingOption,
    TaxBreakdown,
)
from carts.exceptions import CalculationError
from carts.pricing.price import Currency, Price


@dataclass
class LineContext:
    line_id: str
    purchasable: Any
    quantity: int
    meta: dict
    unit_price: Price | None = None
    sub_total: Price | None = None
    discount_total: Price | None = None
    sub_total_discounted: Price | None = None
    tax_breakdown: TaxBreakdown = field(default_factory=TaxBreakdown)
    tax_amount: Price | None = None
    total: Price | None = None


@dataclass
class CalculationContext:
    cart: Any
    currency: Currency
    coupon_code: str | None
    shippable: bool
    shipping_address: Any
    billing_address: Any
    shipping_option_override: ShippingOption | None
    shipping: Any
    tax: Any
    promotions_service: Any
    lines: list[LineContext] = field(default_factory=list)

    discount_breakdown: list[DiscountBreakdown] = field(default_factory=list)
    discounts: list[DiscountBreakdown] = field(default_factory=list)
    promotions: list[Promotion] = field(default_factory=list)
    free_items: list[FreeItem] = field(default_factory=list)

    shipping_option: ShippingOption | None = None
    shipping_sub_total: Price | None = None
    shipping_tax_breakdown: TaxBreakdown = field(default_factory=TaxBreakdown)
    shipping_tax_total: Price | None = None
    shipping_total: Price | None = None
    shipping_breakdown: ShippingBreakdown = field(default_factory=ShippingBreakdown)

    tax_breakdown: TaxBreakdown = field(default_factory=TaxBreakdown)
    sub_total: Price | None = None
    discount_total: Price | None = None
    sub_total_discounted: Price | None = None
    tax_total: Price | None = None
    total: Price | None = None

    @classmethod
    def from_cart(cls, cart) -> "CalculationContext":
        """Seed a context from a CartSession, resolving each line's purchasable."""
        manager = cart.manager
        return cls(
            cart=cart,
            currency=cart.currency,
            coupon_code=cart.coupon_code,
            shippable=cart.is_shippable(),
            shipping_address=cart.shipping_address,
            billing_address=cart.billing_address,
            shipping_option_override=cart.shipping_option_override,
            shipping=manager.shipping,
            tax=manager.tax,
            promotions_service=manager.promotions,
            lines=[
                LineContext(
                    line_id=str(line.id),
                    purchasable=cart.purchasable_for(line),
                    quantity=line.quantity,
                    meta=line.get_meta(),
                )
                for line in cart.lines
            ],
        )

    def zero(self) -> Price:
        return Price.zero(self.currency)

    def to_snapshot(self, fingerprint: str) -> CalculationSnapshot:
        """Freeze the context. Fails if a required stage never ran."""
        missing = [name for name in ("sub_total", "total") if getattr(self, name) is None]
        missing += [f"lines[{line.line_id}]" for line in self.lines if line.total is None]
        if missing:
            raise CalculationError({"calculation": [f"Pipeline left totals unset: {', '.join(missing)}"]})

        zero = self.zero()
        return CalculationSnapshot(
            fingerprint=fingerprint,
            currency=self.currency,
            sub_total=self.sub_total,
            sub_total_discounted=self.sub_total_discounted or self.sub_total,
            discount_total=self.discount_total or zero,
            discount_breakdown=tuple(self.discount_breakdown),
            discounts=tuple(self.discounts),
            promotions=tuple(self.promotions),
            free_items=tuple(self.free_items),
            shipping_option=self.shipping_option,
            shipping_sub_total=self.shipping_sub_total or zero,
            shipping_tax_breakdown=self.shipping_tax_breakdown,
            shipping_tax_total=self.shipping_tax_total or zero,
            shipping_total=self.shipping_total or zero,
            shipping_breakdown=self.shipping_breakdown,
            tax_breakdown=self.tax_breakdown,
            tax_total=self.tax_total or zero,
            total=self.total,
            lines={
                line.line_id: LineCalculation(
                    line_id=line.line_id,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    sub_total=line.sub_total,
                    discount_total=line.discount_total or zero,
                    sub_total_discounted=line.sub_total_discounted or line.sub_total,
                    tax_breakdown=line.tax_breakdown,
                    tax_amount=line.tax_amount or zero,
                    total=line.total,
                )
                for line in self.lines
            },
        )
