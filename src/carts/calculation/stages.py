"""Calculation stages.

Canonical order:
    CalculateLines → ApplyDiscounts → ApplyShipping → ApplyTax → CalculateTotals

Later stages depend on earlier ones (tax is charged on discounted amounts,
totals need tax). Every stage recomputes its outputs from its inputs and
overwrites them, so running a stage twice gives the same context.
"""

from abc import ABC, abstractmethod

import structlog

from carts.calculation.context import CalculationContext
from carts.calculation.snapshot import ShippingBreakdown, ShippingBreakdownItem, TaxBreakdown
from carts.exceptions import PriceNotFound
from carts.services.tax.port import TaxRequest

logger = structlog.get_logger(__name__)


class Stage(ABC):
    """One step of the calculation pipeline."""

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def process(self, context: CalculationContext) -> None: ...


class CalculateLines(Stage):
    """Unit price × quantity for every line; discounts and tax start at zero."""

    def process(self, context: CalculationContext) -> None:
        zero = context.zero()
        for line in context.lines:
            unit_price = line.purchasable.get_price(context.currency, line.quantity)
            if unit_price is None:
                raise PriceNotFound(
                    {"price": [f"{line.purchasable.description} has no price in {context.currency.code}"]}
                )
            line.unit_price = unit_price
            line.sub_total = unit_price.multiply(line.quantity)
            line.discount_total = zero
            line.sub_total_discounted = line.sub_total
            line.tax_breakdown = TaxBreakdown()
            line.tax_amount = zero
            line.total = line.sub_total


class ApplyDiscounts(Stage):
    """Apply line- and cart-level discounts from the promotion service.

    Line discounts are capped at the line sub-total. Cart-level discounts are
    capped at what remains and spread over the lines in proportion to their
    remaining amounts, so every line's taxable base reflects them.
    """

    def process(self, context: CalculationContext) -> None:
        result = context.promotions_service.apply(context)
        zero = context.zero()

        for line in context.lines:
            discount = result.line_discounts.get(line.line_id, zero)
            line.discount_total = min(discount, line.sub_total)
            line.sub_total_discounted = line.sub_total - line.discount_total

        available = sum((line.sub_total_discounted for line in context.lines), zero)
        applied_cart_discounts = []
        cart_discount = zero
        for discount in result.cart_discounts:
            applied = min(discount.price, available - cart_discount)
            cart_discount = cart_discount + applied
            applied_cart_discounts.append(
                discount.model_copy(
                    update={"price": applied, "line_ids": tuple(line.line_id for line in context.lines)}
                )
            )

        if context.lines and cart_discount.value:
            shares = cart_discount.allocate_proportionally([line.sub_total_discounted for line in context.lines])
            for line, share in zip(context.lines, shares, strict=True):
                line.discount_total = line.discount_total + share
                line.sub_total_discounted = line.sub_total - line.discount_total

        context.discount_breakdown = [*result.line_breakdown, *applied_cart_discounts]
        context.discounts = applied_cart_discounts
        context.promotions = list(result.promotions)
        context.free_items = list(result.free_items)


class ApplyShipping(Stage):
    """Resolve the shipping option: override, then chosen, then cheapest non-collect."""

    def process(self, context: CalculationContext) -> None:
        zero = context.zero()
        context.shipping_option = None
        context.shipping_sub_total = zero
        context.shipping_breakdown = ShippingBreakdown()

        if not context.shippable:
            return

        option = context.shipping_option_override or context.shipping.get_shipping_option(context.cart)
        if option is None:
            candidates = [o for o in context.shipping.get_options(context.cart) if not o.collect]
            option = min(candidates, key=lambda o: o.price.value, default=None)

        if option is None:
            logger.debug("No shipping option available", cart_id=context.cart.id)
            return

        context.shipping_option = option
        context.shipping_sub_total = option.price
        context.shipping_breakdown = ShippingBreakdown(
            items=(ShippingBreakdownItem(identifier=option.identifier, name=option.name, price=option.price),)
        )


class ApplyTax(Stage):
    """Tax each line's discounted sub-total and the shipping charge."""

    def process(self, context: CalculationContext) -> None:
        zero = context.zero()
        breakdown = TaxBreakdown()

        for line in context.lines:
            line.tax_breakdown = context.tax.get_breakdown(
                TaxRequest(
                    currency=context.currency,
                    tax_class=line.purchasable.tax_class,
                    amount=line.sub_total_discounted,
                    shipping_address=context.shipping_address,
                    billing_address=context.billing_address,
                    line_id=line.line_id,
                )
            )
            line.tax_amount = line.tax_breakdown.total(context.currency)
            line.total = line.sub_total_discounted + line.tax_amount
            breakdown = breakdown.merge(line.tax_breakdown)

        context.shipping_tax_breakdown = TaxBreakdown()
        context.shipping_tax_total = zero
        if context.shipping_option is not None:
            context.shipping_tax_breakdown = context.tax.get_breakdown(
                TaxRequest(
                    currency=context.currency,
                    tax_class=context.shipping_option.tax_class,
                    amount=context.shipping_sub_total,
                    shipping_address=context.shipping_address,
                    billing_address=context.billing_address,
                    is_shipping=True,
                )
            )
            context.shipping_tax_total = context.shipping_tax_breakdown.total(context.currency)
            breakdown = breakdown.merge(context.shipping_tax_breakdown)

        context.shipping_total = (context.shipping_sub_total or zero) + context.shipping_tax_total
        context.tax_breakdown = breakdown


class CalculateTotals(Stage):
    """total = sub_total − discount_total + shipping_sub_total + tax_total."""

    def process(self, context: CalculationContext) -> None:
        zero = context.zero()
        shipping_sub_total = context.shipping_sub_total or zero
        shipping_tax_total = context.shipping_tax_total or zero

        context.sub_total = sum((line.sub_total for line in context.lines), zero)
        context.discount_total = sum((line.discount_total for line in context.lines), zero)
        context.sub_total_discounted = context.sub_total - context.discount_total
        context.tax_total = sum((line.tax_amount for line in context.lines), zero) + shipping_tax_total
        context.shipping_total = shipping_sub_total + shipping_tax_total
        context.total = context.sub_total - context.discount_total + shipping_sub_total + context.tax_total


def default_stages() -> list[Stage]:
    return [CalculateLines(), ApplyDiscounts(), ApplyShipping(), ApplyTax(), CalculateTotals()]
