"""Order: the immutable record a calculated cart materializes into.

Everything on an order is a copy taken at materialization time: lines,
totals, breakdowns and addresses. Amounts are stored as integers in the
currency's minor unit and breakdowns as JSON. Later cart mutations never
reach back into an order, and once placed the order itself no longer
changes.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.fields import DateTime, HasMany, Identifier, Integer, String, Text, ValueObject
from pydantic import TypeAdapter

from carts.calculation.snapshot import DiscountBreakdown, ShippingBreakdown, TaxBreakdown
from carts.domain import carts
from carts.exceptions import OrderAlreadyPlaced
from carts.pricing.price import Currency, Price

_DISCOUNTS = TypeAdapter(tuple[DiscountBreakdown, ...])


class OrderStatus(Enum):
    AWAITING_PAYMENT = "Awaiting_Payment"
    PLACED = "Placed"


class OrderLineType(Enum):
    PHYSICAL = "physical"
    DIGITAL = "digital"
    SHIPPING = "shipping"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@carts.value_object(part_of="Order")
class OrderAddress:
    """An address captured at checkout time.

    Once recorded on an order it no longer follows changes to the cart.
    """

    type = String(required=True, max_length=20)
    first_name = String(max_length=255)
    last_name = String(max_length=255)
    company_name = String(max_length=255)
    line_one = String(max_length=255)
    line_two = String(max_length=255)
    city = String(max_length=100)
    state = String(max_length=100)
    postcode = String(max_length=20)
    country_code = String(max_length=2)
    contact_email = String(max_length=255)
    contact_phone = String(max_length=50)
    delivery_instructions = Text()
    shipping_option = String(max_length=100)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@carts.entity(part_of="Order")
class OrderLine:
    purchasable_type = String(required=True, max_length=50)
    purchasable_id = Identifier(required=True)
    type = String(required=True, choices=OrderLineType)
    description = String(required=True, max_length=255)
    identifier = String(required=True, max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Integer(required=True)
    sub_total = Integer(required=True)
    discount_total = Integer(default=0)
    tax_breakdown = Text()  # JSON TaxBreakdown
    tax_total = Integer(default=0)
    total = Integer(required=True)
    meta = Text()  # JSON object

    def get_meta(self) -> dict:
        return json.loads(self.meta) if self.meta else {}

    def get_tax_breakdown(self) -> TaxBreakdown:
        return TaxBreakdown.model_validate_json(self.tax_breakdown) if self.tax_breakdown else TaxBreakdown()


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@carts.aggregate
class Order:
    cart_id = Identifier(required=True)
    channel_id = Identifier(required=True)
    user_id = Identifier()
    customer_id = Identifier()
    status = String(choices=OrderStatus, default=OrderStatus.AWAITING_PAYMENT.value)
    reference = String(max_length=100)
    fingerprint = String(required=True, max_length=128)
    currency_code = String(required=True, max_length=3)
    currency_decimal_places = Integer(default=2, min_value=0)
    coupon_code = String(max_length=100)
    sub_total = Integer(default=0)
    discount_total = Integer(default=0)
    discount_breakdown = Text()  # JSON list of DiscountBreakdown
    shipping_total = Integer(default=0)
    shipping_breakdown = Text()  # JSON ShippingBreakdown
    tax_total = Integer(default=0)
    tax_breakdown = Text()  # JSON TaxBreakdown
    total = Integer(default=0)
    lines = HasMany(OrderLine)
    shipping_address = ValueObject(OrderAddress)
    billing_address = ValueObject(OrderAddress)
    placed_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @property
    def currency(self) -> Currency:
        return Currency(code=self.currency_code, decimal_places=self.currency_decimal_places)

    def price(self, name: str) -> Price:
        """One of the order's stored amounts as a Price, e.g. ``order.price("total")``."""
        return Price(value=getattr(self, name), currency=self.currency)

    def get_discount_breakdown(self) -> tuple[DiscountBreakdown, ...]:
        return _DISCOUNTS.validate_json(self.discount_breakdown) if self.discount_breakdown else ()

    def get_shipping_breakdown(self) -> ShippingBreakdown:
        if not self.shipping_breakdown:
            return ShippingBreakdown()
        return ShippingBreakdown.model_validate_json(self.shipping_breakdown)

    def get_tax_breakdown(self) -> TaxBreakdown:
        return TaxBreakdown.model_validate_json(self.tax_breakdown) if self.tax_breakdown else TaxBreakdown()

    @property
    def is_placed(self) -> bool:
        return self.placed_at is not None

    @property
    def physical_lines(self) -> list[OrderLine]:
        return [line for line in self.lines if line.type == OrderLineType.PHYSICAL.value]

    @property
    def shipping_lines(self) -> list[OrderLine]:
        return [line for line in self.lines if line.type == OrderLineType.SHIPPING.value]

    def record(self, lines: list[OrderLine], **values) -> None:
        """Replace the order's totals and lines with a fresh materialization."""
        if self.is_placed:
            raise OrderAlreadyPlaced({"order": [f"Order {self.id} has already been placed"]})

        for name, value in values.items():
            setattr(self, name, value)
        for line in list(self.lines):
            self.remove_lines(line)
        for line in lines:
            self.add_lines(line)
        self.updated_at = datetime.now(UTC)

    def place(self) -> None:
        """Mark the order placed. Placed orders are final."""
        if self.is_placed:
            raise OrderAlreadyPlaced({"order": [f"Order {self.id} has already been placed"]})

        now = datetime.now(UTC)
        self.status = OrderStatus.PLACED.value
        self.placed_at = now
        self.updated_at = now


def dump_discounts(discounts) -> str:
    return _DISCOUNTS.dump_json(tuple(discounts)).decode()
