"""Cart aggregate: the persisted pre-order basket.

The cart holds lines (a purchasable reference, a quantity and meta),
addresses (one of each type) and the customer/user it belongs to. Totals are
never stored on it: they are calculated on demand by a CartSession, which
wraps a loaded cart.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String, Text

from carts.domain import carts
from carts.exceptions import CartLineNotFound, MissingAddress
from carts.pricing.price import Currency

ADDRESS_FIELDS = (
    "first_name",
    "last_name",
    "company_name",
    "line_one",
    "line_two",
    "city",
    "state",
    "postcode",
    "country_code",
    "contact_email",
    "contact_phone",
    "delivery_instructions",
    "shipping_option",
)


def normalize_meta(meta) -> str:
    """Canonical JSON for meta: key order and whitespace never matter."""
    if isinstance(meta, str):
        meta = json.loads(meta) if meta else {}
    return json.dumps(meta or {}, sort_keys=True, separators=(",", ":"), default=str)


class AddressType(Enum):
    SHIPPING = "shipping"
    BILLING = "billing"


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@carts.entity(part_of="Cart")
class CartLine:
    """A purchasable and a quantity on a cart."""

    purchasable_type = String(required=True, max_length=50)
    purchasable_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    meta = Text()  # canonical JSON object
    created_at = DateTime()
    updated_at = DateTime()

    def get_meta(self) -> dict:
        return json.loads(self.meta) if self.meta else {}

    def matches(self, purchasable_type, purchasable_id, meta=None) -> bool:
        """Whether the purchasable with ``meta`` is logically this line."""
        return (
            self.purchasable_type == purchasable_type
            and str(self.purchasable_id) == str(purchasable_id)
            and normalize_meta(self.meta) == normalize_meta(meta)
        )


@carts.entity(part_of="Cart")
class CartAddress:
    """A shipping or billing address; one of each type per cart."""

    type = String(required=True, choices=AddressType, default=AddressType.SHIPPING.value)
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
    meta = Text()

    def fingerprint_fields(self) -> dict:
        fields = {name: getattr(self, name) for name in ADDRESS_FIELDS}
        return {"id": str(self.id), "type": self.type, **fields, "meta": normalize_meta(self.meta)}


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@carts.aggregate
class Cart:
    currency_code = String(required=True, max_length=3)
    currency_decimal_places = Integer(default=2, min_value=0)
    channel_id = Identifier(required=True)
    user_id = Identifier()
    customer_id = Identifier()
    order_id = Identifier()
    merged_id = Identifier()
    coupon_code = String(max_length=100)
    meta = Text()
    lines = HasMany(CartLine)
    addresses = HasMany(CartAddress)
    completed_at = DateTime()
    deleted_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def lines_must_be_unique(self):
        keys = [(line.purchasable_type, str(line.purchasable_id), normalize_meta(line.meta)) for line in self.lines]
        if len(keys) != len(set(keys)):
            raise ValidationError({"lines": ["A purchasable with the same meta may appear on only one line"]})

    @invariant.post
    def addresses_must_be_unique_per_type(self):
        types = [address.type for address in self.addresses]
        if len(types) != len(set(types)):
            raise ValidationError({"addresses": ["Only one address of each type is allowed"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, currency: Currency, channel_id, user_id=None, customer_id=None, meta=None):
        now = datetime.now(UTC)
        return cls(
            currency_code=currency.code,
            currency_decimal_places=currency.decimal_places,
            channel_id=str(channel_id),
            user_id=str(user_id) if user_id is not None else None,
            customer_id=str(customer_id) if customer_id is not None else None,
            meta=normalize_meta(meta),
            created_at=now,
            updated_at=now,
        )

    @property
    def currency(self) -> Currency:
        return Currency(code=self.currency_code, decimal_places=self.currency_decimal_places)

    def get_meta(self) -> dict:
        return json.loads(self.meta) if self.meta else {}

    def is_active(self) -> bool:
        return self.deleted_at is None and self.completed_at is None

    def _touch(self) -> datetime:
        now = datetime.now(UTC)
        self.updated_at = now
        return now

    # -------------------------------------------------------------------
    # Line management
    # -------------------------------------------------------------------
    def get_line(self, line_id) -> CartLine | None:
        return next((line for line in self.lines if str(line.id) == str(line_id)), None)

    def find_line(self, purchasable_type, purchasable_id, meta=None, exclude=None) -> CartLine | None:
        return next(
            (
                line
                for line in self.lines
                if line.matches(purchasable_type, purchasable_id, meta) and line is not exclude
            ),
            None,
        )

    def add_line(self, purchasable_type, purchasable_id, quantity, meta=None) -> CartLine:
        """Add a line, or increase the quantity of the identical one."""
        now = self._touch()
        existing = self.find_line(purchasable_type, purchasable_id, meta)
        if existing:
            existing.quantity += quantity
            existing.updated_at = now
            return existing

        line = CartLine(
            purchasable_type=purchasable_type,
            purchasable_id=str(purchasable_id),
            quantity=quantity,
            meta=normalize_meta(meta),
            created_at=now,
            updated_at=now,
        )
        self.add_lines(line)
        return line

    def update_line(self, line_id, quantity, meta=None) -> CartLine:
        """Set a line's quantity and, when given, its meta.

        New meta that makes the line identical to another one folds this
        line's quantity into it and removes this line.
        """
        line = self.get_line(line_id)
        if line is None:
            raise CartLineNotFound({"cart_line_id": [f"Cart line {line_id} not found"]})

        now = self._touch()
        if meta is not None:
            sibling = self.find_line(line.purchasable_type, line.purchasable_id, meta, exclude=line)
            if sibling is not None:
                sibling.quantity += quantity
                sibling.updated_at = now
                self.remove_lines(line)
                return sibling
            line.meta = normalize_meta(meta)

        line.quantity = quantity
        line.updated_at = now
        return line

    def remove_line(self, line_id) -> None:
        line = self.get_line(line_id)
        if line is None:
            raise CartLineNotFound({"cart_line_id": [f"Cart line {line_id} not found"]})

        self.remove_lines(line)
        self._touch()

    def clear_lines(self) -> None:
        for line in list(self.lines):
            self.remove_lines(line)
        self._touch()

    # -------------------------------------------------------------------
    # Addresses
    # -------------------------------------------------------------------
    def address_of_type(self, address_type) -> CartAddress | None:
        address_type = AddressType(address_type).value
        return next((a for a in self.addresses if a.type == address_type), None)

    @property
    def shipping_address(self) -> CartAddress | None:
        return self.address_of_type(AddressType.SHIPPING)

    @property
    def billing_address(self) -> CartAddress | None:
        return self.address_of_type(AddressType.BILLING)

    def set_address(self, address_type, data: dict) -> CartAddress:
        """Add or replace the address of ``address_type``.

        Replacing keeps the address id, and keeps the chosen shipping option
        unless ``data`` names one.
        """
        address_type = AddressType(address_type).value
        values = {name: data.get(name) for name in ADDRESS_FIELDS}
        values["meta"] = normalize_meta(data.get("meta"))

        existing = self.address_of_type(address_type)
        if existing is None:
            address = CartAddress(type=address_type, **values)
            self.add_addresses(address)
        else:
            if not values["shipping_option"]:
                values["shipping_option"] = existing.shipping_option
            for name, value in values.items():
                setattr(existing, name, value)
            address = existing

        self._touch()
        return address

    def set_shipping_option(self, identifier: str) -> None:
        address = self.shipping_address
        if address is None:
            raise MissingAddress({"address": ["A shipping address is required to choose a shipping option"]})

        address.shipping_option = identifier
        self._touch()

    # -------------------------------------------------------------------
    # Coupons, users & customers
    # -------------------------------------------------------------------
    def apply_coupon(self, coupon_code: str) -> None:
        self.coupon_code = coupon_code.strip().upper()
        self._touch()

    def remove_coupon(self) -> None:
        self.coupon_code = None
        self._touch()

    def associate_user(self, user_id, customer_id=None) -> None:
        """Set the user, and the customer when the cart has none yet."""
        self.user_id = str(user_id)
        if self.customer_id is None and customer_id is not None:
            self.customer_id = str(customer_id)
        self._touch()

    def set_customer(self, customer_id) -> None:
        self.customer_id = str(customer_id)
        self._touch()

    def merge_into(self, cart_id) -> None:
        """Record that this cart's lines now live on ``cart_id``."""
        self.merged_id = str(cart_id)
        self._touch()

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def link_order(self, order_id) -> None:
        self.order_id = str(order_id)
        self._touch()

    def complete(self, completed_at: datetime) -> None:
        self.completed_at = completed_at
        self.updated_at = completed_at

    def soft_delete(self) -> None:
        self.deleted_at = self._touch()
