"""Validation chains run before each cart mutation.

Each operation has an ordered list of validators. They receive the current
cart and the proposed arguments, raise a typed ValidationFailure on
rejection, and short-circuit the chain on the first failure. Nothing has been
written when a validator raises.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from carts.exceptions import (
    CartAlreadyCompleted,
    CartLineNotFound,
    EmptyCart,
    InsufficientStock,
    InvalidAddress,
    InvalidAssociation,
    InvalidQuantity,
    InvalidShippingOption,
    MissingAddress,
    PurchasableNotFound,
    ShippingOptionRequired,
    ValidationFailure,
)

ADDRESS_TYPES = ("shipping", "billing")
REQUIRED_ADDRESS_FIELDS = ("first_name", "line_one", "city", "postcode", "country_code")


@dataclass(frozen=True)
class ValidationContext:
    """The cart and the arguments of the operation being validated."""

    operation: str
    cart: Any
    arguments: dict = field(default_factory=dict)

    def get(self, name: str, default=None):
        return self.arguments.get(name, default)


class CartValidator(ABC):
    """Abstract validator for one cart operation."""

    @abstractmethod
    def validate(self, context: ValidationContext) -> None: ...


# ---------------------------------------------------------------------------
# Lines
# ---------------------------------------------------------------------------
class QuantityValidator(CartValidator):
    def __init__(self, max_quantity: int = 10000) -> None:
        self.max_quantity = max_quantity

    def validate(self, context: ValidationContext) -> None:
        quantity = context.get("quantity")
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            raise InvalidQuantity({"quantity": ["Quantity must be at least 1"]})
        if quantity > self.max_quantity:
            raise InvalidQuantity({"quantity": [f"Quantity cannot exceed {self.max_quantity}"]})


class PurchasableExistsValidator(CartValidator):
    """The purchasable must be resolvable through the catalogue."""

    def validate(self, context: ValidationContext) -> None:
        purchasable = context.get("purchasable")
        catalogue = context.cart.manager.purchasables
        if catalogue.get(purchasable.purchasable_type, purchasable.purchasable_id) is None:
            raise PurchasableNotFound(
                {"purchasable": [f"{purchasable.purchasable_type} {purchasable.purchasable_id} is not available"]}
            )


class PurchasablePriceValidator(CartValidator):
    """The purchasable must be priced in the cart's currency."""

    def validate(self, context: ValidationContext) -> None:
        purchasable = context.get("purchasable")
        cart = context.cart
        if purchasable.get_price(cart.currency, context.get("quantity") or 1) is None:
            raise ValidationFailure(
                {"purchasable": [f"{purchasable.description} has no price in {cart.currency.code}"]},
                rule="price",
            )


class CartLineExistsValidator(CartValidator):
    def validate(self, context: ValidationContext) -> None:
        line_id = context.get("cart_line_id")
        if context.cart.stored().get_line(line_id) is None:
            raise CartLineNotFound({"cart_line_id": [f"Cart line {line_id} not found in cart"]})


class StockValidator(CartValidator):
    """Quantities must be fulfillable, counting what the cart already holds."""

    def check(self, purchasable, quantity: int) -> None:
        if not purchasable.can_be_fulfilled(quantity):
            raise InsufficientStock({"quantity": [f"Insufficient stock for {purchasable.description}"]})

    def validate(self, context: ValidationContext) -> None:
        cart = context.cart
        stored = cart.stored()
        quantity = context.get("quantity")

        if context.operation == "update_cart_line":
            line = stored.get_line(context.get("cart_line_id"))
            meta = context.get("meta")
            if meta is not None:
                # new meta can fold this line into an identical one
                sibling = stored.find_line(line.purchasable_type, line.purchasable_id, meta, exclude=line)
                if sibling is not None:
                    quantity += sibling.quantity
            self.check(cart.purchasable_for(line), quantity)
            return

        purchasable = context.get("purchasable")
        existing = stored.find_line(purchasable.purchasable_type, purchasable.purchasable_id, context.get("meta"))
        already = existing.quantity if existing else 0
        self.check(purchasable, already + quantity)


# ---------------------------------------------------------------------------
# Addresses & shipping
# ---------------------------------------------------------------------------
class AddressValidator(CartValidator):
    def validate(self, context: ValidationContext) -> None:
        address_type = context.get("type")
        if address_type not in ADDRESS_TYPES:
            raise InvalidAddress({"type": [f"Address type must be one of {', '.join(ADDRESS_TYPES)}"]})

        address = context.get("address")
        data = address if isinstance(address, dict) else address.to_dict()
        missing = [name for name in REQUIRED_ADDRESS_FIELDS if not data.get(name)]
        if missing:
            raise InvalidAddress({name: ["This field is required"] for name in missing})


class ShippingAddressPresentValidator(CartValidator):
    def validate(self, context: ValidationContext) -> None:
        if context.cart.shipping_address is None:
            raise MissingAddress({"shipping_address": ["A shipping address is required to set a shipping option"]})


class ShippingOptionAvailableValidator(CartValidator):
    """The option must be one the shipping service currently offers."""

    def validate(self, context: ValidationContext) -> None:
        option = context.get("shipping_option")
        cart = context.cart
        if not cart.is_shippable():
            raise InvalidShippingOption({"shipping_option": ["Cart has no shippable items"]})

        identifiers = {available.identifier for available in cart.manager.shipping.get_options(cart)}
        if option.identifier not in identifiers:
            raise InvalidShippingOption(
                {"shipping_option": [f"Shipping option '{option.identifier}' is not available"]}
            )


# ---------------------------------------------------------------------------
# Users & customers
# ---------------------------------------------------------------------------
class UserCustomerLinkValidator(CartValidator):
    """A user can only take over a cart whose customer they act for."""

    def validate(self, context: ValidationContext) -> None:
        cart = context.cart
        user = context.get("user")
        if cart.customer_id and not user.is_linked_to(cart.customer_id):
            raise InvalidAssociation({"user": ["Invalid user"]})


class CustomerUserLinkValidator(CartValidator):
    def validate(self, context: ValidationContext) -> None:
        cart = context.cart
        customer = context.get("customer")
        if cart.user_id and not customer.is_linked_to(cart.user_id):
            raise InvalidAssociation({"customer": ["Invalid customer"]})


# ---------------------------------------------------------------------------
# Order creation
# ---------------------------------------------------------------------------
class ValidateCartForOrderCreation(CartValidator):
    """Everything an order needs: items, stock, addresses and shipping."""

    def validate(self, context: ValidationContext) -> None:
        cart = context.cart

        if cart.completed_at is not None or cart.has_completed_orders():
            raise CartAlreadyCompleted({"cart": ["This cart has already been completed"]})

        if not cart.lines:
            raise EmptyCart({"cart": ["Cannot create an order from an empty cart"]})

        cart.validate_stock()

        if cart.billing_address is None:
            raise MissingAddress({"billing_address": ["A billing address is required"]})

        if cart.is_shippable():
            if cart.shipping_address is None:
                raise MissingAddress({"shipping_address": ["A shipping address is required"]})
            if cart.shipping_option_override is None and cart.get_shipping_option() is None:
                raise ShippingOptionRequired({"shipping_option": ["A shipping option is required"]})


def default_validators(settings) -> dict[str, list[CartValidator]]:
    """The validator chains used when the application supplies none."""
    quantity = QuantityValidator(max_quantity=settings.cart.max_line_quantity)
    stock = StockValidator()
    return {
        "add_to_cart": [PurchasableExistsValidator(), quantity, PurchasablePriceValidator(), stock],
        "update_cart_line": [CartLineExistsValidator(), quantity, stock],
        "remove_from_cart": [CartLineExistsValidator()],
        "add_address": [AddressValidator()],
        "set_shipping_option": [ShippingAddressPresentValidator(), ShippingOptionAvailableValidator()],
        "associate_user": [UserCustomerLinkValidator()],
        "set_customer": [CustomerUserLinkValidator()],
        "order_create": [ValidateCartForOrderCreation()],
    }
