"""Exception taxonomy for the carts domain.

Business-rule rejections derive from CartException, a protean
ValidationError, and carry a ``messages`` dict keyed by field
(``{"quantity": ["Quantity must be at least 1"]}``).
FingerprintMismatch and CurrencyMismatch sit outside that family: the first is
an integrity failure at checkout, the second a programming/data error.
"""

from protean.exceptions import ValidationError


class CartException(ValidationError):
    """Base class for business-rule rejections raised by the cart core."""

    default_field = "cart"

    def __init__(self, messages=None):
        if messages is None:
            messages = {self.default_field: [self.__class__.__name__]}
        elif isinstance(messages, str):
            messages = {self.default_field: [messages]}
        super().__init__(messages)


class ValidationFailure(CartException):
    """Raised by a validator in a mutation's chain."""

    rule = "validation"

    def __init__(self, messages=None, rule=None):
        if rule is not None:
            self.rule = rule
        super().__init__(messages)


class InvalidQuantity(ValidationFailure):
    rule = "quantity"
    default_field = "quantity"


class InsufficientStock(ValidationFailure):
    rule = "stock"
    default_field = "quantity"


class PurchasableNotFound(ValidationFailure):
    rule = "purchasable"
    default_field = "purchasable"


class CartLineNotFound(ValidationFailure):
    rule = "cart_line"
    default_field = "cart_line_id"


class InvalidAddress(ValidationFailure):
    rule = "address"
    default_field = "address"


class MissingAddress(ValidationFailure):
    rule = "address_required"
    default_field = "address"


class InvalidShippingOption(ValidationFailure):
    rule = "shipping_option"
    default_field = "shipping_option"


class ShippingOptionRequired(ValidationFailure):
    rule = "shipping_option_required"
    default_field = "shipping_option"


class EmptyCart(ValidationFailure):
    rule = "cart_not_empty"


class CartAlreadyCompleted(ValidationFailure):
    rule = "cart_not_completed"


class InvalidAssociation(CartException):
    default_field = "user"


class MultipleOrdersNotAllowed(CartException):
    default_field = "order"


class OrderNotFound(CartException):
    default_field = "order_id"


class OrderAlreadyPlaced(CartException):
    default_field = "order"


class CalculationError(CartException):
    """A pipeline stage could not produce totals; the whole calculation aborts."""

    default_field = "calculation"


class UnresolvableTaxRule(CalculationError):
    default_field = "tax_class"


class PriceNotFound(CalculationError):
    default_field = "price"


class CartNotFound(CartException):
    """No cart is stored under the requested id."""

    default_field = "cart_id"


class FingerprintMismatch(Exception):
    """The cart changed between pricing and order placement.

    Fatal to the current request: the caller must re-price and re-confirm.
    """

    def __init__(self, expected, actual):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Cart fingerprint {actual} does not match expected {expected}")


class CurrencyMismatch(ValueError):
    """Price arithmetic across two different currencies."""

    def __init__(self, left, right):
        self.left = left
        self.right = right
        super().__init__(f"Cannot combine amounts in {left} and {right}")
