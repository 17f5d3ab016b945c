"""Purchasable capability: the contract any item added to a cart implements.

The cart core depends only on this interface. Concrete item kinds (product
variants, gift cards, shipping surcharges...) subclass it and decide how to
price themselves, whether they ship, and how they are taxed.
"""

from abc import ABC, abstractmethod

from carts.pricing.price import Currency, Price


class Purchasable(ABC):
    """Abstract interface for anything that can sit on a cart line."""

    @property
    @abstractmethod
    def purchasable_type(self) -> str:
        """Polymorphic type name persisted alongside the line."""
        ...

    @property
    @abstractmethod
    def purchasable_id(self) -> str:
        """Stable identifier within ``purchasable_type``."""
        ...

    @abstractmethod
    def get_price(self, currency: Currency, quantity: int = 1) -> Price | None:
        """Return the unit price in ``currency`` or None when unpriced."""
        ...

    @abstractmethod
    def is_shippable(self) -> bool: ...

    @property
    @abstractmethod
    def tax_class(self) -> str: ...

    def identity_key(self) -> tuple[str, str]:
        return (self.purchasable_type, str(self.purchasable_id))

    def can_be_fulfilled(self, quantity: int) -> bool:  # noqa: ARG002
        """Whether ``quantity`` units can be fulfilled. Unlimited by default."""
        return True

    @property
    def description(self) -> str:
        return f"{self.purchasable_type} {self.purchasable_id}"

    @property
    def identifier(self) -> str:
        """Human-facing identifier (SKU) copied onto order lines."""
        return str(self.purchasable_id)


class ProductVariant(Purchasable):
    """A stock-tracked catalogue variant priced per currency.

    ``prices`` maps currency code to a major-unit amount, e.g.
    ``{"USD": "10.00"}``. Quantity breaks are given as
    ``{"USD": {1: "10.00", 10: "9.00"}}``.
    """

    def __init__(
        self,
        variant_id,
        sku: str,
        prices: dict,
        *,
        title: str = "",
        shippable: bool = True,
        tax_class: str = "standard",
        stock: int | None = None,
        backorder: int = 0,
    ) -> None:
        self.variant_id = str(variant_id)
        self.sku = sku
        self.prices = prices
        self.title = title or sku
        self.shippable = shippable
        self._tax_class = tax_class
        self.stock = stock
        self.backorder = backorder

    @property
    def purchasable_type(self) -> str:
        return "product_variant"

    @property
    def purchasable_id(self) -> str:
        return self.variant_id

    @property
    def tax_class(self) -> str:
        return self._tax_class

    @property
    def description(self) -> str:
        return self.title

    @property
    def identifier(self) -> str:
        return self.sku

    def get_price(self, currency: Currency, quantity: int = 1) -> Price | None:
        amount = self.prices.get(currency.code)
        if amount is None:
            return None
        if isinstance(amount, dict):
            breaks = sorted((int(min_qty), value) for min_qty, value in amount.items())
            eligible = [value for min_qty, value in breaks if min_qty <= quantity]
            if not eligible:
                return None
            amount = eligible[-1]
        return Price.from_decimal(amount, currency)

    def is_shippable(self) -> bool:
        return self.shippable

    def can_be_fulfilled(self, quantity: int) -> bool:
        if self.stock is None:
            return True
        return quantity <= self.stock + self.backorder

    def __repr__(self) -> str:
        return f"ProductVariant(variant_id={self.variant_id!r}, sku={self.sku!r})"
