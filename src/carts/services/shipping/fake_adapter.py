"""Configurable fake shipping service for development and testing.

Offers a fixed table of options (read from the ``[shipping]`` config section
by default) priced in the cart's currency. Options can be replaced at runtime
and every lookup is recorded in ``calls``.
"""

from carts.calculation.snapshot import ShippingOption
from carts.config import ShippingSettings
from carts.pricing.price import Price
from carts.services.shipping.port import ShippingService


class FakeShippingService(ShippingService):
    """Configurable fake shipping service."""

    def __init__(self, options: list[dict] | None = None) -> None:
        self.options: list[dict] = list(options or [])
        self.calls: list[dict] = []

    @classmethod
    def from_settings(cls, settings: ShippingSettings, tax_class: str = "standard") -> "FakeShippingService":
        """Build from config; options without a tax class use ``tax_class``."""
        options = [option.model_dump() for option in settings.options]
        for option in options:
            option["tax_class"] = option["tax_class"] or tax_class
        return cls(options=options)

    def configure(self, options: list[dict]) -> None:
        """Replace the option table at runtime."""
        self.options = list(options)

    def get_options(self, cart) -> list[ShippingOption]:
        self.calls.append({"method": "get_options", "cart_id": cart.id})
        return [
            ShippingOption(
                identifier=option["identifier"],
                name=option["name"],
                price=Price.from_decimal(option["price"], cart.currency),
                description=option.get("description", ""),
                collect=option.get("collect", False),
                tax_class=option.get("tax_class") or "standard",
            )
            for option in self.options
        ]

    def get_shipping_option(self, cart) -> ShippingOption | None:
        self.calls.append({"method": "get_shipping_option", "cart_id": cart.id})
        address = cart.shipping_address
        if address is None or not address.shipping_option:
            return None
        return next(
            (option for option in self.get_options(cart) if option.identifier == address.shipping_option),
            None,
        )
