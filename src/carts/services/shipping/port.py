"""Shipping service port (abstract interface).

Defines the contract that all shipping-rate adapters must implement, so the
calculation pipeline can ask for options without knowing which carrier or
rate table sits behind them.
"""

from abc import ABC, abstractmethod

from carts.calculation.snapshot import ShippingOption


class ShippingService(ABC):
    """Abstract shipping-rate lookup."""

    @abstractmethod
    def get_options(self, cart) -> list[ShippingOption]:
        """Return every option eligible for the cart's address and lines."""
        ...

    @abstractmethod
    def get_shipping_option(self, cart) -> ShippingOption | None:
        """Return the option the customer chose on the shipping address, if any."""
        ...
