"""Shipping-rate lookup: port and the fake adapter used in development and tests."""

from carts.services.shipping.fake_adapter import FakeShippingService
from carts.services.shipping.port import ShippingService

__all__ = ["FakeShippingService", "ShippingService"]
