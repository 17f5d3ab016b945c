"""Purchasable lookup: port and the in-memory catalogue used in development and tests."""

from carts.services.purchasables.fake_adapter import FakePurchasableCatalogue
from carts.services.purchasables.port import PurchasableCatalogue

__all__ = ["FakePurchasableCatalogue", "PurchasableCatalogue"]
