"""Purchasable catalogue port (abstract interface).

Cart lines persist only a purchasable's type and id. The catalogue turns
that reference back into a Purchasable whenever a loaded cart is priced,
validated or checked for shipping.
"""

from abc import ABC, abstractmethod

from carts.cart.purchasable import Purchasable


class PurchasableCatalogue(ABC):
    """Abstract purchasable lookup."""

    @abstractmethod
    def get(self, purchasable_type: str, purchasable_id) -> Purchasable | None:
        """Return the purchasable, or None when it no longer exists."""
        ...
