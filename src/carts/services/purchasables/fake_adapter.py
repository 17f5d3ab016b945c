"""In-memory purchasable catalogue for development and testing."""

from carts.cart.purchasable import Purchasable
from carts.services.purchasables.port import PurchasableCatalogue


class FakePurchasableCatalogue(PurchasableCatalogue):
    def __init__(self, purchasables: list[Purchasable] | None = None) -> None:
        self.purchasables: dict[tuple[str, str], Purchasable] = {}
        for purchasable in purchasables or []:
            self.register(purchasable)

    def register(self, purchasable: Purchasable) -> Purchasable:
        """Make ``purchasable`` resolvable, replacing any earlier registration."""
        self.purchasables[purchasable.identity_key()] = purchasable
        return purchasable

    def unregister(self, purchasable: Purchasable) -> None:
        self.purchasables.pop(purchasable.identity_key(), None)

    def get(self, purchasable_type: str, purchasable_id) -> Purchasable | None:
        return self.purchasables.get((purchasable_type, str(purchasable_id)))
