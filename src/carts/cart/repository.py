"""Cart queries beyond load-by-id."""

from carts.cart.cart import Cart
from carts.domain import carts


@carts.repository(part_of=Cart)
class CartRepository:
    def active(self, user_id=None) -> list[Cart]:
        """Carts that are neither deleted nor completed, most recently updated first."""
        query = self._dao.query
        if user_id is not None:
            query = query.filter(user_id=str(user_id))

        active = [cart for cart in query.all().items if cart.is_active()]
        return sorted(active, key=lambda cart: cart.updated_at, reverse=True)

    def unmerged(self, user_id=None) -> list[Cart]:
        """Active carts whose lines have not been merged into another cart."""
        return [cart for cart in self.active(user_id=user_id) if cart.merged_id is None]
