"""Order queries beyond load-by-id."""

from carts.domain import carts
from carts.order.order import Order


@carts.repository(part_of=Order)
class OrderRepository:
    def for_cart(self, cart_id) -> list[Order]:
        """Every order created from the cart, oldest first."""
        orders = self._dao.query.filter(cart_id=str(cart_id)).all().items
        return sorted(orders, key=lambda order: order.created_at)
