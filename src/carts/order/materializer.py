"""Order materialization: turns a freshly calculated cart into an order.

Inside the same unit of work that writes the order, the cart is re-validated
and the fingerprint the snapshot was calculated at is re-checked against
what the repository holds. If anything changed in between, the order is not
written: an order is never built from totals the customer was not shown.
"""

from datetime import UTC, datetime

import structlog
from protean.utils.globals import current_domain

from carts.cart.cart import ADDRESS_FIELDS, Cart, normalize_meta
from carts.exceptions import (
    CalculationError,
    FingerprintMismatch,
    MultipleOrdersNotAllowed,
    OrderNotFound,
)
from carts.order.order import Order, OrderAddress, OrderLine, OrderLineType, dump_discounts
from carts.utils.transactions import transaction

logger = structlog.get_logger(__name__)


def _copy_address(address) -> OrderAddress | None:
    if address is None:
        return None
    return OrderAddress(type=address.type, **{name: getattr(address, name) for name in ADDRESS_FIELDS})


class CreateOrder:
    def execute(
        self,
        session,
        allow_multiple_orders: bool = False,
        existing_order_id=None,
        expected_fingerprint: str | None = None,
    ) -> Order:
        if not session.is_calculated():
            raise CalculationError({"cart": ["Cart must be calculated before creating an order"]})

        snapshot = session.snapshot
        carts_repo = current_domain.repository_for(Cart)
        orders_repo = current_domain.repository_for(Order)

        with transaction():
            live = session.stored_fingerprint()
            for expected in (snapshot.fingerprint, expected_fingerprint):
                if expected is not None and expected != live:
                    logger.warning(
                        "Order creation aborted, cart changed since pricing",
                        cart_id=session.id,
                        expected=expected,
                        actual=live,
                    )
                    raise FingerprintMismatch(expected, live)

            # the stored cart is what gets ordered; it must still pass the checks
            session.validate_stored("order_create")

            open_orders = [order for order in orders_repo.for_cart(session.id) if not order.is_placed]
            if existing_order_id is not None:
                order = next((o for o in open_orders if str(o.id) == str(existing_order_id)), None)
                if order is None:
                    raise OrderNotFound({"order_id": [f"No open order {existing_order_id} for cart {session.id}"]})
            else:
                if open_orders and not allow_multiple_orders:
                    raise MultipleOrdersNotAllowed({"order": [f"Cart {session.id} already has an open order"]})
                order = Order(
                    cart_id=session.id,
                    channel_id=str(session.channel_id),
                    fingerprint=snapshot.fingerprint,
                    currency_code=snapshot.currency.code,
                    created_at=datetime.now(UTC),
                )

            order.record(self.build_lines(session, snapshot), **self.build_values(session, snapshot))
            orders_repo.add(order)

            cart = carts_repo.get(session.id)
            cart.link_order(order.id)
            carts_repo.add(cart)

        session.cart = cart
        logger.info(
            "Order created from cart",
            cart_id=session.id,
            order_id=str(order.id),
            total=order.total,
            currency=order.currency_code,
            updated_existing=existing_order_id is not None,
        )
        return order

    def build_values(self, session, snapshot) -> dict:
        """The order-level fields copied from the cart and its snapshot."""
        return {
            "channel_id": str(session.channel_id),
            "user_id": session.user_id,
            "customer_id": session.customer_id,
            "fingerprint": snapshot.fingerprint,
            "currency_code": snapshot.currency.code,
            "currency_decimal_places": snapshot.currency.decimal_places,
            "coupon_code": session.coupon_code,
            "sub_total": snapshot.sub_total.value,
            "discount_total": snapshot.discount_total.value,
            "discount_breakdown": dump_discounts(snapshot.discount_breakdown),
            "shipping_total": snapshot.shipping_total.value,
            "shipping_breakdown": snapshot.shipping_breakdown.model_dump_json(),
            "tax_total": snapshot.tax_total.value,
            "tax_breakdown": snapshot.tax_breakdown.model_dump_json(),
            "total": snapshot.total.value,
            "shipping_address": _copy_address(session.shipping_address),
            "billing_address": _copy_address(session.billing_address),
        }

    def build_lines(self, session, snapshot) -> list[OrderLine]:
        """Copy each line's calculation, plus one line for the shipping charge."""
        lines = []
        for line in session.lines:
            calculation = snapshot.lines[str(line.id)]
            purchasable = session.purchasable_for(line)
            lines.append(
                OrderLine(
                    purchasable_type=line.purchasable_type,
                    purchasable_id=str(line.purchasable_id),
                    type=(OrderLineType.PHYSICAL if purchasable.is_shippable() else OrderLineType.DIGITAL).value,
                    description=purchasable.description,
                    identifier=purchasable.identifier,
                    quantity=line.quantity,
                    unit_price=calculation.unit_price.value,
                    sub_total=calculation.sub_total.value,
                    discount_total=calculation.discount_total.value,
                    tax_breakdown=calculation.tax_breakdown.model_dump_json(),
                    tax_total=calculation.tax_amount.value,
                    total=calculation.total.value,
                    meta=normalize_meta(line.meta),
                )
            )

        option = snapshot.shipping_option
        if option is not None:
            lines.append(
                OrderLine(
                    purchasable_type="shipping_option",
                    purchasable_id=option.identifier,
                    type=OrderLineType.SHIPPING.value,
                    description=option.name,
                    identifier=option.identifier,
                    quantity=1,
                    unit_price=snapshot.shipping_sub_total.value,
                    sub_total=snapshot.shipping_sub_total.value,
                    discount_total=0,
                    tax_breakdown=snapshot.shipping_tax_breakdown.model_dump_json(),
                    tax_total=snapshot.shipping_tax_total.value,
                    total=snapshot.shipping_total.value,
                )
            )
        return lines
