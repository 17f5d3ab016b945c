"""Application tests for turning a calculated cart into an order."""

import pytest
from carts.calculation.stages import Stage, default_stages
from carts.cart.cart import Cart
from carts.cart.purchasable import ProductVariant
from carts.exceptions import (
    CartAlreadyCompleted,
    EmptyCart,
    FingerprintMismatch,
    InsufficientStock,
    MissingAddress,
    MultipleOrdersNotAllowed,
    OrderAlreadyPlaced,
    OrderNotFound,
    ShippingOptionRequired,
)
from carts.order.order import OrderStatus
from protean.utils.globals import current_domain

ADDRESS = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "line_one": "1 Analytical Row",
    "city": "London",
    "postcode": "N1 9GU",
    "country_code": "GB",
}


def _shirt(manager, **kwargs):
    return manager.purchasables.register(
        ProductVariant("var-001", "SHIRT-M", {"USD": "10.00"}, title="Shirt", **kwargs)
    )


def _option(manager, cart, identifier):
    return next(option for option in manager.shipping.get_options(cart) if option.identifier == identifier)


def _make_ready_cart(manager, quantity=2, purchasable=None):
    """A shippable cart with addresses and standard delivery chosen."""
    cart = manager.create_cart("USD", channel_id="web", user_id="user-1", customer_id="cust-1")
    cart.add(purchasable or _shirt(manager), quantity)
    cart.set_shipping_address(ADDRESS)
    cart.set_billing_address(ADDRESS)
    cart.set_shipping_option(_option(manager, cart, "standard"))
    return cart


class TestCreateOrder:
    def test_order_copies_the_calculation(self, manager):
        cart = _make_ready_cart(manager)
        order = cart.create_order()

        # 2 x 10.00 + 20% tax, standard delivery 5.00 + 20% tax
        assert order.sub_total == 2000
        assert order.shipping_total == 600
        assert order.tax_total == 500
        assert order.total == 3000
        assert order.price("total") == cart.total
        assert order.fingerprint == cart.fingerprint()
        assert order.status == OrderStatus.AWAITING_PAYMENT.value
        assert [amount.identifier for amount in order.get_tax_breakdown().amounts] == ["vat-standard"]

    def test_order_lines(self, manager):
        cart = _make_ready_cart(manager)
        order = cart.create_order()

        [physical] = order.physical_lines
        assert physical.identifier == "SHIRT-M"
        assert physical.description == "Shirt"
        assert physical.quantity == 2
        assert physical.unit_price == 1000
        assert physical.total == 2400

        [shipping] = order.shipping_lines
        assert shipping.identifier == "standard"
        assert shipping.total == 600

    def test_order_is_linked_and_persisted(self, manager):
        cart = _make_ready_cart(manager)
        order = cart.create_order()

        assert cart.order_id == order.id
        assert manager.load(cart.id).order_id == order.id
        assert manager.get_order(order.id) == order

    def test_addresses_are_copied(self, manager):
        order = _make_ready_cart(manager).create_order()
        assert order.shipping_address.city == "London"
        assert order.shipping_address.shipping_option == "standard"
        assert order.billing_address.postcode == "N1 9GU"

    def test_order_is_unaffected_by_later_cart_changes(self, manager):
        cart = _make_ready_cart(manager)
        order = cart.create_order()
        cart.update_line(cart.lines[0].id, 5)

        assert order.physical_lines[0].quantity == 2
        assert manager.get_order(order.id).total == 3000
        assert cart.total.value != order.total

    def test_line_meta_is_copied(self, manager):
        cart = manager.create_cart("USD", channel_id="web")
        cart.add(_shirt(manager, shippable=False), 1, {"engraving": {"text": "Ada"}})
        cart.set_billing_address(ADDRESS)
        order = cart.create_order()

        cart.update_line(cart.lines[0].id, 1, {"engraving": {"text": "Grace"}})
        assert manager.get_order(order.id).lines[0].get_meta() == {"engraving": {"text": "Ada"}}

    def test_digital_only_cart_needs_no_shipping(self, manager):
        cart = manager.create_cart("USD", channel_id="web")
        cart.add(_shirt(manager, shippable=False, tax_class="zero"), 3)
        cart.set_billing_address(ADDRESS)
        order = cart.create_order()

        assert order.price("total").formatted() == "30.00 USD"
        assert order.shipping_lines == []


class TestOrderCreationValidation:
    def test_empty_cart(self, manager):
        cart = manager.create_cart("USD", channel_id="web")
        with pytest.raises(EmptyCart):
            cart.create_order()

    def test_billing_address_required(self, manager):
        cart = manager.create_cart("USD", channel_id="web")
        cart.add(_shirt(manager), 1)
        with pytest.raises(MissingAddress):
            cart.create_order()

    def test_shipping_address_required(self, manager):
        cart = manager.create_cart("USD", channel_id="web")
        cart.add(_shirt(manager), 1)
        cart.set_billing_address(ADDRESS)
        with pytest.raises(MissingAddress):
            cart.create_order()

    def test_shipping_option_required(self, manager):
        cart = manager.create_cart("USD", channel_id="web")
        cart.add(_shirt(manager), 1)
        cart.set_shipping_address(ADDRESS)
        cart.set_billing_address(ADDRESS)
        with pytest.raises(ShippingOptionRequired):
            cart.create_order()

    def test_override_satisfies_shipping_requirement(self, manager):
        cart = manager.create_cart("USD", channel_id="web")
        cart.add(_shirt(manager), 1)
        cart.set_shipping_address(ADDRESS)
        cart.set_billing_address(ADDRESS)
        cart.set_shipping_override(_option(manager, cart, "express"))

        order = cart.create_order()
        assert [line.identifier for line in order.shipping_lines] == ["express"]

    def test_stock_is_checked(self, manager):
        shirt = _shirt(manager, stock=5)
        cart = _make_ready_cart(manager, quantity=5, purchasable=shirt)
        shirt.stock = 1

        with pytest.raises(InsufficientStock):
            cart.create_order()
        assert manager.orders_for_cart(cart.id) == []

    def test_cart_emptied_by_another_session(self, manager):
        cart = _make_ready_cart(manager)
        manager.get_cart(cart.id).clear()

        with pytest.raises(EmptyCart):
            cart.create_order()
        assert manager.orders_for_cart(cart.id) == []

    def test_address_added_by_another_session_is_seen(self, manager):
        cart = manager.create_cart("USD", channel_id="web")
        cart.add(_shirt(manager, shippable=False), 1)
        other = manager.get_cart(cart.id)
        other.set_billing_address(ADDRESS)

        order = cart.create_order()
        assert order.billing_address.city == "London"


class TestCanCreateOrder:
    def test_false_when_not_ready(self, manager):
        cart = manager.create_cart("USD", channel_id="web")
        assert cart.can_create_order() is False

    def test_true_when_ready(self, manager):
        assert _make_ready_cart(manager).can_create_order() is True

    def test_does_not_mutate(self, manager):
        cart = _make_ready_cart(manager)
        fingerprint = cart.fingerprint()
        snapshot = cart.snapshot

        cart.can_create_order()

        assert cart.fingerprint() == fingerprint
        assert cart.snapshot is snapshot
        assert manager.orders_for_cart(cart.id) == []


class TestMultipleOrders:
    def test_second_open_order_not_allowed(self, manager):
        cart = _make_ready_cart(manager)
        cart.create_order()

        with pytest.raises(MultipleOrdersNotAllowed):
            cart.create_order()
        assert len(manager.orders_for_cart(cart.id)) == 1

    def test_multiple_orders_when_allowed(self, manager):
        cart = _make_ready_cart(manager)
        first = cart.create_order()
        second = cart.create_order(allow_multiple_orders=True)

        assert first.id != second.id
        assert len(manager.orders_for_cart(cart.id)) == 2

    def test_update_existing_order(self, manager):
        cart = _make_ready_cart(manager)
        order = cart.create_order()
        cart.update_line(cart.lines[0].id, 3)

        updated = cart.create_order(existing_order_id=order.id)
        assert updated.id == order.id
        assert updated.created_at == order.created_at
        assert updated.physical_lines[0].quantity == 3
        assert len(updated.shipping_lines) == 1
        assert len(manager.orders_for_cart(cart.id)) == 1
        assert manager.get_order(order.id).total == updated.total

    def test_unknown_existing_order(self, manager):
        cart = _make_ready_cart(manager)
        with pytest.raises(OrderNotFound):
            cart.create_order(existing_order_id="missing")


class TestFingerprintSafety:
    def test_concurrent_change_is_detected(self, manager):
        cart = _make_ready_cart(manager)
        priced_at = cart.fingerprint()

        other = manager.get_cart(cart.id)
        other.add(manager.purchasables.register(ProductVariant("var-002", "SOCKS", {"USD": "3.00"})), 1)

        with pytest.raises(FingerprintMismatch) as exc:
            cart.create_order(expected_fingerprint=priced_at)
        assert exc.value.expected == priced_at
        assert manager.orders_for_cart(cart.id) == []
        assert manager.load(cart.id).order_id is None

    def test_expected_fingerprint_that_matches(self, manager):
        cart = _make_ready_cart(manager)
        order = cart.create_order(expected_fingerprint=cart.fingerprint())
        assert order.fingerprint == cart.fingerprint()

    def test_write_during_calculation_is_detected(self, manager):
        hat = manager.purchasables.register(ProductVariant("var-003", "HAT", {"USD": "7.00"}))

        class WriteDuringCalculation(Stage):
            def __init__(self):
                self.written = False

            def process(self, context):
                if self.written:
                    return
                self.written = True
                repo = current_domain.repository_for(Cart)
                stored = repo.get(context.cart.id)
                stored.add_line(hat.purchasable_type, hat.purchasable_id, 1)
                repo.add(stored)

        cart = _make_ready_cart(manager)
        manager.pipeline.stages = [*default_stages(), WriteDuringCalculation()]

        with pytest.raises(FingerprintMismatch):
            cart.create_order()
        assert manager.orders_for_cart(cart.id) == []


class TestDraftAndCompletedOrders:
    def test_current_draft_order(self, manager):
        cart = _make_ready_cart(manager)
        order = cart.create_order()

        assert cart.draft_order().id == order.id
        assert cart.current_draft_order().id == order.id

    def test_draft_goes_stale_after_cart_change(self, manager):
        cart = _make_ready_cart(manager)
        order = cart.create_order()
        cart.update_line(cart.lines[0].id, 3)

        assert cart.current_draft_order() is None
        assert cart.draft_order(order.id).id == order.id

    def test_place_order_completes_cart(self, manager):
        cart = _make_ready_cart(manager)
        order = cart.create_order()
        placed = manager.place_order(order.id)

        assert placed.status == OrderStatus.PLACED.value
        assert placed.is_placed
        cart.refresh()
        assert cart.completed_at == placed.placed_at
        assert cart.has_completed_orders()
        assert cart.completed_order().id == order.id
        assert cart.draft_order() is None
        assert cart.id not in [active.id for active in manager.active_carts()]

    def test_completed_cart_cannot_create_orders(self, manager):
        cart = _make_ready_cart(manager)
        manager.place_order(cart.create_order().id)
        cart.refresh()

        with pytest.raises(CartAlreadyCompleted):
            cart.create_order(allow_multiple_orders=True)
        assert cart.can_create_order() is False

    def test_stale_session_cannot_order_a_completed_cart(self, manager):
        cart = _make_ready_cart(manager)
        manager.place_order(cart.create_order().id)

        with pytest.raises(CartAlreadyCompleted):
            cart.create_order(allow_multiple_orders=True)

    def test_order_placed_once(self, manager):
        cart = _make_ready_cart(manager)
        order = cart.create_order()
        manager.place_order(order.id)

        with pytest.raises(OrderAlreadyPlaced):
            manager.place_order(order.id)

    def test_place_unknown_order(self, manager):
        with pytest.raises(OrderNotFound):
            manager.place_order("missing")
