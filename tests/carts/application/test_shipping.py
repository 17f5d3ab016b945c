"""Application tests for addresses, shipping options and the shipping override."""

import pytest
from carts.calculation.snapshot import ShippingOption
from carts.cart.purchasable import ProductVariant
from carts.exceptions import InvalidAddress, InvalidShippingOption, MissingAddress
from carts.pricing.price import Price

ADDRESS = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "line_one": "1 Analytical Row",
    "city": "London",
    "postcode": "N1 9GU",
    "country_code": "GB",
}


SHIRT = ProductVariant("var-001", "SHIRT", {"USD": "10.00"}, tax_class="zero")
EBOOK = ProductVariant("var-002", "EBOOK", {"USD": "4.00"}, shippable=False, tax_class="zero")
SOCKS = ProductVariant("var-003", "SOCKS", {"USD": "3.00"}, tax_class="zero")


@pytest.fixture(autouse=True)
def catalogue(manager):
    for purchasable in (SHIRT, EBOOK, SOCKS):
        manager.purchasables.register(purchasable)


def _make_cart(manager, *purchasables):
    cart = manager.create_cart("USD", channel_id="web")
    for purchasable in purchasables:
        cart.add(purchasable, 1)
    return cart


def _option(manager, cart, identifier):
    return next(option for option in manager.shipping.get_options(cart) if option.identifier == identifier)


class TestAddresses:
    def test_set_shipping_address(self, manager):
        cart = _make_cart(manager, SHIRT)
        cart.set_shipping_address(ADDRESS)

        assert cart.shipping_address.city == "London"
        assert cart.shipping_address.type == "shipping"
        assert cart.billing_address is None

    def test_replacing_address_keeps_one_per_type(self, manager):
        cart = _make_cart(manager, SHIRT)
        cart.set_shipping_address(ADDRESS)
        address_id = cart.shipping_address.id
        cart.set_shipping_address({**ADDRESS, "city": "Cambridge"})

        assert len(cart.addresses) == 1
        assert cart.shipping_address.city == "Cambridge"
        assert cart.shipping_address.id == address_id

    def test_billing_and_shipping_coexist(self, manager):
        cart = _make_cart(manager, SHIRT)
        cart.set_shipping_address(ADDRESS)
        cart.set_billing_address(ADDRESS)
        assert {address.type for address in cart.addresses} == {"shipping", "billing"}

    def test_incomplete_address_rejected(self, manager):
        cart = _make_cart(manager, SHIRT)
        with pytest.raises(InvalidAddress):
            cart.set_shipping_address({"first_name": "Ada"})
        assert manager.get_cart(cart.id).addresses == []

    def test_address_changes_fingerprint(self, manager):
        cart = _make_cart(manager, SHIRT)
        before = cart.fingerprint()
        cart.set_billing_address(ADDRESS)
        assert cart.fingerprint() != before


class TestShippingOption:
    def test_default_is_cheapest_non_collect(self, manager):
        cart = _make_cart(manager, SHIRT)

        assert cart.snapshot.shipping_option.identifier == "standard"
        assert cart.shipping_sub_total.value == 500
        assert cart.total.value == 1600

    def test_non_shippable_cart_has_no_shipping(self, manager):
        cart = _make_cart(manager, EBOOK)

        assert not cart.is_shippable()
        assert cart.snapshot.shipping_option is None
        assert cart.shipping_total.value == 0

    def test_chosen_option_is_used(self, manager):
        cart = _make_cart(manager, SHIRT)
        cart.set_shipping_address(ADDRESS)
        cart.set_shipping_option(_option(manager, cart, "express"))

        assert cart.shipping_address.shipping_option == "express"
        assert cart.get_shipping_option().identifier == "express"
        assert cart.shipping_sub_total.value == 1500
        assert cart.total.value == 2800

    def test_chosen_option_survives_address_change(self, manager):
        cart = _make_cart(manager, SHIRT)
        cart.set_shipping_address(ADDRESS)
        cart.set_shipping_option(_option(manager, cart, "express"))
        cart.set_shipping_address({**ADDRESS, "city": "Cambridge"})

        assert cart.shipping_address.shipping_option == "express"

    def test_shipping_tax_uses_configured_class(self, manager):
        cart = _make_cart(manager, SHIRT)

        # standard delivery names no tax class, so the configured one (20%) applies
        assert cart.snapshot.shipping_tax_total.value == 100
        assert cart.shipping_total.value == 600
        assert cart.tax_total.value == 100

    def test_option_requires_shipping_address(self, manager):
        cart = _make_cart(manager, SHIRT)
        with pytest.raises(MissingAddress):
            cart.set_shipping_option(_option(manager, cart, "express"))

    def test_unavailable_option_rejected(self, manager):
        cart = _make_cart(manager, SHIRT)
        cart.set_shipping_address(ADDRESS)
        drone = ShippingOption(identifier="drone", name="Drone", price=Price(value=100, currency=cart.currency))

        with pytest.raises(InvalidShippingOption):
            cart.set_shipping_option(drone)

    def test_option_rejected_for_non_shippable_cart(self, manager):
        cart = _make_cart(manager, EBOOK)
        cart.set_shipping_address(ADDRESS)
        with pytest.raises(InvalidShippingOption):
            cart.set_shipping_option(_option(manager, cart, "standard"))

    def test_shipping_service_can_be_reconfigured(self, manager):
        cart = _make_cart(manager, SHIRT)
        manager.shipping.configure([{"identifier": "flat", "name": "Flat Rate", "price": "2.50"}])

        assert cart.recalculate().shipping_sub_total.value == 250


class TestShippingOverride:
    def test_estimate_returns_cheapest_non_collect(self, manager):
        cart = _make_cart(manager, SHIRT)
        option = cart.get_estimated_shipping({"postcode": "N1 9GU", "country_code": "GB"})

        assert option.identifier == "standard"
        assert cart.shipping_estimate_meta == {"postcode": "N1 9GU", "country_code": "GB"}
        assert cart.shipping_option_override is None

    def test_estimate_can_pin_override(self, manager):
        cart = _make_cart(manager, SHIRT)
        option = cart.get_estimated_shipping({"postcode": "N1 9GU"}, set_override=True)

        assert cart.shipping_option_override == option
        assert not cart.is_calculated()

    def test_override_beats_cheaper_default(self, manager):
        cart = _make_cart(manager, SHIRT)
        cart.set_shipping_override(_option(manager, cart, "express"))
        cart.calculate()

        assert cart.snapshot.shipping_option.identifier == "express"
        assert cart.shipping_sub_total.value == 1500

    def test_override_persists_across_mutations(self, manager):
        cart = _make_cart(manager, SHIRT)
        cart.set_shipping_override(_option(manager, cart, "express"))
        cart.add(SOCKS, 1)

        assert cart.shipping_option_override.identifier == "express"
        assert cart.shipping_sub_total.value == 1500

    def test_override_changes_fingerprint(self, manager):
        cart = _make_cart(manager, SHIRT)
        before = cart.fingerprint()
        cart.set_shipping_override(_option(manager, cart, "express"))
        assert cart.fingerprint() != before

    def test_clear_override(self, manager):
        cart = _make_cart(manager, SHIRT)
        cart.set_shipping_override(_option(manager, cart, "express"))
        cart.clear_shipping_override().calculate()

        assert cart.shipping_option_override is None
        assert cart.shipping_sub_total.value == 500

    def test_new_shipping_address_clears_override(self, manager):
        cart = _make_cart(manager, SHIRT)
        cart.set_shipping_override(_option(manager, cart, "express"))
        cart.set_shipping_address(ADDRESS)
        assert cart.shipping_option_override is None

    def test_choosing_option_clears_override(self, manager):
        cart = _make_cart(manager, SHIRT)
        cart.set_shipping_address(ADDRESS)
        cart.set_shipping_override(_option(manager, cart, "express"))
        cart.set_shipping_option(_option(manager, cart, "standard"))

        assert cart.shipping_option_override is None
        assert cart.shipping_sub_total.value == 500

    def test_override_dropped_when_nothing_ships(self, manager):
        cart = _make_cart(manager, SHIRT, EBOOK)
        cart.set_shipping_override(_option(manager, cart, "express"))
        shirt_line = next(line for line in cart.lines if cart.purchasable_for(line).is_shippable())
        cart.remove(shirt_line.id)

        assert cart.shipping_option_override is None
        assert cart.shipping_total.value == 0

    def test_override_is_instance_only(self, manager):
        cart = _make_cart(manager, SHIRT)
        cart.set_shipping_override(_option(manager, cart, "express"))
        assert manager.get_cart(cart.id).shipping_option_override is None
